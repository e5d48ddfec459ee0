# groves — Declarative fleets of git worktrees.
#
# Copyright (c) 2026 Max Rheiner / Somniacs AG
#
# Licensed under the MIT License. You may obtain a copy
# of the license at:
#
#     https://opensource.org/licenses/MIT
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND.

"""Bare repo stores under ``<root>/bare/<host>/<owner>/<repo>.git``.

A store is the shared local mirror every worktree of a repo attaches to.
Stores are cloned on demand and normalized on every open so that
``refs/remotes/origin/*`` tracks the remote and ``origin/HEAD`` names
the remote default branch.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from groves.errors import GitCommandError, GrovesError
from groves.git import runner as git
from groves.repos import repospec
from groves.utils import config as cfg

log = logging.getLogger(__name__)

_FETCH_REFSPEC = "+refs/heads/*:refs/remotes/origin/*"


def store_path(root: str | Path, spec: str) -> Path:
    parsed = repospec.normalize(spec)
    return cfg.bare_root(root) / parsed.host / parsed.owner / f"{parsed.repo}.git"


def exists(root: str | Path, spec: str) -> bool:
    return store_path(root, spec).is_dir()


async def get(root: str | Path, spec: str) -> Path:
    """Return the store for ``spec``, cloning it first when missing."""
    path = store_path(root, spec)
    cloned = False
    if not path.is_dir():
        path.parent.mkdir(parents=True, exist_ok=True)
        log.info("Cloning %s into %s", spec.strip(), path)
        await git.run("clone", "--bare", spec.strip(), str(path))
        cloned = True
    return await open_store(root, spec, fetch=cloned)


async def open_store(root: str | Path, spec: str, fetch: bool = False) -> Path:
    """Open an existing store. Raises GrovesError when it was never cloned."""
    path = store_path(root, spec)
    if not path.is_dir():
        raise GrovesError(f"repo store not found: {path}")
    await _normalize(path, fetch=fetch)
    return path


async def prefetch(root: str | Path, spec: str, timeout: float | None = None) -> None:
    """Refresh remote-tracking refs of an existing store."""
    path = store_path(root, spec)
    log.debug("Prefetching %s", path)
    await git.run("fetch", "--prune", "origin", cwd=path, timeout=timeout)


async def default_branch(path: str | Path) -> str:
    """Local view of the remote default branch (``origin/HEAD``), or ''."""
    target = await git.symbolic_ref(path, "refs/remotes/origin/HEAD")
    if not target:
        return ""
    return target.removeprefix("refs/remotes/origin/")


async def remote_head(path: str | Path) -> tuple[str, str]:
    """Ask the remote for its default branch and head commit.

    Returns ``(branch, oid)``; either is empty when the remote does not
    advertise it (an empty repository advertises neither).
    """
    out = await git.output("ls-remote", "--symref", "origin", "HEAD", cwd=path)
    branch = oid = ""
    for line in out.splitlines():
        line = line.strip()
        if not line.endswith("\tHEAD"):
            continue
        if line.startswith("ref: "):
            branch = line.split()[1].removeprefix("refs/heads/")
        else:
            oid = line.split()[0]
    return branch, oid


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _recently_fetched(path: Path) -> bool:
    fetch_head = path / "FETCH_HEAD"
    try:
        mtime = fetch_head.stat().st_mtime
    except OSError:
        return False
    return time.time() - mtime < cfg.FETCH_GRACE_SECONDS


async def _normalize(path: Path, fetch: bool = False) -> None:
    await git.run("config", "remote.origin.fetch", _FETCH_REFSPEC, cwd=path)

    branch = await default_branch(path)
    remote_oid = ""
    remote_checked = False
    if not branch or not _recently_fetched(path):
        branch, remote_oid = await remote_head(path)
        remote_checked = True
    if branch:
        await git.run("symbolic-ref", "refs/remotes/origin/HEAD",
                      f"refs/remotes/origin/{branch}", cwd=path)

    tracking = await git.show_ref(path, f"refs/remotes/origin/{branch}") if branch else None
    needs_fetch = fetch or (bool(branch) and tracking is None)
    if remote_checked and tracking and remote_oid and tracking != remote_oid:
        needs_fetch = True

    if needs_fetch:
        log.info("Fetching %s", path)
        await git.run("fetch", "--prune", "origin", cwd=path)
    await _prune_local_heads(path, branch)


async def _checked_out_branches(path: Path) -> set[str]:
    out = await git.output("worktree", "list", "--porcelain", cwd=path)
    branches = set()
    for line in out.splitlines():
        if line.startswith("branch "):
            branches.add(line.removeprefix("branch ").removeprefix("refs/heads/"))
    return branches


async def _prune_local_heads(path: Path, keep: str) -> None:
    # A bare clone copies every remote branch into refs/heads. Those copies
    # go stale, so only the default branch and checked-out branches stay.
    r = await git.run("show-ref", "--heads", cwd=path, check=False)
    if not r.ok and r.returncode != 1:
        raise GitCommandError(r.args, r.returncode, r.stderr, r.stdout)
    if not keep:
        return
    in_use = await _checked_out_branches(path)
    for line in r.stdout.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        name = parts[1].removeprefix("refs/heads/")
        if name == keep or name in in_use:
            continue
        log.debug("Pruning stale local branch %s in %s", name, path)
        await git.run("update-ref", "-d", parts[1], cwd=path)
