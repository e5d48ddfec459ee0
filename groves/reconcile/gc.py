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

"""Find desired workspaces whose work has landed upstream.

A workspace is a candidate when it is clean and every repo's branch head
is a strict ancestor of its merge target (the repo's ``base_ref``, else
the remote default branch). A branch sitting exactly on the target commit
has nothing merged and is not a candidate.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from groves.errors import GrovesError
from groves.git import runner as git
from groves.manifest.model import ManifestFile, RepoRef
from groves.repos import repospec, store
from groves.utils import config as cfg
from groves.workspaces import risk
from groves.workspaces.risk import RepoStateKind

log = logging.getLogger(__name__)


@dataclass
class GcCandidate:
    workspace_id: str
    targets: list[str] = field(default_factory=list)    # alias=origin/<branch>
    reason: str = "merged"


@dataclass
class GcResult:
    candidates: list[GcCandidate] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    scanned: int = 0
    skipped: int = 0

    @property
    def candidate_ids(self) -> list[str]:
        return [c.workspace_id for c in self.candidates]


@dataclass
class _FetchResult:
    repo_key: str
    default_target: str = ""
    error: str = ""


def _store_dir(root: str | Path, repo_key: str) -> Path:
    return store.store_path(root, repospec.spec_from_key(repo_key))


def _label(repo: RepoRef) -> str:
    return repo.alias or repo.repo_key


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------

async def _fetch_repo(root: str | Path, repo_key: str, repos: list[RepoRef]) -> _FetchResult:
    path = _store_dir(root, repo_key)
    if not path.is_dir():
        return _FetchResult(repo_key, error=f"repo store not found: {path}")

    branches: set[str] = set()
    needs_default = False
    for repo in repos:
        if repo.base_ref:
            branches.add(repo.base_ref.removeprefix("origin/"))
        else:
            needs_default = True

    result = _FetchResult(repo_key)
    try:
        if needs_default:
            default, _ = await store.remote_head(path)
            if not default:
                return _FetchResult(repo_key, error="default branch unavailable")
            result.default_target = f"origin/{default}"
            branches.add(default)
        for branch in sorted(branches):
            await git.run("fetch", "origin", f"refs/heads/{branch}:refs/remotes/origin/{branch}",
                          cwd=path)
    except GrovesError as e:
        result.error = str(e)
    return result


async def fetch_targets(root: str | Path, desired: ManifestFile,
                        workers: int | None = None) -> dict[str, _FetchResult]:
    """Refresh every merge target referenced by ``desired``, a few stores at a time."""
    by_key: dict[str, list[RepoRef]] = {}
    for ws in desired.workspaces.values():
        for repo in ws.repos:
            if repo.repo_key:
                by_key.setdefault(repo.repo_key, []).append(repo)

    limit = asyncio.Semaphore(max(1, workers or cfg.GC_FETCH_WORKERS))

    async def worker(key: str) -> _FetchResult:
        async with limit:
            log.debug("gc: fetching %s", key)
            return await _fetch_repo(root, key, by_key[key])

    results = await asyncio.gather(*(worker(k) for k in sorted(by_key)))
    return {r.repo_key: r for r in results}


# ---------------------------------------------------------------------------
# Merge checks
# ---------------------------------------------------------------------------

async def resolve_merge_target(root: str | Path, repo: RepoRef,
                               default_targets: dict[str, str]) -> str:
    """``base_ref``, else the fetched default, else the store's origin/HEAD. '' if none."""
    if repo.base_ref:
        return repo.base_ref
    if default_targets.get(repo.repo_key):
        return default_targets[repo.repo_key]
    path = _store_dir(root, repo.repo_key)
    if not path.is_dir():
        return ""
    branch = await store.default_branch(path)
    return f"origin/{branch}" if branch else ""


async def strictly_merged(root: str | Path, repo: RepoRef, target: str) -> bool:
    """True when the branch head is a proper ancestor of ``target``.

    Raises GrovesError when either ref is missing.
    """
    path = _store_dir(root, repo.repo_key)
    if not path.is_dir():
        raise GrovesError(f"repo store not found: {path}")
    head_ref = f"refs/heads/{repo.branch}"
    target_ref = f"refs/remotes/{target}"

    head = await git.show_ref(path, head_ref)
    if head is None:
        raise GrovesError(f"ref not found: {head_ref}")
    tip = await git.show_ref(path, target_ref)
    if tip is None:
        raise GrovesError(f"ref not found: {target_ref}")
    if head == tip:
        return False
    return await git.is_ancestor(path, head_ref, target_ref)


async def find_candidates(root: str | Path, desired: ManifestFile,
                          fetch: bool = True) -> GcResult:
    """Scan desired workspaces (sorted by ID) for GC candidates."""
    result = GcResult()
    fetched = await fetch_targets(root, desired) if fetch else {}
    fetch_errors = {k: r.error for k, r in fetched.items() if r.error}
    default_targets = {k: r.default_target for k, r in fetched.items() if r.default_target}

    for wid in sorted(desired.workspaces):
        ws = desired.workspaces[wid]
        result.scanned += 1

        try:
            state = await risk.state(root, wid)
        except GrovesError as e:
            result.warnings.append(f"{wid}: workspace status unavailable: {e}")
            result.skipped += 1
            continue
        if state.kind is not RepoStateKind.CLEAN or not ws.repos:
            result.skipped += 1
            continue

        targets: list[str] = []
        merged = True
        for repo in ws.repos:
            label = _label(repo)
            if repo.repo_key in fetch_errors:
                result.warnings.append(f"{wid}: {label}: fetch failed: {fetch_errors[repo.repo_key]}")
                merged = False
                break
            try:
                target = await resolve_merge_target(root, repo, default_targets)
                if not target:
                    result.warnings.append(f"{wid}: {label}: merge target unavailable")
                    merged = False
                    break
                targets.append(f"{label}={target}")
                if not await strictly_merged(root, repo, target):
                    merged = False
                    break
            except GrovesError as e:
                result.warnings.append(f"{wid}: {label}: merged check failed: {e}")
                merged = False
                break

        if not merged:
            result.skipped += 1
            continue
        result.candidates.append(GcCandidate(workspace_id=wid, targets=targets))

    log.info("gc: %d candidate(s) out of %d workspace(s)", len(result.candidates), result.scanned)
    return result
