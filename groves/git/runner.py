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

"""Allow-listed git subprocess execution and small typed git queries.

Every call runs as an asyncio subprocess. Cancelling the awaiting task
kills the git process before the cancellation propagates, and a timeout
kills it and raises :class:`GitCommandError`.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from groves.errors import GitCommandError, GitNotAllowedError, GrovesError
from groves.utils import config as cfg

log = logging.getLogger(__name__)

ALLOWED_SUBCOMMANDS = frozenset({
    "clone",
    "fetch",
    "worktree",
    "show-ref",
    "symbolic-ref",
    "rev-parse",
    "remote",
    "config",
    "ls-remote",
    "status",
    "check-ref-format",
    "update-ref",
    "version",
    "merge-base",
})


@dataclass
class GitResult:
    """Captured outcome of one git invocation."""
    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _git_env() -> dict[str, str]:
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["LC_ALL"] = "C"
    return env


async def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    await proc.wait()


async def run(*args: str, cwd: str | Path | None = None, check: bool = True,
              timeout: float | None = None) -> GitResult:
    """Run an allow-listed git subcommand and capture its output.

    Raises GitNotAllowedError before exec for anything outside the
    allow-list, and GitCommandError on non-zero exit when ``check`` is set.
    """
    if not args:
        raise GitNotAllowedError("")
    if args[0] not in ALLOWED_SUBCOMMANDS:
        raise GitNotAllowedError(args[0])

    if timeout is None:
        timeout = cfg.GIT_TIMEOUT
    argv = list(args)
    log.debug("git %s (cwd=%s)", " ".join(argv), cwd or ".")

    try:
        proc = await asyncio.create_subprocess_exec(
            "git", *argv,
            cwd=str(cwd) if cwd else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=_git_env(),
        )
    except FileNotFoundError as e:
        raise GrovesError(f"cannot run git: {e}") from e

    try:
        if timeout and timeout > 0:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        else:
            out, err = await proc.communicate()
    except asyncio.TimeoutError:
        await _kill(proc)
        raise GitCommandError(argv, None, message=f"timed out after {timeout:g}s")
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    result = GitResult(
        args=argv,
        returncode=proc.returncode,
        stdout=out.decode(errors="replace"),
        stderr=err.decode(errors="replace"),
    )
    if check and not result.ok:
        raise GitCommandError(argv, result.returncode, result.stderr, result.stdout)
    return result


async def output(*args: str, cwd: str | Path | None = None,
                 timeout: float | None = None) -> str:
    """Run a git command and return stripped stdout."""
    r = await run(*args, cwd=cwd, timeout=timeout)
    return r.stdout.strip()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def show_ref(cwd: str | Path, ref: str) -> str | None:
    """Return the object id a fully qualified ref points at, or None."""
    r = await run("show-ref", "--verify", "--hash", ref, cwd=cwd, check=False)
    if r.ok:
        return r.stdout.strip() or None
    if r.returncode == 1 or (r.returncode == 128 and "not a valid ref" in r.stderr):
        return None
    raise GitCommandError(r.args, r.returncode, r.stderr, r.stdout)


async def symbolic_ref(cwd: str | Path, ref: str) -> str | None:
    """Return the target of a symbolic ref, or None when it is not symbolic."""
    r = await run("symbolic-ref", "--quiet", ref, cwd=cwd, check=False)
    if r.ok:
        return r.stdout.strip() or None
    if r.returncode == 1:
        return None
    # Missing refs die with 128 even under --quiet
    if r.returncode == 128 and ("no such ref" in r.stderr.lower()
                                or "not a symbolic ref" in r.stderr):
        return None
    raise GitCommandError(r.args, r.returncode, r.stderr, r.stdout)


async def rev_parse(cwd: str | Path, *args: str) -> str:
    return await output("rev-parse", *args, cwd=cwd)


async def is_valid_branch_name(name: str) -> bool:
    if not name.strip():
        return False
    r = await run("check-ref-format", "--branch", name, check=False)
    return r.ok


async def status_porcelain_v2(worktree: str | Path) -> str:
    r = await run("status", "--porcelain=v2", "-b", cwd=worktree)
    return r.stdout


async def is_ancestor(cwd: str | Path, ancestor: str, descendant: str) -> bool:
    """True when ``ancestor`` is reachable from ``descendant``."""
    r = await run("merge-base", "--is-ancestor", ancestor, descendant, cwd=cwd, check=False)
    if r.returncode == 0:
        return True
    if r.returncode == 1:
        return False
    raise GitCommandError(r.args, r.returncode, r.stderr, r.stdout)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def worktree_remove(store: str | Path, worktree: str | Path, force: bool = False) -> None:
    args = ["worktree", "remove"]
    if force:
        args.append("--force")
    args.append(str(worktree))
    log.info("git %s", " ".join(args))
    await run(*args, cwd=store)
