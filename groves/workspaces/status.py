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

"""Live git status of the worktrees in a workspace."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from groves.errors import GrovesError
from groves.git import runner as git
from groves.utils import config as cfg
from groves.workspaces import scanner

log = logging.getLogger(__name__)


@dataclass
class RepoStatus:
    """Counters parsed from ``git status --porcelain=v2 -b``."""
    alias: str = ""
    worktree_path: str = ""
    branch: str = ""
    upstream: str = ""
    head: str = ""                # short commit id, empty before the first commit
    detached: bool = False
    head_missing: bool = False
    dirty: bool = False
    staged: int = 0
    unstaged: int = 0
    untracked: int = 0
    unmerged: int = 0
    ahead: int = 0
    behind: int = 0
    changed_files: list[str] = field(default_factory=list)
    error: str = ""               # set when status could not be read


@dataclass
class WorkspaceStatus:
    workspace_id: str
    repos: list[RepoStatus] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _count(value: str) -> int:
    try:
        return max(int(value), 0)
    except ValueError:
        return 0


def parse_porcelain_v2(output: str, fallback_branch: str = "") -> RepoStatus:
    """Parse porcelain v2 output with branch headers into a RepoStatus."""
    st = RepoStatus(branch=fallback_branch)
    for line in output.splitlines():
        if not line:
            continue
        if line.startswith("# "):
            fields = line.split()
            if len(fields) < 3:
                continue
            key, value = fields[1], fields[2]
            if key == "branch.oid":
                if value == "(initial)":
                    st.head_missing = True
                else:
                    st.head = value[:7]
            elif key == "branch.head":
                if value == "(detached)":
                    st.detached = True
                elif value != "(unknown)":
                    st.branch = value
            elif key == "branch.upstream":
                st.upstream = value
            elif key == "branch.ab":
                for f in fields[2:]:
                    if f.startswith("+"):
                        st.ahead = _count(f[1:])
                    elif f.startswith("-"):
                        st.behind = _count(f[1:])
            continue

        st.changed_files.append(line)
        if line.startswith("? "):
            st.untracked += 1
            st.dirty = True
        elif line.startswith("u "):
            st.unmerged += 1
            st.dirty = True
        elif line.startswith(("1 ", "2 ")):
            xy = line.split()[1] if len(line.split()) > 1 else ""
            if len(xy) >= 2:
                if xy[0] != ".":
                    st.staged += 1
                if xy[1] != ".":
                    st.unstaged += 1
                if xy != "..":
                    st.dirty = True
        else:
            st.dirty = True
    return st


async def repo_status(alias: str, worktree: str | Path, branch: str = "") -> RepoStatus:
    """Status of one worktree. Read failures are recorded, not raised."""
    try:
        out = await git.status_porcelain_v2(worktree)
    except GrovesError as e:
        log.debug("status failed for %s: %s", worktree, e)
        return RepoStatus(alias=alias, worktree_path=str(worktree), branch=branch, error=str(e))
    st = parse_porcelain_v2(out, branch)
    st.alias = alias
    st.worktree_path = str(worktree)
    return st


async def workspace_status(root: str | Path, workspace_id: str) -> WorkspaceStatus:
    """Scan a workspace and read the status of every worktree in it."""
    if not workspace_id:
        raise GrovesError("workspace id is required")
    ws_dir = cfg.workspace_dir(root, workspace_id)
    if not ws_dir.is_dir():
        raise GrovesError(f"workspace does not exist: {ws_dir}")

    repos, warnings = await scanner.scan_repos(ws_dir)
    result = WorkspaceStatus(workspace_id=workspace_id, warnings=warnings)
    for repo in repos:
        result.repos.append(await repo_status(repo.alias, repo.worktree_path, repo.branch))
    return result
