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

"""Risk classification of worktrees from their live git status.

Priority, highest first: unknown > dirty > diverged > unpushed > clean.
A workspace takes the highest-priority kind found among its repos.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from groves.workspaces import status as ws_status
from groves.workspaces.status import RepoStatus


class RepoStateKind(str, Enum):
    CLEAN = "clean"
    UNPUSHED = "unpushed"
    DIVERGED = "diverged"
    DIRTY = "dirty"
    UNKNOWN = "unknown"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]


_PRIORITY = {
    RepoStateKind.CLEAN: 0,
    RepoStateKind.UNPUSHED: 1,
    RepoStateKind.DIVERGED: 2,
    RepoStateKind.DIRTY: 3,
    RepoStateKind.UNKNOWN: 4,
}


@dataclass
class RepoState:
    alias: str
    kind: RepoStateKind
    worktree_path: str = ""
    branch: str = ""
    upstream: str = ""
    staged: int = 0
    unstaged: int = 0
    untracked: int = 0
    unmerged: int = 0
    ahead: int = 0
    behind: int = 0
    detached: bool = False
    head_missing: bool = False
    changed_files: list[str] = field(default_factory=list)
    error: str = ""


@dataclass
class WorkspaceState:
    workspace_id: str
    kind: RepoStateKind
    repos: list[RepoState] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def classify(st: RepoStatus) -> RepoStateKind:
    if st.error:
        return RepoStateKind.UNKNOWN
    if st.dirty or st.staged or st.unstaged or st.untracked or st.unmerged:
        return RepoStateKind.DIRTY
    if not st.upstream.strip():
        return RepoStateKind.DIVERGED
    if st.ahead > 0 and st.behind > 0:
        return RepoStateKind.DIVERGED
    if st.ahead > 0:
        return RepoStateKind.UNPUSHED
    return RepoStateKind.CLEAN


def aggregate(kinds) -> RepoStateKind:
    """Highest-priority kind present, ``clean`` for an empty workspace."""
    return max(kinds, key=lambda k: k.priority, default=RepoStateKind.CLEAN)


def repo_state(st: RepoStatus) -> RepoState:
    return RepoState(
        alias=st.alias,
        kind=classify(st),
        worktree_path=st.worktree_path,
        branch=st.branch,
        upstream=st.upstream,
        staged=st.staged,
        unstaged=st.unstaged,
        untracked=st.untracked,
        unmerged=st.unmerged,
        ahead=st.ahead,
        behind=st.behind,
        detached=st.detached,
        head_missing=st.head_missing,
        changed_files=list(st.changed_files),
        error=st.error,
    )


def from_status(result: ws_status.WorkspaceStatus) -> WorkspaceState:
    repos = [repo_state(r) for r in result.repos]
    return WorkspaceState(
        workspace_id=result.workspace_id,
        kind=aggregate(r.kind for r in repos),
        repos=repos,
        warnings=list(result.warnings),
    )


async def state(root: str | Path, workspace_id: str) -> WorkspaceState:
    """Read live status for a workspace and classify it."""
    return from_status(await ws_status.workspace_status(root, workspace_id))
