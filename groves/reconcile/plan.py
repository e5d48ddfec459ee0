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

"""Diff desired workspaces (groves.yaml) against the scanned filesystem.

The result is an ordered change set: workspaces sorted by ID then change
kind, repo changes sorted by alias. Identical inputs always produce an
identical ordering.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from groves.errors import ValidationError
from groves.manifest import model
from groves.manifest import validate as mvalidate
from groves.manifest.model import ManifestFile, RepoRef, Workspace
from groves.workspaces import scanner

log = logging.getLogger(__name__)


class WorkspaceChangeKind(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    UPDATE = "update"


class RepoChangeKind(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    UPDATE = "update"


@dataclass
class RepoChange:
    kind: RepoChangeKind
    alias: str
    from_repo: str = ""
    to_repo: str = ""
    from_branch: str = ""
    to_branch: str = ""


@dataclass
class WorkspaceChange:
    kind: WorkspaceChangeKind
    workspace_id: str
    repos: list[RepoChange] = field(default_factory=list)


@dataclass
class PlanResult:
    desired: ManifestFile
    actual: ManifestFile
    changes: list[WorkspaceChange] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_in_place_rename(change: RepoChange) -> bool:
    """Same repo, both branches known and different: rename, no re-clone."""
    return (
        change.kind is RepoChangeKind.UPDATE
        and bool(change.from_repo)
        and change.from_repo == change.to_repo
        and bool(change.from_branch)
        and bool(change.to_branch)
        and change.from_branch != change.to_branch
    )


def is_destructive_repo_change(change: RepoChange) -> bool:
    if change.kind is RepoChangeKind.REMOVE:
        return True
    if change.kind is RepoChangeKind.UPDATE:
        return not is_in_place_rename(change)
    return False


def is_destructive(changes: list[WorkspaceChange]) -> bool:
    """True when applying ``changes`` could delete a worktree."""
    for change in changes:
        if change.kind is WorkspaceChangeKind.REMOVE:
            return True
        if change.kind is WorkspaceChangeKind.UPDATE:
            if any(is_destructive_repo_change(r) for r in change.repos):
                return True
    return False


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------

def _sort_changes(changes: list[WorkspaceChange]) -> list[WorkspaceChange]:
    return sorted(changes, key=lambda c: (c.workspace_id, c.kind.value))


def _repo_adds(ws: Workspace) -> list[RepoChange]:
    adds = [
        RepoChange(kind=RepoChangeKind.ADD, alias=r.alias.strip(),
                   to_repo=r.repo_key, to_branch=r.branch)
        for r in ws.repos
    ]
    return sorted(adds, key=lambda c: c.alias)


def diff_repos(actual: list[RepoRef], desired: list[RepoRef]) -> list[RepoChange]:
    """Repo changes keyed by alias, sorted by alias."""
    actual_by_alias = {r.alias.strip(): r for r in actual}
    desired_by_alias = {r.alias.strip(): r for r in desired}

    changes: list[RepoChange] = []
    for alias, want in desired_by_alias.items():
        have = actual_by_alias.get(alias)
        if have is None:
            changes.append(RepoChange(kind=RepoChangeKind.ADD, alias=alias,
                                      to_repo=want.repo_key, to_branch=want.branch))
        elif have.repo_key != want.repo_key or have.branch != want.branch:
            changes.append(RepoChange(kind=RepoChangeKind.UPDATE, alias=alias,
                                      from_repo=have.repo_key, to_repo=want.repo_key,
                                      from_branch=have.branch, to_branch=want.branch))
    for alias, have in actual_by_alias.items():
        if alias not in desired_by_alias:
            changes.append(RepoChange(kind=RepoChangeKind.REMOVE, alias=alias,
                                      from_repo=have.repo_key, from_branch=have.branch))
    return sorted(changes, key=lambda c: c.alias)


def diff(desired: ManifestFile, actual: ManifestFile) -> list[WorkspaceChange]:
    """Changes that turn ``actual`` into ``desired``."""
    changes: list[WorkspaceChange] = []
    for wid in sorted(desired.workspaces):
        want = desired.workspaces[wid]
        have = actual.workspaces.get(wid)
        if have is None:
            changes.append(WorkspaceChange(kind=WorkspaceChangeKind.ADD, workspace_id=wid,
                                           repos=_repo_adds(want)))
            continue
        repo_changes = diff_repos(have.repos, want.repos)
        if repo_changes:
            changes.append(WorkspaceChange(kind=WorkspaceChangeKind.UPDATE, workspace_id=wid,
                                           repos=repo_changes))

    for wid in sorted(actual.workspaces):
        if wid not in desired.workspaces:
            changes.append(WorkspaceChange(kind=WorkspaceChangeKind.REMOVE, workspace_id=wid))
    return _sort_changes(changes)


async def plan(root: str | Path) -> PlanResult:
    """Validate groves.yaml, scan the filesystem and diff the two.

    Raises:
        ValidationError: If the manifest has any issue. No partial plan
            is ever returned for an invalid manifest.
    """
    result = await mvalidate.validate(root)
    if not result.ok:
        raise ValidationError(result)

    desired = model.load(root)
    actual, warnings = await scanner.build_actual(root)
    changes = diff(desired, actual)
    log.debug("Planned %d workspace changes (%d warnings)", len(changes), len(warnings))
    return PlanResult(desired=desired, actual=actual, changes=changes, warnings=warnings)
