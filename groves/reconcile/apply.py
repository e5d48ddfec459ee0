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

"""Execute a plan against the filesystem.

Changes run strictly one after another. Removals go first, then renames,
then (after joining background fetches) additions. A failing step aborts
the apply; steps already done are not undone, and the next plan picks up
from wherever the fleet ended up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from groves.errors import GrovesError
from groves.manifest import model
from groves.manifest.model import ManifestFile, WorkspaceMode
from groves.reconcile.plan import (
    PlanResult,
    RepoChange,
    RepoChangeKind,
    WorkspaceChange,
    WorkspaceChangeKind,
    is_in_place_rename,
)
from groves.reconcile.prefetch import Prefetcher
from groves.repos import repospec
from groves.workspaces import scanner
from groves.workspaces.manager import WorkspaceManager
from groves.workspaces.metadata import Metadata

log = logging.getLogger(__name__)


@dataclass
class ApplyOptions:
    allow_dirty: bool = False           # remove worktrees holding dirty/unpushed work
    allow_status_error: bool = False    # remove worktrees whose status cannot be read
    prefetch: bool = True               # fetch existing stores in the background first
    prefetch_timeout: float | None = None
    step: Callable[[str], None] | None = None


def _report(opts: ApplyOptions, text: str) -> None:
    log.info("apply: %s", text)
    if opts.step is not None:
        opts.step(text)


def collect_specs(result: PlanResult) -> list[str]:
    """Clone URLs of every repo a plan will add, deduplicated and sorted."""
    keys: set[str] = set()
    for change in result.changes:
        if change.kind is WorkspaceChangeKind.ADD:
            ws = result.desired.workspaces.get(change.workspace_id)
            if ws is not None:
                keys.update(r.repo_key for r in ws.repos)
        elif change.kind is WorkspaceChangeKind.UPDATE:
            keys.update(r.to_repo for r in change.repos
                        if r.kind in (RepoChangeKind.ADD, RepoChangeKind.UPDATE) and r.to_repo)
    return [repospec.spec_from_key(k) for k in sorted(keys)]


def _desired_base_ref(desired: ManifestFile, workspace_id: str, alias: str) -> str:
    ws = desired.workspaces.get(workspace_id)
    if ws is None:
        return ""
    for repo in ws.repos:
        if repo.alias == alias:
            return repo.base_ref
    return ""


def _needs_worktree_removal(change: RepoChange) -> bool:
    if change.kind is RepoChangeKind.REMOVE:
        return True
    return change.kind is RepoChangeKind.UPDATE and not is_in_place_rename(change)


def _needs_worktree_add(change: RepoChange) -> bool:
    if change.kind is RepoChangeKind.ADD:
        return True
    return change.kind is RepoChangeKind.UPDATE and not is_in_place_rename(change)


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------

async def apply(root: str | Path, result: PlanResult, opts: ApplyOptions | None = None) -> None:
    """Apply ``result.changes`` in plan order.

    Raises:
        RemovalBlockedError: A removal would lose work the options do not allow.
        GrovesError: Any other step failure, including a failed prefetch.
    """
    opts = opts or ApplyOptions()
    mgr = WorkspaceManager(root)
    specs = collect_specs(result) if opts.prefetch else []

    async with Prefetcher(root, timeout=opts.prefetch_timeout) as prefetcher:
        prefetcher.start_all(specs)

        for change in result.changes:
            if change.kind is WorkspaceChangeKind.REMOVE:
                _report(opts, f"remove workspace {change.workspace_id}")
                await mgr.remove(change.workspace_id, allow_dirty=opts.allow_dirty,
                                 allow_status_error=opts.allow_status_error)

        for change in result.changes:
            if change.kind is WorkspaceChangeKind.UPDATE:
                await _remove_repos(mgr, change, opts)
                await _rename_branches(mgr, change, opts)

        # Worktrees are only added once no fetch touches the stores.
        await prefetcher.wait_all(specs)

        for change in result.changes:
            if change.kind is WorkspaceChangeKind.ADD:
                await _add_workspace(mgr, result.desired, change, opts)
            elif change.kind is WorkspaceChangeKind.UPDATE:
                await _add_repos(mgr, result.desired, change, opts)


async def _remove_repos(mgr: WorkspaceManager, change: WorkspaceChange, opts: ApplyOptions) -> None:
    for repo in change.repos:
        if not _needs_worktree_removal(repo):
            continue
        _report(opts, f"worktree remove {repo.alias}")
        await mgr.remove_repo(change.workspace_id, repo.alias, allow_dirty=opts.allow_dirty,
                              allow_status_error=opts.allow_status_error)


async def _rename_branches(mgr: WorkspaceManager, change: WorkspaceChange, opts: ApplyOptions) -> None:
    for repo in change.repos:
        if not is_in_place_rename(repo):
            continue
        _report(opts, f"branch rename {repo.alias}")
        await mgr.rename_branch(change.workspace_id, repo.alias, repo.from_branch, repo.to_branch)


async def _add_workspace(mgr: WorkspaceManager, desired: ManifestFile,
                         change: WorkspaceChange, opts: ApplyOptions) -> None:
    ws = desired.workspaces.get(change.workspace_id)
    if ws is None:
        raise GrovesError(f"workspace not found in manifest: {change.workspace_id}")

    _report(opts, f"create workspace {change.workspace_id}")
    await mgr.create(change.workspace_id, Metadata(
        description=ws.description,
        mode=ws.mode.value if ws.mode else "",
        preset_name=ws.preset_name,
        source_url=ws.source_url,
    ))
    review = ws.mode is WorkspaceMode.REVIEW
    for repo in change.repos:
        _report(opts, f"worktree add {repo.alias}")
        await mgr.add_repo(change.workspace_id, repo.to_repo, alias=repo.alias,
                           branch=repo.to_branch,
                           base_ref=_desired_base_ref(desired, change.workspace_id, repo.alias),
                           review=review)


async def _add_repos(mgr: WorkspaceManager, desired: ManifestFile,
                     change: WorkspaceChange, opts: ApplyOptions) -> None:
    for repo in change.repos:
        if not _needs_worktree_add(repo):
            continue
        _report(opts, f"worktree add {repo.alias}")
        await mgr.add_repo(change.workspace_id, repo.to_repo, alias=repo.alias,
                           branch=repo.to_branch,
                           base_ref=_desired_base_ref(desired, change.workspace_id, repo.alias))


# ---------------------------------------------------------------------------
# Write-back
# ---------------------------------------------------------------------------

async def import_manifest(root: str | Path) -> tuple[ManifestFile, list[str]]:
    """Rewrite groves.yaml from the scanned filesystem.

    Resolved details such as the base ref a branch was cut from end up in
    the desired file instead of staying implicit.
    """
    actual, warnings = await scanner.build_actual(root)
    model.save(root, actual)
    return actual, warnings
