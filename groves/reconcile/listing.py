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

"""Desired workspaces annotated with drift and risk, for ``manifest ls``."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from groves.errors import GrovesError
from groves.reconcile import plan as planner
from groves.reconcile.plan import WorkspaceChangeKind
from groves.workspaces import risk
from groves.workspaces.risk import RepoStateKind


class Drift(str, Enum):
    APPLIED = "applied"
    MISSING = "missing"
    DRIFT = "drift"
    EXTRA = "extra"


@dataclass
class Entry:
    workspace_id: str
    drift: Drift
    risk: RepoStateKind = RepoStateKind.CLEAN
    description: str = ""
    on_disk: bool = False


@dataclass
class Listing:
    entries: list[Entry] = field(default_factory=list)
    extras: list[Entry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def count(self, drift: Drift) -> int:
        return sum(1 for e in self.entries + self.extras if e.drift is drift)


async def _risk(root: str | Path, workspace_id: str, warnings: list[str]) -> RepoStateKind:
    try:
        return (await risk.state(root, workspace_id)).kind
    except GrovesError as e:
        warnings.append(f"workspace {workspace_id} state: {e}")
        return RepoStateKind.UNKNOWN


async def list_workspaces(root: str | Path) -> Listing:
    """Plan, then label each desired workspace applied/missing/drift.

    Workspaces found only on disk are listed separately as ``extra``.
    """
    result = await planner.plan(root)
    listing = Listing(warnings=list(result.warnings))

    drift_by_id: dict[str, Drift] = {}
    for change in result.changes:
        if change.kind is WorkspaceChangeKind.ADD:
            drift_by_id[change.workspace_id] = Drift.MISSING
        elif change.kind is WorkspaceChangeKind.UPDATE:
            drift_by_id[change.workspace_id] = Drift.DRIFT

    for wid in sorted(result.desired.workspaces):
        ws = result.desired.workspaces[wid]
        entry = Entry(workspace_id=wid, drift=drift_by_id.get(wid, Drift.APPLIED),
                      description=ws.description)
        if wid in result.actual.workspaces:
            entry.on_disk = True
            entry.risk = await _risk(root, wid, listing.warnings)
        listing.entries.append(entry)

    for wid in sorted(result.actual.workspaces):
        if wid in result.desired.workspaces:
            continue
        listing.extras.append(Entry(workspace_id=wid, drift=Drift.EXTRA, on_disk=True,
                                    risk=await _risk(root, wid, listing.warnings),
                                    description=result.actual.workspaces[wid].description))
    return listing
