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

"""Plain-text rendering of plans, warnings, listings and GC results."""

from __future__ import annotations

import click

from groves.manifest.validate import ValidationResult
from groves.reconcile.gc import GcResult
from groves.reconcile.listing import Drift, Listing
from groves.reconcile.plan import (
    PlanResult,
    RepoChange,
    RepoChangeKind,
    WorkspaceChangeKind,
    is_destructive_repo_change,
)
from groves.workspaces.risk import RepoState, RepoStateKind, WorkspaceState

_RISK_COLORS = {
    RepoStateKind.CLEAN: "green",
    RepoStateKind.UNPUSHED: "yellow",
    RepoStateKind.DIVERGED: "yellow",
    RepoStateKind.DIRTY: "red",
    RepoStateKind.UNKNOWN: "red",
}


def section(title: str) -> None:
    click.echo()
    click.echo(click.style(title, bold=True))


def bullet(text: str, fg: str | None = None) -> None:
    click.echo("  " + click.style(text, fg=fg) if fg else "  " + text)


def tree(lines: list[str], indent: str = "    ") -> None:
    for i, line in enumerate(lines):
        prefix = "└─ " if i == len(lines) - 1 else "├─ "
        click.echo(indent + prefix + line)


def warnings(items: list[str], title: str = "Warnings") -> None:
    if not items:
        return
    section(title)
    for w in items:
        bullet(w, fg="yellow")


def validation(result: ValidationResult) -> None:
    section("Issues")
    for issue in result.issues:
        bullet(str(issue), fg="red")
    click.echo()
    click.echo(f"{len(result.issues)} issue(s) in {result.path}")


# ---------------------------------------------------------------------------
# Risk
# ---------------------------------------------------------------------------

def risk_summary(repo: RepoState) -> str:
    """``alias: kind (detail)`` for one repo."""
    if repo.error:
        return f"{repo.alias}: unknown (status error: {repo.error})"
    detail = ""
    if repo.kind is RepoStateKind.DIRTY:
        for name in ("staged", "unstaged", "untracked", "unmerged"):
            if getattr(repo, name):
                detail = f"({name}={getattr(repo, name)})"
                break
    elif repo.kind is RepoStateKind.DIVERGED:
        detail = ("(upstream missing)" if not repo.upstream
                  else f"(ahead={repo.ahead} behind={repo.behind})")
    elif repo.kind is RepoStateKind.UNPUSHED:
        detail = f"(ahead={repo.ahead})"
    text = f"{repo.alias}: {repo.kind.value}"
    if repo.detached:
        text += " [detached]"
    return f"{text} {detail}".rstrip()


def risk_details(state: WorkspaceState | None, error: str = "") -> None:
    if error:
        tree([click.style(f"status error: {error}", fg="red")])
        return
    if state is None:
        return
    lines = []
    for repo in state.repos:
        lines.append(click.style(risk_summary(repo), fg=_RISK_COLORS[repo.kind]))
        lines.extend(f"   {f}" for f in repo.changed_files[:10])
    lines.extend(click.style(f"warning: {w}", fg="yellow") for w in state.warnings)
    tree(lines)


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------

def repo_change_line(change: RepoChange) -> str:
    if change.kind is RepoChangeKind.ADD:
        return f"+ add repo {change.alias} ({change.to_repo}) branch {change.to_branch}"
    if change.kind is RepoChangeKind.REMOVE:
        return f"- remove repo {change.alias} ({change.from_repo}) branch {change.from_branch}"
    if change.from_repo == change.to_repo:
        return f"~ update repo {change.alias}: branch {change.from_branch} -> {change.to_branch}"
    if change.from_branch == change.to_branch:
        return f"~ update repo {change.alias}: repo {change.from_repo} -> {change.to_repo}"
    return (f"~ update repo {change.alias}: {change.from_repo} ({change.from_branch}) "
            f"-> {change.to_repo} ({change.to_branch})")


def plan(result: PlanResult, states: dict[str, tuple[WorkspaceState | None, str]]) -> None:
    """Render every change. ``states`` maps workspace IDs to (state, error)
    for removals and destructive updates."""
    for change in result.changes:
        wid = change.workspace_id
        if change.kind is WorkspaceChangeKind.ADD:
            desc = result.desired.workspaces[wid].description
            bullet(f"+ add workspace {wid}" + (f" - {desc}" if desc else ""), fg="green")
            tree([f"{r.alias} (branch: {r.to_branch})  repo: {r.to_repo}" for r in change.repos])
        elif change.kind is WorkspaceChangeKind.REMOVE:
            ws = result.actual.workspaces.get(wid)
            desc = ws.description if ws else ""
            bullet(f"- remove workspace {wid}" + (f" - {desc}" if desc else ""), fg="red")
            risk_details(*states.get(wid, (None, "")))
        else:
            bullet(f"~ update workspace {wid}", fg="cyan")
            tree([repo_change_line(r) for r in change.repos])
            if any(is_destructive_repo_change(r) for r in change.repos):
                risk_details(*states.get(wid, (None, "")))


# ---------------------------------------------------------------------------
# Listing / GC
# ---------------------------------------------------------------------------

def listing(result: Listing) -> None:
    section("Workspaces")
    if not result.entries and not result.extras:
        bullet("(none)")
    drift_colors = {Drift.APPLIED: "green", Drift.MISSING: "yellow",
                    Drift.DRIFT: "yellow", Drift.EXTRA: "red"}
    for e in result.entries + result.extras:
        line = f"{e.workspace_id:<24} " + click.style(f"{e.drift.value:<8}", fg=drift_colors[e.drift])
        if e.on_disk:
            line += f"  risk: {click.style(e.risk.value, fg=_RISK_COLORS[e.risk])}"
        if e.description:
            line += f"  - {e.description}"
        bullet(line)
    section("Summary")
    bullet(", ".join(f"{d.value}={result.count(d)}" for d in Drift))


def gc_info(result: GcResult) -> None:
    section("Info")
    for c in result.candidates:
        bullet(f"candidate {c.workspace_id} ({c.reason})")
        tree(c.targets)
    bullet(f"scanned: {result.scanned}, skipped: {result.skipped}")
    for w in result.warnings:
        bullet(w, fg="yellow")
