import asyncio
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click

from cli import render
from groves.errors import DestructiveConfirmationRequired, GrovesError, ValidationError
from groves.manifest import model
from groves.manifest.model import ManifestFile, Preset, RepoRef, Workspace, WorkspaceMode
from groves.manifest.validate import (
    validate,
    validate_preset_name,
    validate_preset_section,
    validate_workspace_id,
)
from groves.reconcile.apply import ApplyOptions, apply, collect_specs, import_manifest
from groves.reconcile.create import create_workspace, requests_from_preset, requests_from_specs
from groves.reconcile.gc import find_candidates
from groves.reconcile.listing import list_workspaces
from groves.reconcile.plan import (
    PlanResult,
    WorkspaceChangeKind,
    is_destructive,
    is_destructive_repo_change,
    plan,
)
from groves.reconcile.prefetch import Prefetcher
from groves.repos import repospec
from groves.utils import config as cfg
from groves.workspaces import risk
from groves.workspaces.metadata import Metadata


@dataclass
class Settings:
    root: Path
    no_prompt: bool = False


def _fail(message: str):
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _run(coro):
    """Run one command coroutine, turning groves errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except ValidationError as e:
        render.validation(e.result)
        _fail(str(e))
    except (GrovesError, ValueError) as e:
        _fail(str(e))
    except KeyboardInterrupt:
        _fail("interrupted")


async def _confirm(text: str) -> bool | None:
    """Ask on a worker thread so background fetches keep running.

    Returns None when the prompt was aborted (Ctrl-C / EOF).
    """
    try:
        return await asyncio.to_thread(click.confirm, text, default=False)
    except click.Abort:
        return None


# ---------------------------------------------------------------------------
# Shared plan/apply flow
# ---------------------------------------------------------------------------

@dataclass
class ApplyOutcome:
    had_changes: bool = False
    confirmed: bool = False
    canceled: bool = False


async def _risk_states(root: Path, result: PlanResult) -> dict:
    """State (or status error) of every workspace a plan would damage."""
    states = {}
    for change in result.changes:
        if change.kind is WorkspaceChangeKind.ADD:
            continue
        if change.kind is WorkspaceChangeKind.UPDATE and not any(
                is_destructive_repo_change(r) for r in change.repos):
            continue
        try:
            states[change.workspace_id] = (await risk.state(root, change.workspace_id), "")
        except GrovesError as e:
            states[change.workspace_id] = (None, str(e))
    return states


async def _show_plan(root: Path, result: PlanResult) -> None:
    render.warnings(result.warnings)
    render.section("Plan")
    if not result.changes:
        render.bullet("no changes")
        return
    render.plan(result, await _risk_states(root, result))


async def apply_with_plan(root: Path, result: PlanResult, no_prompt: bool) -> ApplyOutcome:
    """Render ``result``, confirm, apply it and rewrite groves.yaml."""
    await _show_plan(root, result)
    if not result.changes:
        return ApplyOutcome()

    outcome = ApplyOutcome(had_changes=True)
    destructive = is_destructive(result.changes)
    specs = collect_specs(result)

    async with Prefetcher(root) as prefetcher:
        prefetcher.start_all(specs)

        if destructive and no_prompt:
            raise DestructiveConfirmationRequired()
        if not no_prompt:
            answer = await _confirm("Apply destructive changes?" if destructive else "Apply changes?")
            if answer is None:
                outcome.canceled = True
                return outcome
            if not answer:
                return outcome
        outcome.confirmed = True

        render.section("Apply")
        try:
            await prefetcher.wait_all(specs)
        except GrovesError as e:
            render.bullet(f"prefetch failed (continuing): {e}", fg="yellow")

        await apply(root, result, ApplyOptions(
            allow_dirty=destructive,
            allow_status_error=destructive,
            prefetch=False,
            step=render.bullet,
        ))

    _, warnings = await import_manifest(root)
    render.warnings(warnings)

    counts = {kind: 0 for kind in WorkspaceChangeKind}
    for change in result.changes:
        counts[change.kind] += 1
    render.section("Result")
    render.bullet(f"applied: add={counts[WorkspaceChangeKind.ADD]} "
                  f"update={counts[WorkspaceChangeKind.UPDATE]} "
                  f"remove={counts[WorkspaceChangeKind.REMOVE]}", fg="green")
    render.bullet(f"{cfg.MANIFEST_FILE_NAME} rewritten")
    return outcome


async def apply_manifest_mutation(root: Path, updated: ManifestFile, summary: str,
                                  no_apply: bool, no_prompt: bool) -> None:
    """Save ``updated``, then plan and apply it.

    A declined or canceled confirmation puts the previous groves.yaml back.
    """
    path = cfg.manifest_path(root)
    original = path.read_bytes() if path.exists() else None
    model.save(root, updated)

    if no_apply:
        render.section("Result")
        render.bullet(summary)
        render.section("Suggestion")
        render.bullet("groves apply")
        return

    result = await plan(root)
    if not result.changes:
        render.warnings(result.warnings)
        render.section("Result")
        render.bullet(summary)
        render.bullet("no changes")
        return

    outcome = await apply_with_plan(root, result, no_prompt)
    if outcome.confirmed:
        return
    if original is None:
        path.unlink(missing_ok=True)
    else:
        model.write_bytes(path, original)
    render.section("Result")
    reason = "canceled" if outcome.canceled else "declined"
    render.bullet(f"{cfg.MANIFEST_FILE_NAME} rolled back (apply {reason})", fg="yellow")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@click.group()
@click.option("--root", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Root directory (default: $GROVES_ROOT or ~/groves)")
@click.option("--no-prompt", is_flag=True, help="Never ask; refuse destructive changes")
@click.option("-v", "--verbose", count=True, help="More log output (-vv for debug)")
@click.version_option(cfg.VERSION, prog_name="groves")
@click.pass_context
def cli(ctx, root, no_prompt, verbose):
    """groves — Declarative fleets of git worktrees."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, stream=sys.stderr,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ctx.obj = Settings(root=(root or cfg.default_root()).expanduser(), no_prompt=no_prompt)


@cli.command("plan")
@click.pass_obj
def plan_cmd(settings):
    """Show what apply would change."""
    async def run():
        await _show_plan(settings.root, await plan(settings.root))
    _run(run())


@cli.command("apply")
@click.pass_obj
def apply_cmd(settings):
    """Reconcile the filesystem with groves.yaml."""
    async def run():
        result = await plan(settings.root)
        await apply_with_plan(settings.root, result, settings.no_prompt)
    _run(run())


@cli.command("import")
@click.pass_obj
def import_cmd(settings):
    """Rewrite groves.yaml from the workspaces on disk."""
    async def run():
        actual, warnings = await import_manifest(settings.root)
        render.warnings(warnings)
        render.section("Result")
        render.bullet(f"wrote {cfg.manifest_path(settings.root)} "
                      f"({len(actual.workspaces)} workspace(s))")
    _run(run())


@cli.command()
@click.option("--repo", "repos", multiple=True, help="Repo spec (repeatable)")
@click.option("--preset", default="", help="Preset name from groves.yaml")
@click.option("--branch", default="", help="Branch name (default: workspace ID)")
@click.option("--description", default="", help="Workspace description")
@click.argument("workspace_id")
@click.pass_obj
def create(settings, repos, preset, branch, description, workspace_id):
    """Create a workspace directly, then import it into groves.yaml."""
    if bool(repos) == bool(preset):
        _fail("exactly one of --repo or --preset is required")

    async def run():
        if preset:
            requests = requests_from_preset(model.load(settings.root), preset, branch)
            meta = Metadata(description=description, mode=WorkspaceMode.PRESET.value,
                            preset_name=preset)
        else:
            requests = requests_from_specs(list(repos), branch)
            meta = Metadata(description=description, mode=WorkspaceMode.REPO.value)

        render.section("Create")
        await create_workspace(settings.root, workspace_id, requests, meta, step=render.bullet)
        _, warnings = await import_manifest(settings.root)
        render.warnings(warnings)
        render.section("Result")
        render.bullet(f"created workspace {workspace_id}", fg="green")
        render.bullet(f"{cfg.MANIFEST_FILE_NAME} rewritten")
    _run(run())


# -- manifest ---------------------------------------------------------------

@cli.group()
def manifest():
    """Inspect and edit groves.yaml."""


@manifest.command("ls")
@click.pass_obj
def manifest_ls(settings):
    """List desired workspaces with drift and risk."""
    async def run():
        result = await list_workspaces(settings.root)
        render.warnings(result.warnings)
        render.listing(result)
    _run(run())


@manifest.command("add")
@click.option("--repo", default="", help="Repo spec")
@click.option("--preset", default="", help="Preset name from groves.yaml")
@click.option("--branch", default="", help="Branch name (default: workspace ID)")
@click.option("--base-ref", default="", help="Base ref for new branches (origin/<branch>)")
@click.option("--description", default="", help="Workspace description")
@click.option("--no-apply", is_flag=True, help="Only edit groves.yaml")
@click.argument("workspace_id")
@click.pass_obj
def manifest_add(settings, repo, preset, branch, base_ref, description, no_apply, workspace_id):
    """Add a workspace to groves.yaml and apply it."""
    if bool(repo) == bool(preset):
        _fail("exactly one of --repo or --preset is required")

    async def run():
        problem = await validate_workspace_id(workspace_id)
        if problem:
            raise GrovesError(f"invalid workspace id {workspace_id!r}: {problem}")
        desired = model.load(settings.root)
        if workspace_id in desired.workspaces:
            raise GrovesError(f"workspace already exists in {cfg.MANIFEST_FILE_NAME}: {workspace_id}")

        specs = desired.presets[preset].repos if preset in desired.presets else []
        if preset and not specs:
            raise GrovesError(f"preset not found or empty: {preset}")
        refs = []
        for spec in specs or [repo]:
            parsed = repospec.normalize(spec)
            refs.append(RepoRef(alias=parsed.repo, repo_key=parsed.repo_key,
                                branch=branch or workspace_id, base_ref=base_ref))

        updated = desired.model_copy(deep=True)
        updated.workspaces[workspace_id] = Workspace(
            description=description,
            mode=WorkspaceMode.PRESET if preset else WorkspaceMode.REPO,
            preset_name=preset,
            repos=refs,
        )
        await apply_manifest_mutation(settings.root, updated,
                                      f"added workspace {workspace_id} to {cfg.MANIFEST_FILE_NAME}",
                                      no_apply, settings.no_prompt)
    _run(run())


@manifest.command("rm")
@click.option("--no-apply", is_flag=True, help="Only edit groves.yaml")
@click.argument("workspace_ids", nargs=-1, required=True)
@click.pass_obj
def manifest_rm(settings, no_apply, workspace_ids):
    """Remove workspaces from groves.yaml and apply it."""
    async def run():
        desired = model.load(settings.root)
        missing = [wid for wid in workspace_ids if wid not in desired.workspaces]
        if missing:
            raise GrovesError(f"workspace(s) not found in {cfg.MANIFEST_FILE_NAME}: "
                              f"{', '.join(missing)}")
        updated = desired.model_copy(deep=True)
        for wid in workspace_ids:
            updated.workspaces.pop(wid, None)
        await apply_manifest_mutation(settings.root, updated,
                                      f"removed {len(set(workspace_ids))} workspace(s) "
                                      f"from {cfg.MANIFEST_FILE_NAME}",
                                      no_apply, settings.no_prompt)
    _run(run())


@manifest.command("validate")
@click.pass_obj
def manifest_validate(settings):
    """Check groves.yaml and print every issue."""
    result = _run(validate(settings.root))
    if not result.ok:
        render.validation(result)
        sys.exit(1)
    render.section("Result")
    render.bullet("ok", fg="green")


@manifest.command("gc")
@click.option("--no-apply", is_flag=True, help="Only edit groves.yaml")
@click.option("--no-fetch", is_flag=True, help="Use the remote-tracking refs as they are")
@click.option("--no-prompt", "gc_no_prompt", is_flag=True, help="Never ask; refuse destructive changes")
@click.pass_obj
def manifest_gc(settings, no_apply, no_fetch, gc_no_prompt):
    """Drop workspaces whose branches are merged, then apply."""
    async def run():
        desired = model.load(settings.root)
        result = await find_candidates(settings.root, desired, fetch=not no_fetch)
        if not result.candidates:
            render.warnings(result.warnings, title="Info")
            render.section("Result")
            render.bullet("no candidates")
            return

        render.gc_info(result)
        updated = desired.model_copy(deep=True)
        for wid in result.candidate_ids:
            updated.workspaces.pop(wid, None)
        await apply_manifest_mutation(
            settings.root, updated,
            f"updated {cfg.MANIFEST_FILE_NAME} (removed {len(result.candidates)} workspace(s))",
            no_apply, settings.no_prompt or gc_no_prompt)
    _run(run())


# -- manifest preset --------------------------------------------------------

@manifest.group("preset")
def manifest_preset():
    """Edit the presets in groves.yaml."""


@manifest_preset.command("ls")
@click.pass_obj
def preset_ls(settings):
    """List presets and their repos."""
    async def run():
        desired = model.load(settings.root)
        if desired.presets:
            render.section("Info")
            render.bullet(f"presets: {len(desired.presets)}")
        render.section("Result")
        if not desired.presets:
            render.bullet("no presets found")
            return
        for name in sorted(desired.presets):
            render.bullet(name)
            render.tree(desired.presets[name].repos)
    _run(run())


@manifest_preset.command("add")
@click.option("--repo", "repos", multiple=True, required=True, help="Repo spec (repeatable)")
@click.argument("name")
@click.pass_obj
def preset_add(settings, repos, name):
    """Add a preset to groves.yaml."""
    async def run():
        problem = validate_preset_name(name)
        if problem:
            raise GrovesError(problem)
        desired = model.load(settings.root)
        if name in desired.presets:
            raise GrovesError(f"preset already exists: {name}")
        specs = list(dict.fromkeys(r.strip() for r in repos if r.strip()))
        if not specs:
            raise GrovesError("at least one repo is required")
        for spec in specs:
            repospec.normalize(spec)

        desired.presets[name] = Preset(repos=specs)
        model.save(settings.root, desired)
        render.section("Inputs")
        render.bullet(f"preset name: {name}")
        render.tree(specs)
        render.section("Result")
        render.bullet(f"updated {cfg.MANIFEST_FILE_NAME}")
    _run(run())


@manifest_preset.command("rm")
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def preset_rm(settings, names):
    """Remove presets from groves.yaml. Presets still used by a workspace are kept."""
    async def run():
        desired = model.load(settings.root)
        unique = list(dict.fromkeys(names))
        for name in unique:
            if name not in desired.presets:
                raise GrovesError(f"preset not found: {name}")
            users = sorted(wid for wid, ws in desired.workspaces.items() if ws.preset_name == name)
            if users:
                raise GrovesError(f"preset {name} is used by workspace(s): {', '.join(users)}")
        for name in unique:
            del desired.presets[name]

        model.save(settings.root, desired)
        render.section("Inputs")
        for name in unique:
            render.bullet(f"preset: {name}")
        render.section("Result")
        render.bullet(f"updated {cfg.MANIFEST_FILE_NAME} (removed {len(unique)} preset(s))")
    _run(run())


@manifest_preset.command("validate")
@click.pass_obj
def preset_validate(settings):
    """Check the presets in groves.yaml."""
    result = validate_preset_section(settings.root)
    if not result.ok:
        render.validation(result)
        sys.exit(1)
    render.section("Result")
    render.bullet("no issues found", fg="green")
