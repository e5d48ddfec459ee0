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

"""Scan workspaces on disk into a manifest-shaped snapshot of actual state.

Problems with a single workspace or worktree are returned as warnings so
that one broken directory never hides the rest of the fleet.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from groves.errors import GrovesError
from groves.git import runner as git
from groves.manifest import model
from groves.manifest.model import ManifestFile, RepoRef, Workspace, WorkspaceMode
from groves.repos import repospec
from groves.utils import config as cfg
from groves.workspaces import metadata

log = logging.getLogger(__name__)


@dataclass
class ScannedRepo:
    """One worktree found inside a workspace directory."""
    alias: str                  # Directory name inside the workspace
    worktree_path: str
    store_path: str = ""        # Common git dir, empty for a standalone clone
    branch: str = ""            # Empty when HEAD is detached
    remote_url: str = ""
    repo_key: str = ""


def _resolve(base: Path, value: str) -> Path:
    p = Path(value)
    if not p.is_absolute():
        p = base / p
    return p.resolve()


async def _inspect(path: Path) -> tuple[ScannedRepo | None, str | None]:
    # Only worktrees and clones carry a .git entry; without it rev-parse
    # would report an enclosing repository instead.
    if not (path / ".git").exists():
        return None, f"skip {path}: not a git repo"
    r = await git.run("rev-parse", "--git-dir", "--git-common-dir", cwd=path, check=False)
    lines = r.stdout.splitlines()
    if not r.ok or len(lines) < 2:
        return None, f"skip {path}: not a git repo"

    git_dir = _resolve(path, lines[0].strip())
    common_dir = _resolve(path, lines[1].strip())
    repo = ScannedRepo(alias=path.name, worktree_path=str(path))
    if git_dir != common_dir:
        repo.store_path = str(common_dir)

    head = await git.symbolic_ref(path, "HEAD")
    if head:
        repo.branch = head.removeprefix("refs/heads/")

    r = await git.run("remote", "get-url", "origin", cwd=path, check=False)
    if not r.ok:
        detail = r.stderr.strip() or f"exit {r.returncode}"
        return repo, f"origin remote missing: {detail}"
    url = r.stdout.strip()
    if not url:
        return repo, "origin remote is empty"
    repo.remote_url = url
    try:
        repo.repo_key = repospec.normalize(url).repo_key
    except ValueError as e:
        return repo, f"origin remote invalid: {e}"
    return repo, None


async def scan_repos(ws_dir: str | Path) -> tuple[list[ScannedRepo], list[str]]:
    """List the worktrees of one workspace, sorted by alias."""
    ws_dir = Path(ws_dir)
    try:
        entries = sorted(ws_dir.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise GrovesError(f"read workspace {ws_dir}: {e}") from e

    repos: list[ScannedRepo] = []
    warnings: list[str] = []
    for entry in entries:
        if not entry.is_dir() or entry.name == cfg.METADATA_DIR_NAME:
            continue
        repo, warning = await _inspect(entry)
        if warning:
            warnings.append(warning)
        if repo is not None:
            repos.append(repo)
    return repos, warnings


def list_workspace_ids(root: str | Path) -> list[str]:
    """Directory names under the workspaces root, sorted. Missing root is empty."""
    ws_root = cfg.workspaces_root(root)
    if not ws_root.is_dir():
        return []
    return sorted(p.name for p in ws_root.iterdir() if p.is_dir())


# ---------------------------------------------------------------------------
# Actual state
# ---------------------------------------------------------------------------

async def build_actual(root: str | Path) -> tuple[ManifestFile, list[str]]:
    """Reconstruct a ManifestFile from the filesystem.

    Presets are carried over from the existing manifest (they have no
    on-disk counterpart) so that an import never drops them.
    """
    warnings: list[str] = []
    actual = ManifestFile()

    try:
        actual.presets = model.load(root).presets
    except GrovesError as e:
        warnings.append(f"presets not carried over: {e}")

    for wid in list_workspace_ids(root):
        ws_dir = cfg.workspace_dir(root, wid)
        ws = Workspace()

        try:
            meta = metadata.load(ws_dir)
        except GrovesError as e:
            warnings.append(f"workspace {wid} metadata: {e}")
            meta = metadata.Metadata()
        ws.description = meta.description
        ws.preset_name = meta.preset_name
        ws.source_url = meta.source_url
        try:
            ws.mode = WorkspaceMode(meta.mode) if meta.mode else None
        except ValueError:
            warnings.append(f"workspace {wid} metadata has unknown mode {meta.mode!r}; defaulting to repo")
        if ws.mode is None:
            if meta.mode == "":
                warnings.append(f"workspace {wid} metadata missing mode; defaulting to repo")
            ws.mode = WorkspaceMode.REPO

        try:
            repos, repo_warnings = await scan_repos(ws_dir)
        except GrovesError as e:
            warnings.append(f"workspace {wid} repos: {e}")
            actual.workspaces[wid] = ws
            continue
        warnings.extend(f"workspace {wid} repo: {w}" for w in repo_warnings)

        for repo in repos:
            ws.repos.append(RepoRef(
                alias=repo.alias,
                repo_key=repo.repo_key,
                branch=repo.branch,
                base_ref=meta.base_refs.get(repo.alias, ""),
            ))
        actual.workspaces[wid] = ws

    log.debug("Scanned %d workspaces under %s", len(actual.workspaces), root)
    return actual, warnings
