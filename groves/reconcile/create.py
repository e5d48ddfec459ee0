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

"""Direct workspace creation: create, wait for fetches, add worktrees.

Runs as a saga. Once the workspace directory exists, any later failure
removes it again before the error is reported.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from groves.errors import GrovesError
from groves.manifest.model import ManifestFile
from groves.reconcile.prefetch import Prefetcher
from groves.reconcile.saga import Saga
from groves.repos import repospec
from groves.workspaces import metadata
from groves.workspaces.manager import WorkspaceManager
from groves.workspaces.metadata import Metadata

log = logging.getLogger(__name__)


@dataclass
class RepoRequest:
    """One worktree to create: a clonable spec plus where to put it."""
    spec: str
    alias: str = ""
    branch: str = ""
    base_ref: str = ""

    @property
    def repo_key(self) -> str:
        return repospec.normalize(self.spec).repo_key


def requests_from_specs(specs: list[str], branch: str = "") -> list[RepoRequest]:
    """Build requests from repo specs, aliasing each by its repo name."""
    requests: list[RepoRequest] = []
    seen: set[str] = set()
    for spec in specs:
        parsed = repospec.normalize(spec)
        if parsed.repo in seen:
            raise GrovesError(f'duplicate alias "{parsed.repo}"; add repos with distinct names')
        seen.add(parsed.repo)
        requests.append(RepoRequest(spec=spec.strip(), alias=parsed.repo, branch=branch))
    return requests


def requests_from_preset(file: ManifestFile, preset_name: str, branch: str = "") -> list[RepoRequest]:
    preset = file.presets.get(preset_name)
    if preset is None:
        raise GrovesError(f"preset not found: {preset_name}")
    if not preset.repos:
        raise GrovesError(f"preset has no repos: {preset_name}")
    return requests_from_specs(preset.repos, branch)


async def create_workspace(root: str | Path, workspace_id: str, requests: list[RepoRequest],
                           meta: Metadata | None = None, prefetcher: Prefetcher | None = None,
                           step: Callable[[str], None] | None = None) -> Path:
    """Create ``workspace_id`` with one worktree per request.

    Args:
        prefetcher: Shared prefetcher whose fetches may already be running.
            A private one is used when omitted.
        step: Progress callback receiving short step descriptions.

    Raises:
        GrovesError: The creation failed and the workspace was removed again.
        SagaError: The creation failed and removing the workspace failed too.
    """
    if prefetcher is None:
        async with Prefetcher(root) as own:
            return await create_workspace(root, workspace_id, requests, meta, own, step)

    mgr = WorkspaceManager(root)
    specs = [r.spec for r in requests]
    prefetcher.start_all(specs)

    def report(text: str) -> None:
        log.info("create: %s", text)
        if step is not None:
            step(text)

    async with Saga(f"create workspace {workspace_id}") as saga:
        report(f"create workspace {workspace_id}")
        ws_dir = await saga.step(
            mgr.new(workspace_id),
            compensate=lambda: mgr.remove(workspace_id, allow_dirty=True, allow_status_error=True),
        )
        if meta is not None:
            await saga.step(asyncio.to_thread(metadata.save, ws_dir, meta))

        for spec in specs:
            try:
                await saga.step(prefetcher.wait(spec))
            except GrovesError as e:
                raise GrovesError(f"prefetch failed: {e}") from e

        for req in requests:
            report(f"worktree add {req.alias or req.spec}")
            await saga.step(mgr.add_repo(workspace_id, req.spec, alias=req.alias,
                                         branch=req.branch, base_ref=req.base_ref))
    return ws_dir
