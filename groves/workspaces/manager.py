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

"""Workspace lifecycle: create, add/remove worktrees, rename branches, remove."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from groves.errors import GitCommandError, GrovesError, RemovalBlockedError
from groves.git import runner as git
from groves.manifest.validate import validate_workspace_id
from groves.repos import repospec, store
from groves.utils import config as cfg
from groves.workspaces import metadata, scanner
from groves.workspaces import status as ws_status
from groves.workspaces.metadata import Metadata
from groves.workspaces.risk import RepoStateKind, classify
from groves.workspaces.scanner import ScannedRepo

log = logging.getLogger(__name__)

# Fallbacks tried, in order, when a store has no origin/HEAD
_DEFAULT_BRANCH_NAMES = ("main", "master", "develop")

# Kinds that mean local work would be lost by removing a worktree
_UNSAFE_KINDS = (RepoStateKind.DIRTY, RepoStateKind.UNPUSHED, RepoStateKind.DIVERGED)


class WorkspaceManager:
    """Creates, mutates and removes the workspaces under one root directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def workspace_dir(self, workspace_id: str) -> Path:
        return cfg.workspace_dir(self.root, workspace_id)

    async def _check_id(self, workspace_id: str) -> Path:
        problem = await validate_workspace_id(workspace_id)
        if problem:
            raise GrovesError(problem)
        return self.workspace_dir(workspace_id)

    async def _existing(self, workspace_id: str) -> Path:
        ws_dir = await self._check_id(workspace_id)
        if not ws_dir.is_dir():
            raise GrovesError(f"workspace does not exist: {ws_dir}")
        return ws_dir

    # -- Create --------------------------------------------------------------

    async def new(self, workspace_id: str) -> Path:
        """Create an empty workspace directory. Fails if it already exists."""
        ws_dir = await self._check_id(workspace_id)
        if ws_dir.exists():
            raise GrovesError(f"workspace already exists: {ws_dir}")
        ws_dir.mkdir(parents=True)
        log.info("Created workspace %s at %s", workspace_id, ws_dir)
        return ws_dir

    async def create(self, workspace_id: str, meta: Metadata | None = None) -> Path:
        """Create a workspace directory and write its metadata."""
        ws_dir = await self.new(workspace_id)
        if meta is not None:
            metadata.save(ws_dir, meta)
        return ws_dir

    # -- Add -----------------------------------------------------------------

    async def add_repo(self, workspace_id: str, repo: str, alias: str = "",
                       branch: str = "", base_ref: str = "",
                       review: bool = False) -> ScannedRepo:
        """Add a worktree for ``repo`` to an existing workspace.

        Args:
            workspace_id: Target workspace
            repo: Canonical host/owner/repo key or a clonable spec
            alias: Directory name inside the workspace (defaults to the repo name)
            branch: Branch to check out (defaults to the workspace ID)
            base_ref: ``origin/<branch>`` to cut a new branch from
            review: Fetch ``branch`` from origin and always track it

        Returns:
            The added worktree as the scanner would report it

        Raises:
            GrovesError: If the alias or repo is taken, or git fails
        """
        ws_dir = await self._existing(workspace_id)
        branch = branch or workspace_id
        if not await git.is_valid_branch_name(branch):
            raise GrovesError(f"invalid branch name: {branch}")

        spec = repospec.to_spec(repo)
        parsed = repospec.normalize(spec)
        alias = alias or parsed.repo

        existing, _ = await scanner.scan_repos(ws_dir)
        for found in existing:
            if found.alias == alias:
                raise GrovesError(f"alias already exists: {alias}")
            if found.repo_key and found.repo_key == parsed.repo_key:
                raise GrovesError(f"repo already exists: {parsed.repo_key}")

        worktree = ws_dir / alias
        if worktree.exists():
            raise GrovesError(f"worktree already exists: {worktree}")

        store_dir = await store.get(self.root, spec)

        if review:
            await git.run("fetch", "origin",
                          f"+refs/heads/{branch}:refs/remotes/origin/{branch}", cwd=store_dir)
            await self._worktree_add(store_dir, "-b", branch, "--track", str(worktree),
                                     f"origin/{branch}")
            recorded = base_ref
        elif await git.show_ref(store_dir, f"refs/heads/{branch}"):
            await self._worktree_add(store_dir, str(worktree), branch)
            recorded = base_ref
        elif await git.show_ref(store_dir, f"refs/remotes/origin/{branch}"):
            await self._worktree_add(store_dir, "-b", branch, "--track", str(worktree),
                                     f"origin/{branch}")
            recorded = base_ref
        else:
            start = base_ref or await resolve_base_ref(store_dir)
            await self._worktree_add(store_dir, "-b", branch, str(worktree), start)
            recorded = start if start.startswith("origin/") else ""

        if recorded:
            meta = metadata.load(ws_dir)
            meta.base_refs[alias] = recorded
            metadata.save(ws_dir, meta)

        log.info("Added %s to workspace %s as %s (branch: %s)",
                 parsed.repo_key, workspace_id, alias, branch)
        return ScannedRepo(alias=alias, worktree_path=str(worktree), store_path=str(store_dir),
                           branch=branch, remote_url=spec, repo_key=parsed.repo_key)

    @staticmethod
    async def _worktree_add(store_dir: Path, *args: str) -> None:
        log.info("git worktree add %s", " ".join(args))
        await git.run("worktree", "add", *args, cwd=store_dir)

    # -- Rename --------------------------------------------------------------

    async def rename_branch(self, workspace_id: str, alias: str,
                            from_branch: str, to_branch: str) -> None:
        """Rename the branch checked out in one worktree, keeping its commits.

        The worktree must currently be on ``from_branch``; nothing is
        re-cloned and the working tree is untouched.
        """
        ws_dir = await self._existing(workspace_id)
        worktree = ws_dir / alias
        if not worktree.is_dir():
            raise GrovesError(f"repo not found in workspace {workspace_id}: {alias}")
        if not await git.is_valid_branch_name(to_branch):
            raise GrovesError(f"invalid branch name: {to_branch}")

        current = await git.rev_parse(worktree, "--abbrev-ref", "HEAD")
        if current != from_branch:
            raise GrovesError(
                f'cannot rename branch: repo "{alias}" is on "{current}", want "{from_branch}"')
        if await git.show_ref(worktree, f"refs/heads/{to_branch}"):
            raise GrovesError(f"cannot rename branch: {to_branch} already exists")

        oid = await git.show_ref(worktree, f"refs/heads/{from_branch}")
        if not oid:
            raise GrovesError(f"cannot rename branch: {from_branch} has no commits")

        log.info("Renaming branch %s -> %s in %s", from_branch, to_branch, worktree)
        await git.run("update-ref", f"refs/heads/{to_branch}", oid, cwd=worktree)
        await git.run("symbolic-ref", "HEAD", f"refs/heads/{to_branch}", cwd=worktree)
        await git.run("update-ref", "-d", f"refs/heads/{from_branch}", oid, cwd=worktree)

        # Carry upstream tracking over when the old branch had any
        r = await git.run("config", "--get", f"branch.{from_branch}.remote",
                          cwd=worktree, check=False)
        if r.ok:
            await git.run("config", "--rename-section",
                          f"branch.{from_branch}", f"branch.{to_branch}", cwd=worktree)

    # -- Remove --------------------------------------------------------------

    async def _check_removable(self, workspace_id: str, repos: list[ScannedRepo],
                               allow_dirty: bool, allow_status_error: bool) -> None:
        # Every repo is checked before anything is touched.
        for repo in repos:
            st = await ws_status.repo_status(repo.alias, repo.worktree_path, repo.branch)
            kind = classify(st)
            if kind is RepoStateKind.UNKNOWN and not allow_status_error:
                raise RemovalBlockedError(
                    f'check status for "{repo.alias}" in {workspace_id}: {st.error}')
            if kind in _UNSAFE_KINDS and not allow_dirty:
                raise RemovalBlockedError(
                    f'workspace {workspace_id} repo "{repo.alias}" is {kind.value}; '
                    f"refusing to remove")

    async def _remove_worktree(self, repo: ScannedRepo, force: bool) -> None:
        if repo.store_path:
            try:
                await git.worktree_remove(repo.store_path, repo.worktree_path, force=force)
            except GitCommandError as e:
                raise GrovesError(f'remove worktree "{repo.alias}": {e}') from e
        else:
            shutil.rmtree(repo.worktree_path)

    async def remove(self, workspace_id: str, allow_dirty: bool = False,
                     allow_status_error: bool = False) -> None:
        """Remove every worktree of a workspace, then its directory.

        Raises:
            RemovalBlockedError: If a repo holds local work and the matching
                allow flag is not set. Nothing is removed in that case.
        """
        ws_dir = await self._existing(workspace_id)
        repos, _ = await scanner.scan_repos(ws_dir)
        await self._check_removable(workspace_id, repos, allow_dirty, allow_status_error)

        for repo in repos:
            await self._remove_worktree(repo, force=allow_dirty)
        try:
            shutil.rmtree(ws_dir)
        except OSError as e:
            raise GrovesError(f"remove workspace dir: {e}") from e
        log.info("Removed workspace %s", workspace_id)

    async def remove_repo(self, workspace_id: str, alias: str, allow_dirty: bool = False,
                          allow_status_error: bool = False) -> None:
        """Remove a single worktree from a workspace."""
        ws_dir = await self._existing(workspace_id)
        repos, _ = await scanner.scan_repos(ws_dir)
        match = [r for r in repos if r.alias == alias]
        if not match:
            raise GrovesError(f"repo not found in workspace {workspace_id}: {alias}")
        await self._check_removable(workspace_id, match, allow_dirty, allow_status_error)
        await self._remove_worktree(match[0], force=allow_dirty)

        meta = metadata.load(ws_dir)
        if meta.base_refs.pop(alias, None) is not None:
            metadata.save(ws_dir, meta)
        log.info("Removed %s from workspace %s", alias, workspace_id)


async def resolve_base_ref(store_dir: str | Path) -> str:
    """Pick the ref a new branch is cut from when none was given.

    Tries origin/HEAD, the store's own HEAD, local main/master/develop and
    finally origin/main, origin/master, origin/develop.
    """
    remote_head = await git.symbolic_ref(store_dir, "refs/remotes/origin/HEAD")
    if remote_head and remote_head.startswith("refs/remotes/"):
        return remote_head.removeprefix("refs/remotes/")

    local_head = await git.symbolic_ref(store_dir, "HEAD")
    if local_head and await git.show_ref(store_dir, local_head):
        return local_head

    for name in _DEFAULT_BRANCH_NAMES:
        if await git.show_ref(store_dir, f"refs/heads/{name}"):
            return f"refs/heads/{name}"
    for name in _DEFAULT_BRANCH_NAMES:
        if await git.show_ref(store_dir, f"refs/remotes/origin/{name}"):
            return f"origin/{name}"
    raise GrovesError("cannot detect default base ref")
