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

"""Background fetches of existing repo stores.

Fetches start early (before a confirmation prompt, say) and are joined
right before worktrees are touched. At most one fetch per repo key is in
flight; a Prefetcher lives for one command and cancels whatever is still
running when its ``async with`` block exits.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from groves.errors import GrovesError
from groves.repos import repospec, store
from groves.utils import config as cfg

log = logging.getLogger(__name__)


class Prefetcher:
    """One ``asyncio.Task`` per repo key, shared by every waiter."""

    def __init__(self, root: str | Path, timeout: float | None = None):
        self.root = Path(root)
        self.timeout = cfg.PREFETCH_TIMEOUT if timeout is None else timeout
        self._tasks: dict[str, asyncio.Task] = {}

    async def __aenter__(self) -> Prefetcher:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def start(self, spec: str) -> bool:
        """Start fetching the store for ``spec`` in the background.

        Returns False when the store does not exist yet (there is nothing
        to fetch; it will be cloned on first use). Raises ValueError for an
        unparseable spec.
        """
        key = repospec.normalize(spec).repo_key
        # No await between the lookup and the registration below.
        if key in self._tasks:
            return True
        if not store.exists(self.root, spec):
            return False
        self._tasks[key] = asyncio.create_task(self._fetch(key, spec), name=f"prefetch:{key}")
        log.debug("Prefetch started for %s", key)
        return True

    async def _fetch(self, key: str, spec: str) -> None:
        await store.prefetch(self.root, spec, timeout=self.timeout)
        log.debug("Prefetch finished for %s", key)

    async def wait(self, spec: str) -> None:
        """Block until the fetch for ``spec`` finishes, re-raising its error.

        A spec that was never started returns immediately. Cancelling the
        waiter does not cancel the shared fetch.
        """
        key = repospec.normalize(spec).repo_key
        task = self._tasks.get(key)
        if task is None:
            return
        await asyncio.shield(task)

    def start_all(self, specs) -> list[str]:
        """Start every spec; returns the ones that have a fetch running."""
        return [s for s in specs if self.start(s)]

    async def wait_all(self, specs) -> None:
        """Join every fetch, then re-raise the first failure."""
        first: GrovesError | None = None
        for spec in specs:
            try:
                await self.wait(spec)
            except GrovesError as e:
                first = first or e
        if first is not None:
            raise first

    async def close(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            if not task.done():
                task.cancel()
        # Collect results so failed fetches nobody waited on are not reported
        # as unretrieved exceptions.
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
