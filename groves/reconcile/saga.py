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

"""Ordered forward steps with reverse-order compensations.

Usage::

    async with Saga("create workspace PROJ-1") as saga:
        await saga.step(mgr.create(wid), compensate=lambda: mgr.remove(wid, ...))
        await saga.step(prefetcher.wait(spec))
        await saga.step(mgr.add_repo(wid, key))

If any step raises, or the task is cancelled, the compensations registered
so far run newest first and the original exception propagates. A failing
compensation turns the failure into a :class:`SagaError` carrying both
errors.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from groves.errors import SagaError

log = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[Any]]


class Saga:

    def __init__(self, name: str = ""):
        self.name = name
        self._compensations: list[Compensation] = []

    async def __aenter__(self) -> Saga:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if isinstance(exc, asyncio.CancelledError):
            # Shielded so a repeated cancel cannot interrupt the compensations.
            await asyncio.shield(asyncio.ensure_future(self.rollback(exc)))
        elif isinstance(exc, Exception):
            await self.rollback(exc)
        return False

    async def step(self, action: Awaitable[Any], compensate: Compensation | None = None) -> Any:
        """Await ``action``; on success register ``compensate`` for rollback."""
        result = await action
        if compensate is not None:
            self._compensations.append(compensate)
        return result

    async def rollback(self, cause: BaseException) -> None:
        """Run compensations newest first. Raises SagaError if one fails."""
        compensations = list(reversed(self._compensations))
        self._compensations.clear()
        if compensations:
            log.info("Rolling back %s: %s", self.name or "saga", cause)
        for compensate in compensations:
            try:
                await compensate()
            except Exception as e:
                log.error("Rollback of %s failed: %s", self.name or "saga", e)
                raise SagaError(cause, e) from cause
