#!/usr/bin/env python3
"""
Fetch Scope

Structured concurrency for fetch tasks. A scope is an async context manager around
asyncio.TaskGroup: every task spawned into it, including tasks spawned by those
tasks while the scope is still open, is joined before the `async with` block
exits. Each child is guarded so its failure is logged and never cancels siblings.

Scopes nest. An inner scope acts as a barrier for a producer sub-group; consumer
tasks are spawned into the outer scope only after the inner one has drained.
"""

import asyncio
import logging
import time
from typing import Awaitable, List, Optional


logger = logging.getLogger(__name__)


class FetchScope:
    """
    Task group whose children never propagate failures

    Usage:
        async with FetchScope(ctx.log, "request") as outer:
            async with FetchScope(ctx.log, "active-proposals") as inner:
                inner.spawn(resolve_proposals(), "proposals")
            for proposal_id in resolved:
                outer.spawn(fetch_vote(proposal_id), f"vote:{proposal_id}")
    """

    def __init__(self, log: Optional[logging.LoggerAdapter] = None, name: str = "scope"):
        self.log = log or logger
        self.name = name
        self.launched: List[str] = []
        self.failed: List[str] = []
        self._group: Optional[asyncio.TaskGroup] = None
        self._started: Optional[float] = None
        self._closed = False

    async def __aenter__(self) -> 'FetchScope':
        self._group = asyncio.TaskGroup()
        await self._group.__aenter__()
        self._started = time.time()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            return await self._group.__aexit__(exc_type, exc_val, exc_tb)
        finally:
            self._closed = True
            self.log.debug(
                f"Scope '{self.name}' joined {len(self.launched)} tasks "
                f"({len(self.failed)} failed) in {time.time() - self._started:.3f}s"
            )

    def spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task:
        """
        Launch a fetch task inside this scope

        Args:
            coro: Coroutine performing the fetch
            name: Task name used in logs

        Raises:
            RuntimeError: the scope is not open
        """
        if self._group is None or self._closed:
            coro.close()
            raise RuntimeError(f"scope '{self.name}' is not open")

        self.launched.append(name)
        return self._group.create_task(self._guard(coro, name), name=name)

    async def _guard(self, coro: Awaitable[None], name: str):
        try:
            await coro
        except Exception as e:
            self.failed.append(name)
            self.log.error(f"Fetch task '{name}' failed: {e}", exc_info=self.log.isEnabledFor(logging.DEBUG))

    @property
    def task_count(self) -> int:
        return len(self.launched)

    def __repr__(self) -> str:
        return f"FetchScope(name={self.name}, launched={len(self.launched)}, failed={len(self.failed)})"
