#!/usr/bin/env python3
"""
Fetch handler base

Shared plumbing for fetch task families: timed upstream queries that log and
swallow transport failures, and a guard for decode failures while reading a
response. A failed task leaves its metrics unset for this request.
"""

import time
from contextlib import contextmanager
from typing import Any, Awaitable, Dict, Optional

from cosmos_exporter.clients.lcd_client import QueryError
from cosmos_exporter.monitor.context import ScrapeContext


DECODE_ERRORS = (KeyError, TypeError, ValueError)


class FetchHandler:
    """Base class for handlers that fill a namespace from LCD queries"""

    def __init__(self, ctx: ScrapeContext):
        self.ctx = ctx
        self.client = ctx.client
        self.namespace = ctx.namespace
        self.config = ctx.config
        self.log = ctx.log

    async def query(self, what: str, call: Awaitable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """
        Await one upstream call

        Args:
            what: Human readable query name for logs
            call: Client coroutine

        Returns:
            Response payload, or None if the query failed (already logged)
        """
        self.log.debug(f"Started querying {what}")
        query_start = time.time()

        try:
            response = await call
        except QueryError as e:
            self.log.error(f"Could not get {what}: {e}")
            return None

        self.log.debug(f"Finished querying {what} (request-time={time.time() - query_start:.3f}s)")
        return response

    @contextmanager
    def decoding(self, what: str):
        """Log and drop a response whose shape is not what we expected"""
        try:
            yield
        except DECODE_ERRORS as e:
            self.log.error(f"Could not decode {what}: {e!r}")
