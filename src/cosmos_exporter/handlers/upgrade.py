#!/usr/bin/env python3
"""
Upgrade plan metrics

Exposes the pending software upgrade, valued with the plan height and labelled
with an estimated activation time extrapolated from recent block times.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from cosmos_exporter.handlers.base import DECODE_ERRORS, FetchHandler
from cosmos_exporter.monitor.scope import FetchScope


# Blocks sampled for the average block time
BLOCK_TIME_WINDOW = 100

# RFC 3339 with up to nanosecond precision, as rendered by the node
_TIMESTAMP = re.compile(r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$')


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a block header timestamp ("2024-05-01T12:00:00.123456789Z")

    Fractional seconds beyond microseconds are truncated.

    Raises:
        ValueError: not an RFC 3339 timestamp
    """
    match = _TIMESTAMP.match(str(value))
    if not match:
        raise ValueError(f"invalid timestamp: {value!r}")

    base, fraction, offset = match.groups()
    text = base
    if fraction:
        text += '.' + fraction[:6].ljust(6, '0')
    text += '+00:00' if offset == 'Z' else offset
    return datetime.fromisoformat(text).astimezone(timezone.utc)


def _header(block: Dict[str, Any]) -> Dict[str, Any]:
    return (block.get('sdk_block') or block['block'])['header']


def estimate_upgrade_time(
    plan_height: int,
    latest_height: int,
    latest_time: datetime,
    past_time: datetime,
    window: int = BLOCK_TIME_WINDOW
) -> datetime:
    """Extrapolate when `plan_height` is reached from the average block time over `window` blocks"""
    average = (latest_time - past_time) / window
    remaining = max(plan_height - latest_height, 0)
    return latest_time + average * remaining


class UpgradeHandler(FetchHandler):
    """
    Pending upgrade plan

    Metrics:
    - cosmos_upgrade_plan{name,info,estimated_time}: Plan height
    """

    def register(self):
        self.namespace.register(
            "cosmos_upgrade_plan", "Upgrade plan info in height", ["name", "info", "estimated_time"]
        )

    def launch(self, scope: FetchScope):
        self.register()
        scope.spawn(self.fetch_upgrade_plan(), "upgrade:plan")

    async def fetch_upgrade_plan(self):
        response = await self.query("upgrade plan", self.client.get_current_plan())
        if response is None:
            return

        plan = response.get('plan')
        if not plan:
            self.log.debug("No upgrade plan scheduled")
            return

        with self.decoding("upgrade plan"):
            name = plan['name']
            info = plan.get('info') or ''
            height = int(plan['height'])

            estimated = await self.estimated_time(height)
            self.namespace.set(
                "cosmos_upgrade_plan", float(height),
                name=name,
                info=info,
                estimated_time=estimated.strftime('%Y-%m-%dT%H:%M:%SZ') if estimated else ''
            )

    async def estimated_time(self, plan_height: int) -> Optional[datetime]:
        """Estimated activation time, or None when block times are unavailable"""
        latest = await self.query("latest block (upgrade estimate)", self.client.get_latest_block())
        if latest is None:
            return None

        try:
            header = _header(latest)
            latest_height = int(header['height'])
            latest_time = parse_timestamp(header['time'])
        except DECODE_ERRORS as e:
            self.log.error(f"Could not decode latest block (upgrade estimate): {e!r}")
            return None

        window = min(BLOCK_TIME_WINDOW, latest_height - 1)
        if window <= 0:
            return latest_time

        past = await self.query(
            f"block {latest_height - window} (upgrade estimate)",
            self.client.get_block(latest_height - window)
        )
        if past is None:
            return None

        try:
            past_time = parse_timestamp(_header(past)['time'])
        except DECODE_ERRORS as e:
            self.log.error(f"Could not decode block {latest_height - window} (upgrade estimate): {e!r}")
            return None

        estimated = estimate_upgrade_time(plan_height, latest_height, latest_time, past_time, window)
        self.log.debug(
            f"Upgrade estimate: plan_height={plan_height}, latest_height={latest_height}, "
            f"eta={max(estimated - latest_time, timedelta(0))}"
        )
        return estimated
