#!/usr/bin/env python3
"""
Per-request scrape context

Bundles everything a fetch task needs: the immutable configuration, the shared
LCD client, the request's metric namespace and a logger carrying the request id.
"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

from cosmos_exporter.clients.lcd_client import CosmosLCDClient
from cosmos_exporter.exporters.namespace import MetricNamespace
from cosmos_exporter.monitor.config import ExporterConfig


logger = logging.getLogger(__name__)


class RequestLogger(logging.LoggerAdapter):
    """Prefixes every message with the request id"""

    def process(self, msg, kwargs):
        return f"[request-id={self.extra['request_id']}] {msg}", kwargs


def to_float(amount: Any) -> float:
    """
    Decode an arbitrary-precision amount string ("123456789", "0.05") to float

    Raises:
        ValueError: amount is missing or not a decimal number
    """
    if amount is None:
        raise ValueError("missing amount")
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"invalid amount: {amount!r}")
    return float(value)


@dataclass
class ScrapeContext:
    """State for a single scrape request"""

    config: ExporterConfig
    client: CosmosLCDClient
    namespace: MetricNamespace
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    log: Optional[RequestLogger] = None

    def __post_init__(self):
        if self.log is None:
            self.log = RequestLogger(logging.getLogger('cosmos_exporter.request'), {'request_id': self.request_id})

    @classmethod
    def create(cls, config: ExporterConfig, client: CosmosLCDClient) -> 'ScrapeContext':
        """Start a request with a fresh, empty namespace"""
        return cls(config=config, client=client, namespace=MetricNamespace(config.const_labels))

    def convert(self, coin: Dict[str, Any]) -> Tuple[str, float]:
        """
        Convert a {denom, amount} coin to display units

        Coins in the chain's base denom are divided by the denom coefficient and
        relabelled with the display denom. Other denoms are returned unchanged.
        When no base denom is known every coin is taken to be in the base denom,
        so the converted value always carries the display denom label.
        """
        denom = coin['denom']
        value = to_float(coin['amount'])
        base = self.config.base_denom
        if not base or denom == base:
            return self.config.denom or denom, value / self.config.denom_coefficient
        return denom, value

    def scale(self, amount: Any) -> float:
        """Convert a bare base-denom amount (pool tokens, validator tokens)"""
        return to_float(amount) / self.config.denom_coefficient

    @property
    def display_denom(self) -> str:
        return self.config.denom or self.config.base_denom
