"""Shared fixtures: an in-memory LCD endpoint and request contexts bound to it."""

import dataclasses
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest

from cosmos_exporter.clients.addresses import BechPrefixes, encode
from cosmos_exporter.clients.lcd_client import CosmosLCDClient
from cosmos_exporter.monitor.config import ExporterConfig
from cosmos_exporter.monitor.context import ScrapeContext


PREFIXES = BechPrefixes.from_global("cosmos")

# Valid bech32 addresses built from fixed payloads
VALOPER = encode(PREFIXES.validator, bytes(range(20)))
VALOPER_2 = encode(PREFIXES.validator, bytes(range(20, 40)))
ACCOUNT = encode(PREFIXES.account, bytes(range(40, 60)))
OPERATOR_ACCOUNT = encode(PREFIXES.account, bytes(range(20)))

Route = Union[Dict[str, Any], httpx.Response, Callable[[httpx.Request], httpx.Response]]


class FakeLCD:
    """
    Path-routed LCD stand-in for httpx.MockTransport

    Routes map a URL path to a JSON body, a ready httpx.Response, or a callable
    taking the request. Unknown paths answer 501 like an unimplemented gateway.
    """

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(501, json={"code": 12, "message": "Not Implemented"})
        if isinstance(route, httpx.Response):
            return route
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]

    def client(self, **kwargs) -> CosmosLCDClient:
        return CosmosLCDClient(url="http://lcd.test", transport=httpx.MockTransport(self.handler), **kwargs)


def make_config(**overrides) -> ExporterConfig:
    base = ExporterConfig(
        chain_id="test-1",
        denom="atom",
        base_denom="uatom",
        denom_coefficient=1_000_000.0,
        prefixes=PREFIXES
    )
    return dataclasses.replace(base, **overrides)


@pytest.fixture
def lcd() -> FakeLCD:
    return FakeLCD()


@pytest.fixture
def make_ctx(lcd):
    """Build a ScrapeContext against the fake LCD, with config overrides"""
    def factory(**overrides) -> ScrapeContext:
        client = lcd.client(pagination_limit=overrides.pop('pagination_limit', 1000))
        return ScrapeContext.create(make_config(**overrides), client)

    return factory
