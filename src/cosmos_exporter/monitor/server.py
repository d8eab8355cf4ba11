#!/usr/bin/env python3
"""
Metrics HTTP server

aiohttp application exposing one route per fetch family. Each request gets its
own ScrapeContext (request id, fresh metric namespace), runs the matching
Aggregator method and renders the namespace in the Prometheus text format.
"""

import logging
import time
from typing import Awaitable, Callable, Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST

from cosmos_exporter.clients.lcd_client import CosmosLCDClient
from cosmos_exporter.handlers.oracle import NETWORK_PROBES
from cosmos_exporter.monitor.aggregator import Aggregator
from cosmos_exporter.monitor.config import ExporterConfig
from cosmos_exporter.monitor.context import ScrapeContext


logger = logging.getLogger(__name__)


Collect = Callable[[web.Request, ScrapeContext], Awaitable[object]]


def _metrics_response(body: bytes) -> web.Response:
    # CONTENT_TYPE_LATEST carries a charset, which web.Response(content_type=...) rejects
    return web.Response(body=body, headers={'Content-Type': CONTENT_TYPE_LATEST})


def metrics_route(collect: Collect) -> Callable[[web.Request], Awaitable[web.Response]]:
    """
    Wrap an aggregator call into a request handler

    The handler builds the request context, awaits the collection (which never
    raises) and logs the request with its duration.
    """
    async def handler(request: web.Request) -> web.Response:
        request_start = time.time()
        ctx = ScrapeContext.create(request.app['config'], request.app['lcd_client'])

        await collect(request, ctx)
        body = ctx.namespace.render()

        ctx.log.info(
            f"Request processed: method={request.method}, endpoint={request.path}, "
            f"request-time={time.time() - request_start:.3f}s"
        )
        return _metrics_response(body)

    return handler


def _address(request: web.Request) -> str:
    return request.query.get('address') or request.query.get('validator') or ''


async def health_check_handler(request: web.Request) -> web.Response:
    """
    HTTP health check endpoint

    Returns:
        200 OK if the LCD endpoint answers
        503 Service Unavailable otherwise
    """
    client: CosmosLCDClient = request.app['lcd_client']

    if await client.health_check():
        return web.Response(
            text="OK\nLCD: reachable\nStatus: healthy\n",
            status=200,
            content_type='text/plain'
        )
    return web.Response(
        text="UNHEALTHY\nLCD: unreachable\nStatus: not healthy\n",
        status=503,
        content_type='text/plain'
    )


def create_app(config: ExporterConfig, client: CosmosLCDClient, aggregator: Optional[Aggregator] = None) -> web.Application:
    """
    Build the exporter application

    Args:
        config: Resolved configuration (chain id and denom already set)
        client: Started LCD client shared by every request
        aggregator: Aggregator instance (default: a new one)

    Returns:
        web.Application ready for an AppRunner or the aiohttp test client
    """
    aggregator = aggregator or Aggregator()

    app = web.Application()
    app['config'] = config
    app['lcd_client'] = client

    router = app.router
    if config.single:
        router.add_get('/metrics', metrics_route(lambda r, ctx: aggregator.collect_single(ctx)))

    router.add_get('/metrics/general', metrics_route(lambda r, ctx: aggregator.collect_general(ctx)))
    router.add_get(
        '/metrics/validator', metrics_route(lambda r, ctx: aggregator.collect_validator(ctx, _address(r)))
    )
    router.add_get('/metrics/validators', metrics_route(lambda r, ctx: aggregator.collect_validators(ctx)))
    router.add_get('/metrics/wallet', metrics_route(lambda r, ctx: aggregator.collect_wallet(ctx, _address(r))))
    router.add_get(
        '/metrics/delegator', metrics_route(lambda r, ctx: aggregator.collect_delegator(ctx, _address(r)))
    )
    router.add_get('/metrics/params', metrics_route(lambda r, ctx: aggregator.collect_params(ctx)))
    router.add_get('/metrics/proposals', metrics_route(lambda r, ctx: aggregator.collect_proposals(ctx)))
    router.add_get('/metrics/upgrade', metrics_route(lambda r, ctx: aggregator.collect_upgrade(ctx)))
    router.add_get('/metrics/oracle', metrics_route(lambda r, ctx: aggregator.collect_oracle(ctx, _address(r))))

    networks = '|'.join(sorted(NETWORK_PROBES))
    router.add_get(
        f'/metrics/{{network:(?:{networks})}}',
        metrics_route(lambda r, ctx: aggregator.collect_oracle(ctx, _address(r), r.match_info['network']))
    )

    router.add_get('/health', health_check_handler)
    return app


async def start_metrics_server(config: ExporterConfig, client: CosmosLCDClient) -> web.AppRunner:
    """
    Start the metrics server on the configured host and port

    Returns:
        web.AppRunner instance (call cleanup() to stop)
    """
    runner = web.AppRunner(create_app(config, client))
    await runner.setup()
    site = web.TCPSite(runner, config.listen_host, config.listen_port)
    await site.start()

    logger.info(f"✓ Metrics server started on http://{config.listen_host}:{config.listen_port}/metrics")
    return runner
