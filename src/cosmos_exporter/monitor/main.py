#!/usr/bin/env python3
"""
Cosmos Exporter - Main

Loads configuration, resolves the chain id and display denom from the node,
then serves Prometheus metrics over HTTP until SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List

from cosmos_exporter.clients.lcd_client import CosmosLCDClient, QueryError
from cosmos_exporter.monitor.config import ConfigError, ExporterConfig
from cosmos_exporter.monitor.server import start_metrics_server


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


# Global shutdown flag
shutdown_event = asyncio.Event()


def signal_handler(signum, frame):
    """Handle shutdown signals (SIGINT, SIGTERM)"""
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_event.set()


class StartupError(Exception):
    """Chain id or denom could not be resolved"""


async def resolve_chain_id(client: CosmosLCDClient, config: ExporterConfig) -> ExporterConfig:
    """Read the network name from node info; it becomes the chain_id const label"""
    try:
        response = await client.get_node_info()
        chain_id = response['default_node_info']['network']
    except (QueryError, KeyError, TypeError) as e:
        raise StartupError(f"Could not query chain id: {e}") from e

    logger.info(f"Got chain id: {chain_id}")
    return config.with_chain_id(chain_id)


def _base_for(metadatas: List[Dict[str, Any]], denom: str) -> str:
    """Base denom of the metadata entry that lists `denom` as one of its units"""
    for metadata in metadatas:
        units = {unit.get('denom') for unit in metadata.get('denom_units') or []}
        if denom in units or metadata.get('display') == denom:
            return metadata.get('base', '')
    return ''


async def resolve_denom(client: CosmosLCDClient, config: ExporterConfig) -> ExporterConfig:
    """
    Resolve the display denom and its coefficient

    A denom given together with a coefficient or exponent keeps that
    coefficient; only its base denom is looked up (BASE_DENOM skips the lookup).
    Otherwise the first bank denom metadata entry supplies the base denom, the
    display denom (unless DENOM is set) and the exponent of the display unit.

    Raises:
        StartupError: metadata is missing or does not list the display denom
    """
    if config.denom_provided:
        logger.info(f"Using provided denom: denom={config.denom}, coefficient={config.denom_coefficient}")
        if config.base_denom:
            return config

        try:
            response = await client.get_denoms_metadata()
            base_denom = _base_for(response.get('metadatas') or [], config.denom)
        except (QueryError, AttributeError, TypeError) as e:
            logger.warning(f"Could not query base denom for {config.denom}: {e}")
            return config

        if not base_denom:
            logger.warning(f"No denom metadata lists {config.denom}, coins are labelled with the display denom")
            return config

        logger.info(f"Got base denom: denom={config.denom}, base_denom={base_denom}")
        return config.with_denom(config.denom, base_denom, config.denom_coefficient)

    try:
        response = await client.get_denoms_metadata()
    except QueryError as e:
        raise StartupError(f"Error querying denom: {e}") from e

    metadatas = response.get('metadatas') or []
    if not metadatas:
        raise StartupError(
            "No denom infos. Try running with DENOM and DENOM_COEFFICIENT to set them manually."
        )

    # Always the first entry
    metadata = metadatas[0]
    denom = config.denom or metadata.get('display', '')

    for unit in metadata.get('denom_units') or []:
        logger.debug(f"Denom info: denom={unit.get('denom')}, exponent={unit.get('exponent', 0)}")
        if unit.get('denom') == denom:
            coefficient = float(10 ** int(unit.get('exponent', 0)))
            logger.info(f"Got denom info: denom={denom}, coefficient={coefficient}")
            return config.with_denom(denom, metadata.get('base', ''), coefficient)

    raise StartupError(f"Could not find the denom info for {denom}")


async def run_exporter(config: ExporterConfig):
    """
    Start the LCD client and the metrics server, then wait for shutdown

    Args:
        config: Configuration loaded from the environment
    """
    runner = None

    logger.info("Initializing LCD client...")
    client = CosmosLCDClient(
        url=config.lcd_url,
        timeout=config.request_timeout,
        pagination_limit=config.pagination_limit
    )

    async with client:
        try:
            config = await resolve_chain_id(client, config)
            config = await resolve_denom(client, config)
            logger.info(f"Resolved configuration:\n{config}")

            runner = await start_metrics_server(config, client)

            await shutdown_event.wait()

        finally:
            logger.info("Shutting down gracefully...")

            if runner:
                try:
                    logger.info("Stopping metrics server...")
                    await runner.cleanup()
                except Exception as e:
                    logger.error(f"Error stopping metrics server: {e}")

            logger.info("Closing LCD client...")

    logger.info("✓ Shutdown complete")


async def main():
    """Main entry point"""
    config = ExporterConfig.from_env(env_file=Path.cwd() / '.env')
    logging.getLogger().setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    logger.info("=" * 70)
    logger.info("Cosmos Exporter - Prometheus exporter for Cosmos SDK chains")
    logger.info("=" * 70)
    logger.info(f"Configuration:\n{config}")
    logger.info("=" * 70)

    # Set up signal handlers
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, signal_handler, signum, None)

    await run_exporter(config)


def run():
    """Console script entry point"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Exiting")
        sys.exit(0)
    except (ConfigError, StartupError) as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
