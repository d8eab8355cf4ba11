#!/usr/bin/env python3
"""
General chain metrics

Node sync state, staking pool, community pool, node/application version, total
supply and the number of proposals in their voting period.
"""

from cosmos_exporter.clients.lcd_client import coins
from cosmos_exporter.handlers.base import DECODE_ERRORS, FetchHandler
from cosmos_exporter.monitor.scope import FetchScope


class GeneralHandler(FetchHandler):
    """
    Chain-wide facts, one fetch task per upstream query

    Metrics:
    - cosmos_node_syncing: 1 while the node is catching up
    - cosmos_latest_block_height: Latest block height
    - cosmos_general_bonded_tokens: Bonded tokens
    - cosmos_general_not_bonded_tokens: Not bonded tokens
    - cosmos_general_community_pool{denom}: Community pool
    - cosmos_general_supply_total{denom}: Total supply, summed across pages
    - cosmos_node_application_version{...}: Application version info (always 1)
    - cosmos_node_default_node_info{network,version,moniker}: Node info (always 1)
    - cosmos_gov_voting_period_proposals: Proposals in voting period
    """

    def __init__(self, ctx):
        super().__init__(ctx)
        ns = self.namespace
        ns.register("cosmos_node_syncing", "Is Node Syncing")
        ns.register("cosmos_latest_block_height", "Latest block height")
        ns.register("cosmos_general_bonded_tokens", "Bonded tokens")
        ns.register("cosmos_general_not_bonded_tokens", "Not bonded tokens")
        ns.register("cosmos_general_community_pool", "Community pool", ["denom"])
        ns.register("cosmos_general_supply_total", "Total supply", ["denom"])
        ns.register(
            "cosmos_node_application_version",
            "application version info of the chain",
            ["chain_name", "app_version", "git_commit", "go_version", "cosmos_sdk_version"]
        )
        ns.register(
            "cosmos_node_default_node_info",
            "default node info of the chain",
            ["network", "version", "moniker"]
        )
        ns.register("cosmos_gov_voting_period_proposals", "Voting period proposals")

    def launch(self, scope: FetchScope):
        scope.spawn(self.fetch_latest_block(), "general:latest-block")
        scope.spawn(self.fetch_syncing(), "general:syncing")
        scope.spawn(self.fetch_staking_pool(), "general:staking-pool")
        scope.spawn(self.fetch_community_pool(), "general:community-pool")
        scope.spawn(self.fetch_node_info(), "general:node-info")
        scope.spawn(self.fetch_total_supply(), "general:total-supply")
        scope.spawn(self.fetch_voting_period_proposals(), "general:voting-proposals")

    async def fetch_latest_block(self):
        response = await self.query("latest block height", self.client.get_latest_block())
        if response is None:
            return

        with self.decoding("latest block height"):
            # Newer nodes return sdk_block alongside the legacy block field
            block = response.get('sdk_block') or response['block']
            height = float(block['header']['height'])
            self.namespace.set("cosmos_latest_block_height", height)

    async def fetch_syncing(self):
        response = await self.query("node syncing", self.client.get_syncing())
        if response is None:
            return

        with self.decoding("node syncing"):
            syncing = response['syncing']
            self.namespace.set("cosmos_node_syncing", 1 if syncing else 0)

    async def fetch_staking_pool(self):
        response = await self.query("staking pool", self.client.get_staking_pool())
        if response is None:
            return

        with self.decoding("staking pool"):
            pool = response['pool']
            bonded = self.ctx.scale(pool['bonded_tokens'])
            not_bonded = self.ctx.scale(pool['not_bonded_tokens'])
            self.namespace.set("cosmos_general_bonded_tokens", bonded)
            self.namespace.set("cosmos_general_not_bonded_tokens", not_bonded)

    async def fetch_community_pool(self):
        response = await self.query("distribution community pool", self.client.get_community_pool())
        if response is None:
            return

        for coin in response.get('pool') or []:
            with self.decoding("community pool coin"):
                denom, value = self.ctx.convert(coin)
                self.namespace.set("cosmos_general_community_pool", value, denom=denom)

    async def fetch_node_info(self):
        response = await self.query("node info", self.client.get_node_info())
        if response is None:
            return

        with self.decoding("node info"):
            application = response.get('application_version') or {}
            self.namespace.set(
                "cosmos_node_application_version", 1,
                chain_name=application.get('name', ''),
                app_version=application.get('version', ''),
                git_commit=application.get('git_commit', ''),
                go_version=application.get('go_version', ''),
                cosmos_sdk_version=application.get('cosmos_sdk_version', '')
            )

            node_info = response['default_node_info']
            self.namespace.set(
                "cosmos_node_default_node_info", 1,
                network=node_info.get('network', ''),
                version=node_info.get('version', ''),
                moniker=node_info.get('moniker', '')
            )

    async def fetch_total_supply(self):
        """
        Follow pagination.next_key until the node reports no further pages

        Each page is added to the running per-denom total, so the result does not
        depend on where the page boundaries fall.
        """
        next_key = None
        pages = 0

        while True:
            response = await self.query("bank total supply", self.client.get_total_supply(next_key))
            if response is None:
                return

            try:
                page = [self.ctx.convert(coin) for coin in coins(response.get('supply'))]
                next_key = (response.get('pagination') or {}).get('next_key')
            except DECODE_ERRORS as e:
                self.log.error(f"Could not decode bank total supply page {pages + 1}: {e!r}")
                return

            for denom, value in page:
                self.namespace.inc("cosmos_general_supply_total", value, denom=denom)

            pages += 1
            if not next_key:
                break

        self.log.debug(f"Total supply accumulated over {pages} page(s)")

    async def fetch_voting_period_proposals(self):
        version = "v1" if self.config.prop_v1 else "v1beta1"
        response = await self.query(
            f"active proposals ({version})",
            self.client.get_proposals(self.config.prop_v1, active_only=True)
        )
        if response is None:
            return

        with self.decoding(f"active proposals ({version})"):
            proposals = response.get('proposals') or []
            self.namespace.set("cosmos_gov_voting_period_proposals", len(proposals))
