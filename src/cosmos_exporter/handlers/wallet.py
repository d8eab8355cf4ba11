#!/usr/bin/env python3
"""
Wallet metrics

Balances, delegations, unbondings and pending rewards of one account address.
"""

from cosmos_exporter.clients.lcd_client import coins
from cosmos_exporter.handlers.base import FetchHandler
from cosmos_exporter.monitor.scope import FetchScope


class WalletHandler(FetchHandler):
    """
    Account facts, one fetch task per upstream query

    Metrics:
    - cosmos_wallet_balance{address,denom}
    - cosmos_wallet_delegations{address,denom,delegated_to}
    - cosmos_wallet_unbondings{address,denom,unbonded_from}
    - cosmos_wallet_rewards{address,denom,validator_address}
    """

    def register(self):
        ns = self.namespace
        ns.register("cosmos_wallet_balance", "Balance of the Cosmos-based blockchain wallet", ["address", "denom"])
        ns.register(
            "cosmos_wallet_delegations", "Delegations of the Cosmos-based blockchain wallet",
            ["address", "denom", "delegated_to"]
        )
        ns.register(
            "cosmos_wallet_unbondings", "Unbondings of the Cosmos-based blockchain wallet",
            ["address", "denom", "unbonded_from"]
        )
        ns.register(
            "cosmos_wallet_rewards", "Rewards of the Cosmos-based blockchain wallet",
            ["address", "denom", "validator_address"]
        )

    def launch(self, scope: FetchScope, address: str):
        self.register()
        scope.spawn(self.fetch_balance(address), f"wallet:{address}:balance")
        scope.spawn(self.fetch_delegations(address), f"wallet:{address}:delegations")
        scope.spawn(self.fetch_unbondings(address), f"wallet:{address}:unbondings")
        scope.spawn(self.fetch_rewards(address), f"wallet:{address}:rewards")

    async def fetch_balance(self, address: str):
        response = await self.query(f"wallet balance {address}", self.client.get_balances(address))
        if response is None:
            return

        with self.decoding(f"wallet balance {address}"):
            for coin in coins(response.get('balances')):
                denom, value = self.ctx.convert(coin)
                self.namespace.set("cosmos_wallet_balance", value, address=address, denom=denom)

    async def fetch_delegations(self, address: str):
        response = await self.query(f"wallet delegations {address}", self.client.get_delegations(address))
        if response is None:
            return

        with self.decoding(f"wallet delegations {address}"):
            for item in response.get('delegation_responses') or []:
                denom, value = self.ctx.convert(item['balance'])
                self.namespace.set(
                    "cosmos_wallet_delegations", value,
                    address=address, denom=denom,
                    delegated_to=item['delegation']['validator_address']
                )

    async def fetch_unbondings(self, address: str):
        response = await self.query(
            f"wallet unbonding delegations {address}",
            self.client.get_unbonding_delegations(address)
        )
        if response is None:
            return

        with self.decoding(f"wallet unbonding delegations {address}"):
            for item in response.get('unbonding_responses') or []:
                # Entries of one validator are summed into a single sample
                total = sum(self.ctx.scale(entry['balance']) for entry in item.get('entries') or [])
                self.namespace.set(
                    "cosmos_wallet_unbondings", total,
                    address=address, denom=self.ctx.display_denom,
                    unbonded_from=item['validator_address']
                )

    async def fetch_rewards(self, address: str):
        response = await self.query(f"wallet rewards {address}", self.client.get_delegator_rewards(address))
        if response is None:
            return

        with self.decoding(f"wallet rewards {address}"):
            for item in response.get('rewards') or []:
                for coin in coins(item.get('reward')):
                    denom, value = self.ctx.convert(coin)
                    self.namespace.set(
                        "cosmos_wallet_rewards", value,
                        address=address, denom=denom,
                        validator_address=item['validator_address']
                    )
