#!/usr/bin/env python3
"""
Chain parameter metrics

Staking, slashing, mint and distribution module parameters. Each module is an
independent fetch task.
"""

from typing import Any

from cosmos_exporter.handlers.base import FetchHandler
from cosmos_exporter.monitor.context import to_float
from cosmos_exporter.monitor.scope import FetchScope


def parse_duration(value: Any) -> float:
    """Parse a protobuf JSON duration ("1814400s", "600.5s") to seconds"""
    text = str(value)
    if not text.endswith('s'):
        raise ValueError(f"invalid duration: {value!r}")
    return to_float(text[:-1])


class ParamsHandler(FetchHandler):
    """
    Module parameters

    Metrics:
    - cosmos_params_max_validators, cosmos_params_unbonding_time
    - cosmos_params_signed_blocks_window, cosmos_params_min_signed_per_window,
      cosmos_params_downtime_jail_duration, cosmos_params_slash_fraction_double_sign,
      cosmos_params_slash_fraction_downtime
    - cosmos_params_inflation_rate_change, cosmos_params_inflation_max,
      cosmos_params_inflation_min, cosmos_params_goal_bonded,
      cosmos_params_blocks_per_year, cosmos_params_inflation,
      cosmos_params_annual_provisions
    - cosmos_params_community_tax, cosmos_params_base_proposer_reward,
      cosmos_params_bonus_proposer_reward
    """

    GAUGES = {
        "cosmos_params_max_validators": "Active set length",
        "cosmos_params_unbonding_time": "Unbonding time, in seconds",
        "cosmos_params_signed_blocks_window": "Signed blocks window",
        "cosmos_params_min_signed_per_window": "Min signed per window",
        "cosmos_params_downtime_jail_duration": "Downtime jail duration, in seconds",
        "cosmos_params_slash_fraction_double_sign": "% slash for double signing",
        "cosmos_params_slash_fraction_downtime": "% slash for downtime",
        "cosmos_params_inflation_rate_change": "Inflation rate change",
        "cosmos_params_inflation_max": "Inflation max",
        "cosmos_params_inflation_min": "Inflation min",
        "cosmos_params_goal_bonded": "Goal bonded",
        "cosmos_params_blocks_per_year": "Blocks per year",
        "cosmos_params_inflation": "Current inflation",
        "cosmos_params_annual_provisions": "Annual provisions",
        "cosmos_params_community_tax": "Community tax",
        "cosmos_params_base_proposer_reward": "Base proposer reward",
        "cosmos_params_bonus_proposer_reward": "Bonus proposer reward",
    }

    def register(self):
        for name, documentation in self.GAUGES.items():
            self.namespace.register(name, documentation)

    def launch(self, scope: FetchScope):
        self.register()
        scope.spawn(self.fetch_staking_params(), "params:staking")
        scope.spawn(self.fetch_slashing_params(), "params:slashing")
        scope.spawn(self.fetch_mint_params(), "params:mint")
        scope.spawn(self.fetch_inflation(), "params:inflation")
        scope.spawn(self.fetch_annual_provisions(), "params:annual-provisions")
        scope.spawn(self.fetch_distribution_params(), "params:distribution")

    async def fetch_staking_params(self):
        response = await self.query("staking params", self.client.get_staking_params())
        if response is None:
            return

        with self.decoding("staking params"):
            params = response['params']
            self.namespace.set("cosmos_params_max_validators", float(params['max_validators']))
            self.namespace.set("cosmos_params_unbonding_time", parse_duration(params['unbonding_time']))

    async def fetch_slashing_params(self):
        response = await self.query("slashing params", self.client.get_slashing_params())
        if response is None:
            return

        with self.decoding("slashing params"):
            params = response['params']
            ns = self.namespace
            ns.set("cosmos_params_signed_blocks_window", to_float(params['signed_blocks_window']))
            ns.set("cosmos_params_min_signed_per_window", to_float(params['min_signed_per_window']))
            ns.set("cosmos_params_downtime_jail_duration", parse_duration(params['downtime_jail_duration']))
            ns.set("cosmos_params_slash_fraction_double_sign", to_float(params['slash_fraction_double_sign']))
            ns.set("cosmos_params_slash_fraction_downtime", to_float(params['slash_fraction_downtime']))

    async def fetch_mint_params(self):
        response = await self.query("mint params", self.client.get_mint_params())
        if response is None:
            return

        with self.decoding("mint params"):
            params = response['params']
            ns = self.namespace
            ns.set("cosmos_params_inflation_rate_change", to_float(params['inflation_rate_change']))
            ns.set("cosmos_params_inflation_max", to_float(params['inflation_max']))
            ns.set("cosmos_params_inflation_min", to_float(params['inflation_min']))
            ns.set("cosmos_params_goal_bonded", to_float(params['goal_bonded']))
            ns.set("cosmos_params_blocks_per_year", to_float(params['blocks_per_year']))

    async def fetch_inflation(self):
        response = await self.query("inflation", self.client.get_inflation())
        if response is None:
            return

        with self.decoding("inflation"):
            self.namespace.set("cosmos_params_inflation", to_float(response['inflation']))

    async def fetch_annual_provisions(self):
        response = await self.query("annual provisions", self.client.get_annual_provisions())
        if response is None:
            return

        with self.decoding("annual provisions"):
            self.namespace.set("cosmos_params_annual_provisions", self.ctx.scale(response['annual_provisions']))

    async def fetch_distribution_params(self):
        response = await self.query("distribution params", self.client.get_distribution_params())
        if response is None:
            return

        with self.decoding("distribution params"):
            params = response['params']
            ns = self.namespace
            ns.set("cosmos_params_community_tax", to_float(params['community_tax']))
            # Removed from the module in newer SDK releases
            for key in ("base_proposer_reward", "bonus_proposer_reward"):
                if key in params:
                    ns.set(f"cosmos_params_{key}", to_float(params[key]))
