#!/usr/bin/env python3
"""
Validator metrics

Per-validator detail (status, tokens, commission, rewards, missed blocks, rank),
the whole validator set, and the delegations made to one validator.
"""

import asyncio
from typing import Any, Dict, List, Optional

from cosmos_exporter.clients.addresses import AddressError, consensus_address
from cosmos_exporter.clients.lcd_client import coins
from cosmos_exporter.handlers.base import DECODE_ERRORS, FetchHandler
from cosmos_exporter.monitor.context import to_float
from cosmos_exporter.monitor.scope import FetchScope


BOND_STATUS_BONDED = "BOND_STATUS_BONDED"

# Numeric values for cosmos_validator_status
STATUS_VALUES = {
    'BOND_STATUS_UNSPECIFIED': 0,
    'BOND_STATUS_UNBONDED': 1,
    'BOND_STATUS_UNBONDING': 2,
    'BOND_STATUS_BONDED': 3
}

VALIDATOR_LABELS = ["address", "moniker"]


def rank_by_tokens(validators: List[Dict[str, Any]]) -> Dict[str, int]:
    """Map operator address -> 1-based rank by bonded tokens, descending"""
    ordered = sorted(validators, key=lambda v: to_float(v['tokens']), reverse=True)
    return {v['operator_address']: index + 1 for index, v in enumerate(ordered)}


class ValidatorHandler(FetchHandler):
    """
    Validator details

    The detail query resolves the moniker and consensus key; the follow-up
    queries that need them are spawned into the request scope.

    Metrics (labels: address, moniker):
    - cosmos_validator_tokens: Tokens bonded to the validator
    - cosmos_validator_delegator_shares: Delegator shares
    - cosmos_validator_commission_rate: Current commission rate
    - cosmos_validator_status: 0 unspecified, 1 unbonded, 2 unbonding, 3 bonded
    - cosmos_validator_jailed: 1 if jailed
    - cosmos_validator_active: 1 if bonded and not jailed
    - cosmos_validator_min_self_delegation: Minimum self delegation
    - cosmos_validator_delegators_total: Number of delegators
    - cosmos_validator_commission{denom}: Accumulated commission
    - cosmos_validator_rewards{denom}: Outstanding rewards
    - cosmos_validator_missed_blocks: Missed blocks in the signing window
    - cosmos_validator_rank: Rank among bonded validators by tokens
    """

    def __init__(self, ctx):
        super().__init__(ctx)
        self._bonded: Optional[List[Dict[str, Any]]] = None
        self._bonded_loaded = False
        self._bonded_lock = asyncio.Lock()

    def register(self):
        ns = self.namespace
        ns.register("cosmos_validator_tokens", "Tokens of the Cosmos-based blockchain validator", VALIDATOR_LABELS)
        ns.register("cosmos_validator_delegator_shares", "Delegator shares of the validator", VALIDATOR_LABELS)
        ns.register("cosmos_validator_commission_rate", "Commission rate of the validator", VALIDATOR_LABELS)
        ns.register("cosmos_validator_status", "Status of the validator", VALIDATOR_LABELS)
        ns.register("cosmos_validator_jailed", "Jailed status of the validator", VALIDATOR_LABELS)
        ns.register("cosmos_validator_active", "1 if the validator is in the active set", VALIDATOR_LABELS)
        ns.register("cosmos_validator_min_self_delegation", "Minimum self delegation", VALIDATOR_LABELS)
        ns.register("cosmos_validator_delegators_total", "Number of delegators of the validator", VALIDATOR_LABELS)
        ns.register("cosmos_validator_commission", "Commission of the validator", VALIDATOR_LABELS + ["denom"])
        ns.register("cosmos_validator_rewards", "Outstanding rewards of the validator", VALIDATOR_LABELS + ["denom"])
        ns.register("cosmos_validator_missed_blocks", "Missed blocks of the validator", VALIDATOR_LABELS)
        ns.register("cosmos_validator_rank", "Rank of the validator by tokens", VALIDATOR_LABELS)

    async def fetch_validator(self, valoper: str, outer: FetchScope):
        """
        Query validator details, then register follow-up tasks with `outer`

        Args:
            valoper: Validated operator address
            outer: Request scope the follow-ups join
        """
        response = await self.query(f"validator {valoper}", self.client.get_validator(valoper))
        if response is None:
            return

        try:
            validator = response['validator']
            moniker = (validator.get('description') or {}).get('moniker', '')
            labels = {'address': valoper, 'moniker': moniker}

            status = validator.get('status', 'BOND_STATUS_UNSPECIFIED')
            jailed = bool(validator.get('jailed', False))
            rate = validator['commission']['commission_rates']['rate']

            self.namespace.set("cosmos_validator_tokens", self.ctx.scale(validator['tokens']), **labels)
            self.namespace.set("cosmos_validator_delegator_shares", self.ctx.scale(validator['delegator_shares']), **labels)
            self.namespace.set("cosmos_validator_commission_rate", to_float(rate), **labels)
            self.namespace.set("cosmos_validator_status", STATUS_VALUES.get(status, 0), **labels)
            self.namespace.set("cosmos_validator_jailed", 1 if jailed else 0, **labels)
            self.namespace.set(
                "cosmos_validator_active", 1 if status == BOND_STATUS_BONDED and not jailed else 0, **labels
            )
            if validator.get('min_self_delegation') is not None:
                self.namespace.set(
                    "cosmos_validator_min_self_delegation", self.ctx.scale(validator['min_self_delegation']), **labels
                )
        except DECODE_ERRORS as e:
            self.log.error(f"Could not decode validator {valoper}: {e!r}")
            return

        outer.spawn(self.fetch_delegators_count(labels), f"validator:{valoper}:delegators")
        outer.spawn(self.fetch_commission(labels), f"validator:{valoper}:commission")
        outer.spawn(self.fetch_rewards(labels), f"validator:{valoper}:rewards")
        outer.spawn(self.fetch_rank(labels), f"validator:{valoper}:rank")
        outer.spawn(
            self.fetch_missed_blocks(labels, validator.get('consensus_pubkey')),
            f"validator:{valoper}:signing-info"
        )

    async def fetch_delegators_count(self, labels: Dict[str, str]):
        valoper = labels['address']
        response = await self.query(
            f"validator delegations count {valoper}",
            self.client.get_validator_delegators_count(valoper)
        )
        if response is None:
            return

        with self.decoding(f"validator delegations count {valoper}"):
            total = (response.get('pagination') or {})['total']
            self.namespace.set("cosmos_validator_delegators_total", float(total), **labels)

    async def fetch_commission(self, labels: Dict[str, str]):
        valoper = labels['address']
        response = await self.query(f"validator commission {valoper}", self.client.get_validator_commission(valoper))
        if response is None:
            return

        with self.decoding(f"validator commission {valoper}"):
            for coin in coins((response.get('commission') or {}).get('commission')):
                denom, value = self.ctx.convert(coin)
                self.namespace.set("cosmos_validator_commission", value, denom=denom, **labels)

    async def fetch_rewards(self, labels: Dict[str, str]):
        valoper = labels['address']
        response = await self.query(
            f"validator outstanding rewards {valoper}",
            self.client.get_validator_outstanding_rewards(valoper)
        )
        if response is None:
            return

        with self.decoding(f"validator outstanding rewards {valoper}"):
            for coin in coins((response.get('rewards') or {}).get('rewards')):
                denom, value = self.ctx.convert(coin)
                self.namespace.set("cosmos_validator_rewards", value, denom=denom, **labels)

    async def fetch_missed_blocks(self, labels: Dict[str, str], pubkey: Optional[dict]):
        valoper = labels['address']
        try:
            valcons = consensus_address(pubkey, self.config.prefixes)
        except AddressError as e:
            self.log.error(f"Could not get consensus address for {valoper}: {e}")
            return

        response = await self.query(f"signing info {valcons}", self.client.get_signing_info(valcons))
        if response is None:
            return

        with self.decoding(f"signing info {valcons}"):
            missed = response['val_signing_info']['missed_blocks_counter']
            self.namespace.set("cosmos_validator_missed_blocks", float(missed), **labels)

    async def fetch_rank(self, labels: Dict[str, str]):
        bonded = await self.bonded_validators()
        if bonded is None:
            return

        with self.decoding("bonded validators"):
            ranks = rank_by_tokens(bonded)
            rank = ranks.get(labels['address'])
            if rank is None:
                self.log.debug(f"Validator {labels['address']} is not in the bonded set")
                return
            self.namespace.set("cosmos_validator_rank", rank, **labels)

    async def bonded_validators(self) -> Optional[List[Dict[str, Any]]]:
        """Bonded validator set, fetched once per request and shared by all rank tasks"""
        async with self._bonded_lock:
            if not self._bonded_loaded:
                self._bonded = await list_validators(self, status=BOND_STATUS_BONDED)
                self._bonded_loaded = True
            return self._bonded


async def list_validators(handler: FetchHandler, status: Optional[str] = None) -> Optional[List[Dict[str, Any]]]:
    """
    Follow pagination over the validator list

    Returns:
        All validators, or None if any page failed
    """
    validators: List[Dict[str, Any]] = []
    next_key = None

    while True:
        response = await handler.query("validators", handler.client.get_validators(next_key, status))
        if response is None:
            return None

        validators.extend(response.get('validators') or [])
        next_key = (response.get('pagination') or {}).get('next_key')
        if not next_key:
            return validators


class ValidatorsSetHandler(FetchHandler):
    """
    Every validator known to the chain

    Metrics (labels: address, moniker):
    - cosmos_validators_tokens, cosmos_validators_commission_rate,
      cosmos_validators_status, cosmos_validators_jailed, cosmos_validators_rank
    """

    def register(self):
        ns = self.namespace
        ns.register("cosmos_validators_tokens", "Tokens of the validators", VALIDATOR_LABELS)
        ns.register("cosmos_validators_commission_rate", "Commission rate of the validators", VALIDATOR_LABELS)
        ns.register("cosmos_validators_status", "Status of the validators", VALIDATOR_LABELS)
        ns.register("cosmos_validators_jailed", "Jailed status of the validators", VALIDATOR_LABELS)
        ns.register("cosmos_validators_rank", "Rank of the bonded validators by tokens", VALIDATOR_LABELS)

    def launch(self, scope: FetchScope):
        self.register()
        scope.spawn(self.fetch_validators(), "validators:set")

    async def fetch_validators(self):
        validators = await list_validators(self)
        if validators is None:
            return

        self.log.debug(f"Validators info: validatorsLength={len(validators)}")
        with self.decoding("validators set"):
            ranks = rank_by_tokens([v for v in validators if v.get('status') == BOND_STATUS_BONDED])

        for validator in validators:
            with self.decoding(f"validator {validator.get('operator_address')}"):
                address = validator['operator_address']
                labels = {
                    'address': address,
                    'moniker': (validator.get('description') or {}).get('moniker', '')
                }
                rate = validator['commission']['commission_rates']['rate']
                self.namespace.set("cosmos_validators_tokens", self.ctx.scale(validator['tokens']), **labels)
                self.namespace.set("cosmos_validators_commission_rate", to_float(rate), **labels)
                self.namespace.set(
                    "cosmos_validators_status", STATUS_VALUES.get(validator.get('status'), 0), **labels
                )
                self.namespace.set("cosmos_validators_jailed", 1 if validator.get('jailed') else 0, **labels)
                if address in ranks:
                    self.namespace.set("cosmos_validators_rank", ranks[address], **labels)


class DelegatorHandler(FetchHandler):
    """
    Delegations made to one validator, following pagination

    Metrics:
    - cosmos_validator_delegations{address,denom,delegated_by}: Delegated amount
    - cosmos_validator_delegations_count{address}: Delegations seen across pages
    """

    def register(self):
        self.namespace.register(
            "cosmos_validator_delegations", "Delegations of the validator", ["address", "denom", "delegated_by"]
        )
        self.namespace.register(
            "cosmos_validator_delegations_count", "Number of delegations to the validator", ["address"]
        )

    def launch(self, scope: FetchScope, valoper: str):
        self.register()
        scope.spawn(self.fetch_delegations(valoper), f"delegator:{valoper}")

    async def fetch_delegations(self, valoper: str):
        next_key = None
        while True:
            response = await self.query(
                f"validator delegations {valoper}",
                self.client.get_validator_delegations(valoper, next_key)
            )
            if response is None:
                return

            try:
                page = response.get('delegation_responses') or []
                entries = []
                for item in page:
                    denom, value = self.ctx.convert(item['balance'])
                    entries.append((item['delegation']['delegator_address'], denom, value))
                next_key = (response.get('pagination') or {}).get('next_key')
            except DECODE_ERRORS as e:
                self.log.error(f"Could not decode validator delegations {valoper}: {e!r}")
                return

            for delegator, denom, value in entries:
                self.namespace.set(
                    "cosmos_validator_delegations", value,
                    address=valoper, denom=denom, delegated_by=delegator
                )
            self.namespace.inc("cosmos_validator_delegations_count", len(entries), address=valoper)

            if not next_key:
                return
