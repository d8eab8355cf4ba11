#!/usr/bin/env python3
"""
Aggregation Orchestrator

Builds one scrape: validates the addresses a request names, launches the fetch
task families it needs into a request scope and returns once every task, including
follow-ups spawned by other tasks, has finished. Failures stay inside their task;
the request always completes with whatever metrics were collected.
"""

import logging
from typing import List, Optional

from cosmos_exporter.clients.addresses import AddressError, decode
from cosmos_exporter.handlers.general import GeneralHandler
from cosmos_exporter.handlers.oracle import ACCOUNT, OracleHandler, network_address_kind
from cosmos_exporter.handlers.params import ParamsHandler
from cosmos_exporter.handlers.proposals import ProposalsHandler
from cosmos_exporter.handlers.upgrade import UpgradeHandler
from cosmos_exporter.handlers.validators import DelegatorHandler, ValidatorHandler, ValidatorsSetHandler
from cosmos_exporter.handlers.votes import VotesHandler
from cosmos_exporter.handlers.wallet import WalletHandler
from cosmos_exporter.monitor.context import ScrapeContext
from cosmos_exporter.monitor.scope import FetchScope


logger = logging.getLogger(__name__)


def valid_address(ctx: ScrapeContext, address: Optional[str], prefix: str) -> bool:
    """Check a caller-supplied address, logging the rejection with the request id"""
    try:
        decode(address or '', prefix)
        return True
    except AddressError as e:
        ctx.log.error(f"Could not get address {address!r}: {e}")
        return False


class Aggregator:
    """
    Launches fetch task families for a request

    Every collect_* method opens the request (outer) scope, launches tasks into
    it and returns the joined scope so callers can inspect what ran. None of
    them raise; the metrics are in ctx.namespace.

    Usage:
        ctx = ScrapeContext.create(config, client)
        await Aggregator().collect_wallet(ctx, address)
        body = ctx.namespace.render()
    """

    async def collect_single(self, ctx: ScrapeContext) -> FetchScope:
        """
        Combined scrape of every family enabled in the configuration

        Validator details and the active proposal ids are resolved inside an
        inner scope; the per-validator follow-ups and the vote lookups that
        depend on them are launched on the outer scope.
        """
        config = ctx.config
        prefixes = config.prefixes
        validators = [v for v in config.validators if valid_address(ctx, v, prefixes.validator)]
        wallets = [w for w in config.wallets if valid_address(ctx, w, prefixes.account)]

        async with FetchScope(ctx.log, "single") as outer:
            GeneralHandler(ctx).launch(outer)

            if config.params:
                ParamsHandler(ctx).launch(outer)
            if config.upgrades:
                UpgradeHandler(ctx).launch(outer)
            if config.proposals:
                ProposalsHandler(ctx, active_only=True).launch(outer)

            wallet_handler = WalletHandler(ctx)
            for wallet in wallets:
                wallet_handler.launch(outer, wallet)

            if config.oracle:
                self._launch_oracle(ctx, outer, validators)

            active_ids: List[str] = []
            vote_validators = validators if config.votes else []

            if validators:
                validator_handler = ValidatorHandler(ctx)
                validator_handler.register()

                async with FetchScope(ctx.log, "single:details") as inner:
                    for valoper in validators:
                        inner.spawn(validator_handler.fetch_validator(valoper, outer), f"validator:{valoper}")
                    if vote_validators:
                        inner.spawn(
                            self._resolve_active_proposals(ctx, active_ids),
                            "votes:active-proposals"
                        )

            if vote_validators:
                ctx.log.debug(f"Active proposals for votes: {','.join(active_ids) or 'none'}")
                votes_handler = VotesHandler(ctx)
                for valoper in vote_validators:
                    votes_handler.launch(outer, valoper, active_ids)

        return outer

    async def _resolve_active_proposals(self, ctx: ScrapeContext, into: List[str]):
        into.extend(await ProposalsHandler(ctx).active_proposal_ids())

    def _launch_oracle(self, ctx: ScrapeContext, scope: FetchScope, validators: List[str]):
        config = ctx.config
        handler = OracleHandler(ctx, config.oracle_network)

        if network_address_kind(config.oracle_network) == ACCOUNT:
            orchestrator = config.orchestrator_address
            if valid_address(ctx, orchestrator, config.prefixes.account):
                handler.launch(scope, orchestrator)
            return

        for valoper in validators:
            handler.launch(scope, valoper)

    async def collect_general(self, ctx: ScrapeContext) -> FetchScope:
        async with FetchScope(ctx.log, "general") as outer:
            GeneralHandler(ctx).launch(outer)
        return outer

    async def collect_validator(self, ctx: ScrapeContext, address: Optional[str]) -> FetchScope:
        """Details of one validator; follow-ups join the same scope"""
        async with FetchScope(ctx.log, "validator") as outer:
            if valid_address(ctx, address, ctx.config.prefixes.validator):
                handler = ValidatorHandler(ctx)
                handler.register()
                outer.spawn(handler.fetch_validator(address, outer), f"validator:{address}")
        return outer

    async def collect_validators(self, ctx: ScrapeContext) -> FetchScope:
        async with FetchScope(ctx.log, "validators") as outer:
            ValidatorsSetHandler(ctx).launch(outer)
        return outer

    async def collect_wallet(self, ctx: ScrapeContext, address: Optional[str]) -> FetchScope:
        async with FetchScope(ctx.log, "wallet") as outer:
            if valid_address(ctx, address, ctx.config.prefixes.account):
                WalletHandler(ctx).launch(outer, address)
        return outer

    async def collect_delegator(self, ctx: ScrapeContext, address: Optional[str]) -> FetchScope:
        async with FetchScope(ctx.log, "delegator") as outer:
            if valid_address(ctx, address, ctx.config.prefixes.validator):
                DelegatorHandler(ctx).launch(outer, address)
        return outer

    async def collect_params(self, ctx: ScrapeContext) -> FetchScope:
        async with FetchScope(ctx.log, "params") as outer:
            ParamsHandler(ctx).launch(outer)
        return outer

    async def collect_proposals(self, ctx: ScrapeContext) -> FetchScope:
        async with FetchScope(ctx.log, "proposals") as outer:
            ProposalsHandler(ctx).launch(outer)
        return outer

    async def collect_upgrade(self, ctx: ScrapeContext) -> FetchScope:
        async with FetchScope(ctx.log, "upgrade") as outer:
            UpgradeHandler(ctx).launch(outer)
        return outer

    async def collect_oracle(
        self,
        ctx: ScrapeContext,
        address: Optional[str],
        network: Optional[str] = None
    ) -> FetchScope:
        """
        Oracle/bridge probes of one network for one address

        Args:
            ctx: Request context
            address: Validator operator address, or the orchestrator account
                address for injective
            network: Network name (default: ORACLE_NETWORK)
        """
        network = (network or ctx.config.oracle_network).lower()
        prefixes = ctx.config.prefixes
        prefix = prefixes.account if network_address_kind(network) == ACCOUNT else prefixes.validator

        async with FetchScope(ctx.log, f"oracle:{network}") as outer:
            if valid_address(ctx, address, prefix):
                OracleHandler(ctx, network).launch(outer, address)
        return outer
