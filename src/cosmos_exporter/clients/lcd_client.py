#!/usr/bin/env python3
"""
Cosmos LCD Client

Async HTTP client for the Cosmos SDK LCD (gRPC-gateway REST) API.
Every query is a GET returning JSON; failures are raised as QueryError subclasses
so callers can tell a missing object apart from an unreachable node.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx


logger = logging.getLogger(__name__)


# gRPC status code carried in gateway error bodies for missing objects
GRPC_NOT_FOUND = 5

# Proposal status filter accepted by both gov API versions
PROPOSAL_STATUS_VOTING_PERIOD = "PROPOSAL_STATUS_VOTING_PERIOD"


class QueryError(Exception):
    """Base class for failed upstream queries"""

    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class TransportError(QueryError):
    """Node unreachable, timed out or answered with an error status"""


class DecodeError(QueryError):
    """Response body is not the JSON document we expected"""


class NotFoundError(QueryError):
    """The queried object does not exist on chain"""


class CosmosLCDClient:
    """
    Async client for the Cosmos LCD REST API

    One instance is shared by every request and every fetch task. The underlying
    httpx.AsyncClient is safe for concurrent use and is never reconfigured after
    start().

    Usage:
        client = CosmosLCDClient(url="http://localhost:1317")
        await client.start()

        pool = await client.get_staking_pool()

        await client.close()
    """

    def __init__(
        self,
        url: str = "http://localhost:1317",
        timeout: float = 10.0,
        pagination_limit: int = 1000,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize LCD client

        Args:
            url: LCD base URL (default: http://localhost:1317)
            timeout: HTTP request timeout in seconds (default: 10.0)
            pagination_limit: Page size for paginated queries (default: 1000)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.url = url.rstrip('/')
        self.timeout = timeout
        self.pagination_limit = pagination_limit
        self._transport = transport

        self._client: Optional[httpx.AsyncClient] = None

        logger.info(
            f"LCD client initialized: url={self.url}, "
            f"timeout={timeout}s, pagination_limit={pagination_limit}"
        )

    async def start(self):
        """Start the HTTP client session"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.url,
                timeout=self.timeout,
                transport=self._transport
            )
            logger.info("LCD HTTP client started")

    async def close(self):
        """Close the HTTP client session"""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("LCD HTTP client closed")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def health_check(self) -> bool:
        """
        Check if the node answers the syncing query

        Returns:
            True if the LCD endpoint is reachable, False otherwise
        """
        try:
            await self.get_syncing()
            return True
        except QueryError as e:
            logger.error(f"LCD health check error: {e}")
            return False

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Issue a single GET query

        Args:
            path: API path, e.g. '/cosmos/staking/v1beta1/pool'
            params: Optional query string parameters

        Returns:
            Decoded JSON object

        Raises:
            NotFoundError: object does not exist (HTTP 404 or gRPC NotFound)
            TransportError: connection failure, timeout or error status
            DecodeError: body is not a JSON object
        """
        if not self._client:
            await self.start()

        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise TransportError(path, f"timeout: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(path, f"request failed: {e}") from e

        if response.status_code != 200:
            body = _error_body(response)
            message = body.get('message') or response.text[:200]
            if response.status_code == 404 or body.get('code') == GRPC_NOT_FOUND:
                raise NotFoundError(path, message)
            raise TransportError(path, f"status={response.status_code}, body={message}")

        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(path, f"invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise DecodeError(path, f"expected JSON object, got {type(data).__name__}")

        return data

    def page_params(self, next_key: Optional[str] = None, **extra) -> Dict[str, Any]:
        """Build pagination query parameters for a cursor-following loop"""
        params: Dict[str, Any] = {'pagination.limit': self.pagination_limit}
        if next_key:
            params['pagination.key'] = next_key
        params.update(extra)
        return params

    # Tendermint service

    async def get_syncing(self) -> Dict[str, Any]:
        return await self.get('/cosmos/base/tendermint/v1beta1/syncing')

    async def get_node_info(self) -> Dict[str, Any]:
        return await self.get('/cosmos/base/tendermint/v1beta1/node_info')

    async def get_latest_block(self) -> Dict[str, Any]:
        return await self.get('/cosmos/base/tendermint/v1beta1/blocks/latest')

    async def get_block(self, height: int) -> Dict[str, Any]:
        return await self.get(f'/cosmos/base/tendermint/v1beta1/blocks/{height}')

    # Bank

    async def get_total_supply(self, next_key: Optional[str] = None) -> Dict[str, Any]:
        return await self.get('/cosmos/bank/v1beta1/supply', self.page_params(next_key))

    async def get_balances(self, address: str) -> Dict[str, Any]:
        return await self.get(f'/cosmos/bank/v1beta1/balances/{address}', self.page_params())

    async def get_denoms_metadata(self) -> Dict[str, Any]:
        return await self.get('/cosmos/bank/v1beta1/denoms_metadata')

    # Staking

    async def get_staking_pool(self) -> Dict[str, Any]:
        return await self.get('/cosmos/staking/v1beta1/pool')

    async def get_staking_params(self) -> Dict[str, Any]:
        return await self.get('/cosmos/staking/v1beta1/params')

    async def get_validator(self, valoper: str) -> Dict[str, Any]:
        return await self.get(f'/cosmos/staking/v1beta1/validators/{valoper}')

    async def get_validators(self, next_key: Optional[str] = None, status: Optional[str] = None) -> Dict[str, Any]:
        extra = {'status': status} if status else {}
        return await self.get('/cosmos/staking/v1beta1/validators', self.page_params(next_key, **extra))

    async def get_validator_delegations(self, valoper: str, next_key: Optional[str] = None) -> Dict[str, Any]:
        return await self.get(
            f'/cosmos/staking/v1beta1/validators/{valoper}/delegations',
            self.page_params(next_key)
        )

    async def get_validator_delegators_count(self, valoper: str) -> Dict[str, Any]:
        return await self.get(
            f'/cosmos/staking/v1beta1/validators/{valoper}/delegations',
            {'pagination.limit': 1, 'pagination.count_total': 'true'}
        )

    async def get_delegations(self, address: str) -> Dict[str, Any]:
        return await self.get(f'/cosmos/staking/v1beta1/delegations/{address}', self.page_params())

    async def get_unbonding_delegations(self, address: str) -> Dict[str, Any]:
        return await self.get(
            f'/cosmos/staking/v1beta1/delegators/{address}/unbonding_delegations',
            self.page_params()
        )

    # Distribution

    async def get_community_pool(self) -> Dict[str, Any]:
        return await self.get('/cosmos/distribution/v1beta1/community_pool')

    async def get_distribution_params(self) -> Dict[str, Any]:
        return await self.get('/cosmos/distribution/v1beta1/params')

    async def get_validator_commission(self, valoper: str) -> Dict[str, Any]:
        return await self.get(f'/cosmos/distribution/v1beta1/validators/{valoper}/commission')

    async def get_validator_outstanding_rewards(self, valoper: str) -> Dict[str, Any]:
        return await self.get(f'/cosmos/distribution/v1beta1/validators/{valoper}/outstanding_rewards')

    async def get_delegator_rewards(self, address: str) -> Dict[str, Any]:
        return await self.get(f'/cosmos/distribution/v1beta1/delegators/{address}/rewards')

    # Slashing

    async def get_slashing_params(self) -> Dict[str, Any]:
        return await self.get('/cosmos/slashing/v1beta1/params')

    async def get_signing_info(self, valcons: str) -> Dict[str, Any]:
        return await self.get(f'/cosmos/slashing/v1beta1/signing_infos/{valcons}')

    # Mint

    async def get_mint_params(self) -> Dict[str, Any]:
        return await self.get('/cosmos/mint/v1beta1/params')

    async def get_inflation(self) -> Dict[str, Any]:
        return await self.get('/cosmos/mint/v1beta1/inflation')

    async def get_annual_provisions(self) -> Dict[str, Any]:
        return await self.get('/cosmos/mint/v1beta1/annual_provisions')

    # Governance

    async def get_proposals(self, prop_v1: bool, active_only: bool) -> Dict[str, Any]:
        """
        List governance proposals, newest first

        Args:
            prop_v1: Use the gov v1 API instead of v1beta1
            active_only: Only proposals currently in their voting period
        """
        version = 'v1' if prop_v1 else 'v1beta1'
        params: Dict[str, Any] = {'pagination.reverse': 'true'}
        if active_only:
            params['proposal_status'] = PROPOSAL_STATUS_VOTING_PERIOD
        return await self.get(f'/cosmos/gov/{version}/proposals', params)

    async def get_vote(self, prop_v1: bool, proposal_id: str, voter: str) -> Dict[str, Any]:
        version = 'v1' if prop_v1 else 'v1beta1'
        return await self.get(f'/cosmos/gov/{version}/proposals/{proposal_id}/votes/{voter}')

    # Upgrade

    async def get_current_plan(self) -> Dict[str, Any]:
        return await self.get('/cosmos/upgrade/v1beta1/current_plan')

    def __repr__(self) -> str:
        return f"CosmosLCDClient(url={self.url}, started={self._client is not None})"


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    """Best-effort decode of a gateway error body ({"code": 5, "message": ...})"""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def coins(payload: Any) -> List[Dict[str, Any]]:
    """
    Validate a list of {denom, amount} coins from a response

    Raises:
        ValueError: payload is not a list of coin objects
    """
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ValueError(f"expected coin list, got {type(payload).__name__}")
    for coin in payload:
        if not isinstance(coin, dict) or 'denom' not in coin or 'amount' not in coin:
            raise ValueError(f"malformed coin: {coin!r}")
    return payload
