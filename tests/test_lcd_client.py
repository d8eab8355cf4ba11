import httpx
import pytest

from cosmos_exporter.clients.lcd_client import (
    DecodeError,
    NotFoundError,
    TransportError,
    coins,
)

from conftest import FakeLCD


@pytest.mark.asyncio
async def test_get_returns_json_object():
    lcd = FakeLCD({"/cosmos/staking/v1beta1/pool": {"pool": {"bonded_tokens": "10"}}})

    async with lcd.client() as client:
        response = await client.get_staking_pool()

    assert response == {"pool": {"bonded_tokens": "10"}}


@pytest.mark.asyncio
async def test_http_404_is_not_found():
    lcd = FakeLCD({"/cosmos/upgrade/v1beta1/current_plan": httpx.Response(404, text="nope")})

    async with lcd.client() as client:
        with pytest.raises(NotFoundError):
            await client.get_current_plan()


@pytest.mark.asyncio
async def test_grpc_not_found_code_is_not_found():
    body = {"code": 5, "message": "vote not found for proposal 3", "details": []}
    lcd = FakeLCD({"/cosmos/gov/v1/proposals/3/votes/cosmos1x": httpx.Response(400, json=body)})

    async with lcd.client() as client:
        with pytest.raises(NotFoundError, match="vote not found"):
            await client.get_vote(True, "3", "cosmos1x")


@pytest.mark.asyncio
async def test_server_error_is_transport_error():
    lcd = FakeLCD({"/cosmos/base/tendermint/v1beta1/syncing": httpx.Response(500, json={"code": 2})})

    async with lcd.client() as client:
        with pytest.raises(TransportError):
            await client.get_syncing()
        assert not await client.health_check()


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    lcd = FakeLCD({"/cosmos/base/tendermint/v1beta1/syncing": refuse})

    async with lcd.client() as client:
        with pytest.raises(TransportError, match="connection refused"):
            await client.get_syncing()


@pytest.mark.asyncio
async def test_non_object_body_is_decode_error():
    lcd = FakeLCD({
        "/cosmos/bank/v1beta1/supply": httpx.Response(200, json=[1, 2]),
        "/cosmos/bank/v1beta1/denoms_metadata": httpx.Response(200, text="<html>"),
    })

    async with lcd.client() as client:
        with pytest.raises(DecodeError):
            await client.get_total_supply()
        with pytest.raises(DecodeError):
            await client.get_denoms_metadata()


@pytest.mark.asyncio
async def test_pagination_parameters():
    lcd = FakeLCD({"/cosmos/bank/v1beta1/supply": {"supply": []}})

    async with lcd.client(pagination_limit=2) as client:
        await client.get_total_supply()
        await client.get_total_supply(next_key="AAE=")

    first, second = lcd.requests
    assert first.url.params["pagination.limit"] == "2"
    assert "pagination.key" not in first.url.params
    assert second.url.params["pagination.key"] == "AAE="


@pytest.mark.asyncio
async def test_active_proposals_query():
    lcd = FakeLCD({"/cosmos/gov/v1beta1/proposals": {"proposals": []}})

    async with lcd.client() as client:
        await client.get_proposals(prop_v1=False, active_only=True)

    params = lcd.requests[0].url.params
    assert params["proposal_status"] == "PROPOSAL_STATUS_VOTING_PERIOD"
    assert params["pagination.reverse"] == "true"


def test_coins_validation():
    assert coins(None) == []
    assert coins([{"denom": "uatom", "amount": "1"}]) == [{"denom": "uatom", "amount": "1"}]
    with pytest.raises(ValueError):
        coins({"denom": "uatom"})
    with pytest.raises(ValueError):
        coins([{"denom": "uatom"}])
