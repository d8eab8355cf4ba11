import httpx
import pytest

from cosmos_exporter.handlers.general import GeneralHandler
from cosmos_exporter.monitor.scope import FetchScope


SUPPLY = [
    {"denom": "uatom", "amount": "1000000"},
    {"denom": "ibc/ABC", "amount": "5"},
    {"denom": "uatom", "amount": "2500000"},
    {"denom": "ufoo", "amount": "7"},
    {"denom": "ibc/ABC", "amount": "10"},
]


def paged_supply(entries, page_size, fail_page=None):
    """Serve `entries` in pages keyed by their start offset"""
    def route(request: httpx.Request) -> httpx.Response:
        start = int(request.url.params.get("pagination.key", "0"))
        page = start // page_size
        if page == fail_page:
            return httpx.Response(503, json={"code": 14, "message": "unavailable"})
        end = start + page_size
        next_key = str(end) if end < len(entries) else None
        return httpx.Response(200, json={"supply": entries[start:end], "pagination": {"next_key": next_key}})

    return route


async def collect_supply(lcd, make_ctx, page_size, fail_page=None):
    lcd.routes["/cosmos/bank/v1beta1/supply"] = paged_supply(SUPPLY, page_size, fail_page)
    ctx = make_ctx()
    handler = GeneralHandler(ctx)
    await handler.fetch_total_supply()
    return ctx.namespace


@pytest.mark.asyncio
@pytest.mark.parametrize("page_size", [1, 2, 3, 5, 10])
async def test_total_supply_does_not_depend_on_page_boundaries(lcd, make_ctx, page_size):
    namespace = await collect_supply(lcd, make_ctx, page_size)

    assert namespace.sample("cosmos_general_supply_total", denom="atom") == pytest.approx(3.5)
    assert namespace.sample("cosmos_general_supply_total", denom="ibc/ABC") == 15.0
    assert namespace.sample("cosmos_general_supply_total", denom="ufoo") == 7.0


@pytest.mark.asyncio
async def test_total_supply_keeps_pages_before_a_failure(lcd, make_ctx):
    namespace = await collect_supply(lcd, make_ctx, page_size=2, fail_page=1)

    assert namespace.sample("cosmos_general_supply_total", denom="atom") == pytest.approx(1.0)
    assert namespace.sample("cosmos_general_supply_total", denom="ibc/ABC") == 5.0
    assert namespace.sample("cosmos_general_supply_total", denom="ufoo") is None


@pytest.mark.asyncio
async def test_general_family_with_partial_failures(lcd, make_ctx):
    lcd.routes.update({
        "/cosmos/base/tendermint/v1beta1/syncing": {"syncing": True},
        "/cosmos/base/tendermint/v1beta1/blocks/latest": {"block": {"header": {"height": "12345"}}},
        "/cosmos/staking/v1beta1/pool": {"pool": {"bonded_tokens": "2000000", "not_bonded_tokens": "500000"}},
        "/cosmos/distribution/v1beta1/community_pool": {
            "pool": [{"denom": "uatom", "amount": "1500000.250000000000000000"}]
        },
        "/cosmos/base/tendermint/v1beta1/node_info": {
            "default_node_info": {"network": "test-1", "version": "0.38.2", "moniker": "node-1"},
            "application_version": {"name": "gaia", "version": "v15.0.0", "cosmos_sdk_version": "v0.47.10"},
        },
        # Malformed proposals payload
        "/cosmos/gov/v1beta1/proposals": {"proposals": 7},
        # Supply route left unset: the node answers 501
    })
    ctx = make_ctx()

    async with FetchScope(ctx.log, "general") as scope:
        GeneralHandler(ctx).launch(scope)

    ns = ctx.namespace
    assert len(scope.launched) == 7
    assert scope.failed == []
    assert ns.sample("cosmos_node_syncing") == 1.0
    assert ns.sample("cosmos_latest_block_height") == 12345.0
    assert ns.sample("cosmos_general_bonded_tokens") == 2.0
    assert ns.sample("cosmos_general_not_bonded_tokens") == 0.5
    assert ns.sample("cosmos_general_community_pool", denom="atom") == pytest.approx(1.50000025)
    assert ns.sample(
        "cosmos_node_default_node_info", network="test-1", version="0.38.2", moniker="node-1"
    ) == 1.0
    assert ns.sample(
        "cosmos_node_application_version",
        chain_name="gaia", app_version="v15.0.0", git_commit="", go_version="", cosmos_sdk_version="v0.47.10"
    ) == 1.0
    assert 'cosmos_general_supply_total{' not in ns.render().decode()


@pytest.mark.asyncio
async def test_voting_period_proposals_uses_v1_when_configured(lcd, make_ctx):
    lcd.routes["/cosmos/gov/v1/proposals"] = {"proposals": [{"id": "1"}, {"id": "2"}]}
    ctx = make_ctx(prop_v1=True)

    await GeneralHandler(ctx).fetch_voting_period_proposals()

    assert ctx.namespace.sample("cosmos_gov_voting_period_proposals") == 2.0
    assert lcd.requests[0].url.params["proposal_status"] == "PROPOSAL_STATUS_VOTING_PERIOD"


@pytest.mark.asyncio
async def test_coins_without_base_denom_carry_the_display_denom(lcd, make_ctx):
    lcd.routes["/cosmos/distribution/v1beta1/community_pool"] = {
        "pool": [{"denom": "uatom", "amount": "3000000"}]
    }
    ctx = make_ctx(base_denom="")

    await GeneralHandler(ctx).fetch_community_pool()

    assert ctx.namespace.sample("cosmos_general_community_pool", denom="atom") == 3.0
    assert 'denom="uatom"' not in ctx.namespace.render().decode()
