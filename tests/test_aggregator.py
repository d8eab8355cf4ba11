import httpx
import pytest

from cosmos_exporter.monitor.aggregator import Aggregator, valid_address

from conftest import ACCOUNT, OPERATOR_ACCOUNT, PREFIXES, VALOPER, VALOPER_2


ACTIVE_PROPOSALS = {
    "proposals": [
        {
            "proposal_id": "9",
            "content": {"@type": "/cosmos.gov.v1beta1.TextProposal", "title": "Signal"},
            "status": "PROPOSAL_STATUS_VOTING_PERIOD",
            "voting_start_time": "2024-05-01T00:00:00Z",
            "voting_end_time": "2024-05-15T00:00:00Z",
        }
    ]
}


def single_routes():
    return {
        "/cosmos/gov/v1beta1/proposals": ACTIVE_PROPOSALS,
        f"/cosmos/gov/v1beta1/proposals/9/votes/{OPERATOR_ACCOUNT}": {
            "vote": {"options": [{"option": "VOTE_OPTION_NO", "weight": "1.0"}]}
        },
        f"/cosmos/bank/v1beta1/balances/{ACCOUNT}": {"balances": [{"denom": "uatom", "amount": "1000000"}]},
        f"/sei-protocol/sei-chain/oracle/validators/{VALOPER}/vote_penalty_counter": {
            "vote_penalty_counter": {"miss_count": "1", "abstain_count": "0", "success_count": "2"}
        },
    }


def test_valid_address(make_ctx):
    ctx = make_ctx()
    assert valid_address(ctx, VALOPER, PREFIXES.validator)
    assert not valid_address(ctx, VALOPER, PREFIXES.account)
    assert not valid_address(ctx, "cosmos1notbech32", PREFIXES.account)
    assert not valid_address(ctx, None, PREFIXES.account)


@pytest.mark.asyncio
async def test_single_launches_enabled_families(lcd, make_ctx):
    lcd.routes.update(single_routes())
    ctx = make_ctx(
        single=True, params=True, upgrades=True, proposals=True, votes=True,
        oracle=True, oracle_network="sei",
        wallets=("cosmos1bogus", ACCOUNT), validators=(VALOPER, "nonsense")
    )

    scope = await Aggregator().collect_single(ctx)

    launched = scope.launched
    assert "params:staking" in launched
    assert "upgrade:plan" in launched
    assert f"wallet:{ACCOUNT}:balance" in launched
    assert not any("cosmos1bogus" in name for name in launched)
    assert not any("nonsense" in name for name in launched)
    assert f"oracle:sei:vote-penalty-counter:{VALOPER}" in launched
    assert f"vote:{VALOPER}:9" in launched
    # Detail query runs in the inner scope; it fails here, so no follow-ups
    assert f"validator:{VALOPER}" not in launched
    assert not any(name.startswith(f"validator:{VALOPER}:") for name in launched)

    ns = ctx.namespace
    assert ns.sample("cosmos_wallet_balance", address=ACCOUNT, denom="atom") == 1.0
    assert ns.sample("cosmos_oracle_vote_penalty_count", type="success") == 2.0
    assert ns.sample(
        "cosmos_validator_proposal_vote",
        address=VALOPER, proposal_id="9", voted="yes", vote_option="VOTE_OPTION_NO"
    ) == 1.0


@pytest.mark.asyncio
async def test_single_votes_wait_for_active_proposals(lcd, make_ctx):
    lcd.routes.update(single_routes())
    ctx = make_ctx(single=True, votes=True, validators=(VALOPER,))

    await Aggregator().collect_single(ctx)

    paths = lcd.paths()
    vote_path = f"/cosmos/gov/v1beta1/proposals/9/votes/{OPERATOR_ACCOUNT}"
    active_query = next(
        index for index, request in enumerate(lcd.requests)
        if request.url.params.get("proposal_status") == "PROPOSAL_STATUS_VOTING_PERIOD"
        and request.url.path == "/cosmos/gov/v1beta1/proposals"
    )
    assert paths.count(vote_path) == 1
    assert paths.index(vote_path) > active_query


@pytest.mark.asyncio
async def test_single_without_flags_only_runs_general(lcd, make_ctx):
    lcd.routes.update(single_routes())
    ctx = make_ctx(single=True, validators=(VALOPER,))

    scope = await Aggregator().collect_single(ctx)

    assert not any(name.startswith(("params:", "upgrade:", "vote:", "oracle:", "wallet:")) for name in scope.launched)
    assert not any("/votes/" in path for path in lcd.paths())


@pytest.mark.asyncio
async def test_single_follow_ups_join_the_request_scope(lcd, make_ctx):
    lcd.routes.update({
        f"/cosmos/staking/v1beta1/validators/{VALOPER}": {
            "validator": {
                "operator_address": VALOPER,
                "consensus_pubkey": {"@type": "/cosmos.crypto.ed25519.PubKey", "key": "AA" * 22},
                "jailed": False,
                "status": "BOND_STATUS_BONDED",
                "tokens": "1000000",
                "delegator_shares": "1000000.0",
                "description": {"moniker": "val-one"},
                "commission": {"commission_rates": {"rate": "0.1"}},
                "min_self_delegation": "1",
            }
        },
        f"/cosmos/staking/v1beta1/validators/{VALOPER_2}": httpx.Response(
            500, json={"code": 2, "message": "internal"}
        ),
    })
    ctx = make_ctx(single=True, validators=(VALOPER, VALOPER_2))

    scope = await Aggregator().collect_single(ctx)

    assert f"validator:{VALOPER}:commission" in scope.launched
    assert not any(name.startswith(f"validator:{VALOPER_2}:") for name in scope.launched)
    assert ctx.namespace.sample("cosmos_validator_tokens", address=VALOPER, moniker="val-one") == 1.0
