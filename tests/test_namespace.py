import pytest

from cosmos_exporter.exporters.namespace import MetricNamespace, MetricType


def test_const_labels_are_added_to_every_sample():
    namespace = MetricNamespace(const_labels={"chain_id": "test-1"})
    namespace.register("cosmos_general_supply_total", "Total supply", ["denom"])
    namespace.register("cosmos_latest_block_height", "Latest block height")

    namespace.set("cosmos_general_supply_total", 5.0, denom="atom")
    namespace.set("cosmos_latest_block_height", 100)

    body = namespace.render().decode()
    assert 'cosmos_general_supply_total{chain_id="test-1",denom="atom"} 5.0' in body
    assert 'cosmos_latest_block_height{chain_id="test-1"} 100.0' in body


def test_metric_without_labels():
    namespace = MetricNamespace()
    namespace.register("cosmos_node_syncing", "Is Node Syncing")

    namespace.set("cosmos_node_syncing", 1)

    assert namespace.sample("cosmos_node_syncing") == 1.0


def test_inc_accumulates_running_total():
    namespace = MetricNamespace()
    namespace.register("cosmos_general_supply_total", "Total supply", ["denom"])

    namespace.inc("cosmos_general_supply_total", 1.5, denom="atom")
    namespace.inc("cosmos_general_supply_total", 2.5, denom="atom")

    assert namespace.sample("cosmos_general_supply_total", denom="atom") == 4.0


def test_counter_observe_and_sample():
    namespace = MetricNamespace()
    namespace.register("cosmos_oracle_vote_penalty_count", "Vote penalty", ["type"], MetricType.COUNTER)

    namespace.observe("cosmos_oracle_vote_penalty_count", 3, type="miss")

    assert namespace.sample("cosmos_oracle_vote_penalty_count", type="miss") == 3.0


def test_register_is_idempotent_for_same_shape():
    namespace = MetricNamespace()
    first = namespace.register("cosmos_wallet_balance", "Balance", ["address", "denom"])
    second = namespace.register("cosmos_wallet_balance", "Balance", ["address", "denom"])

    assert first is second


def test_register_rejects_conflicting_shape():
    namespace = MetricNamespace()
    namespace.register("cosmos_wallet_balance", "Balance", ["address", "denom"])

    with pytest.raises(ValueError):
        namespace.register("cosmos_wallet_balance", "Balance", ["address"])


def test_unregistered_metric_raises_key_error():
    namespace = MetricNamespace()
    with pytest.raises(KeyError):
        namespace.set("cosmos_missing", 1)


def test_namespaces_are_isolated():
    first = MetricNamespace()
    second = MetricNamespace()
    first.register("cosmos_latest_block_height", "Latest block height")
    second.register("cosmos_latest_block_height", "Latest block height")

    first.set("cosmos_latest_block_height", 10)

    assert second.sample("cosmos_latest_block_height") == 0.0
    assert first.sample("cosmos_latest_block_height") == 10.0


def test_unsampled_label_set_reads_none():
    namespace = MetricNamespace()
    namespace.register("cosmos_wallet_balance", "Balance", ["address", "denom"])

    assert namespace.sample("cosmos_wallet_balance", address="a", denom="b") is None
