#!/usr/bin/env python3
"""
Oracle and bridge metrics

Network-specific probes over chain custom LCD endpoints: Sei and Kujira oracle
vote counters, the Pryzm feeder miss counter and the Injective peggy bridge.
Each network is a list of OracleProbe entries; the handler runs every probe of
the configured network as its own fetch task.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from cosmos_exporter.exporters.namespace import MetricType
from cosmos_exporter.handlers.base import FetchHandler
from cosmos_exporter.monitor.context import to_float
from cosmos_exporter.monitor.scope import FetchScope


# Address kinds a probe can take
VALIDATOR = "validator"
ACCOUNT = "account"

Sample = Tuple[Dict[str, str], float]


@dataclass(frozen=True)
class OracleProbe:
    """
    One upstream query and the counter samples read from it

    path may contain an `{address}` placeholder; extract receives the response
    and the queried address and returns (labels, value) pairs.
    """
    name: str
    metric: str
    help: str
    label_names: Sequence[str]
    path: str
    extract: Callable[[Dict[str, Any], str], List[Sample]]
    address_kind: Optional[str] = VALIDATOR

    def url_path(self, address: str) -> str:
        return self.path.format(address=address)


def _sei_penalty(response: Dict[str, Any], address: str) -> List[Sample]:
    counter = response['vote_penalty_counter']
    return [
        ({'type': 'miss'}, to_float(counter['miss_count'])),
        ({'type': 'abstain'}, to_float(counter['abstain_count'])),
        ({'type': 'success'}, to_float(counter['success_count'])),
    ]


def _kujira_miss(response: Dict[str, Any], address: str) -> List[Sample]:
    return [({'type': 'miss', 'validator': address}, to_float(response['miss_counter']))]


def _pryzm_miss(response: Dict[str, Any], address: str) -> List[Sample]:
    return [({'type': 'miss'}, to_float(response['miss_counter']['counter']))]


def _peggy_observed_nonce(response: Dict[str, Any], address: str) -> List[Sample]:
    return [({'type': 'nonce'}, to_float(response['state']['last_observed_nonce']))]


def _peggy_last_claim(response: Dict[str, Any], address: str) -> List[Sample]:
    event = response['last_claim_event']
    return [
        ({'type': 'nonce'}, to_float(event['ethereum_event_nonce'])),
        ({'type': 'event_height'}, to_float(event['ethereum_event_height'])),
    ]


NETWORK_PROBES: Dict[str, List[OracleProbe]] = {
    'sei': [
        OracleProbe(
            name="vote-penalty-counter",
            metric="cosmos_oracle_vote_penalty_count",
            help="Vote penalty miss count",
            label_names=("type",),
            path="/sei-protocol/sei-chain/oracle/validators/{address}/vote_penalty_counter",
            extract=_sei_penalty
        ),
    ],
    'kujira': [
        OracleProbe(
            name="miss-counter",
            metric="cosmos_kujira_oracle_vote_miss_count",
            help="Vote miss count",
            label_names=("type", "validator"),
            path="/oracle/validators/{address}/miss",
            extract=_kujira_miss
        ),
    ],
    'pryzm': [
        OracleProbe(
            name="feeder-miss-counter",
            metric="cosmos_pryzm_feeder_miss_counter",
            help="miss counter",
            label_names=("type",),
            path="/refractedlabs/oracle/v1/miss_counter/{address}",
            extract=_pryzm_miss
        ),
    ],
    'injective': [
        OracleProbe(
            name="peggy-module-state",
            metric="cosmos_injective_peggy_last_observed_nonce",
            help="Last observed nonce",
            label_names=("type",),
            path="/peggy/v1/module_state",
            extract=_peggy_observed_nonce,
            address_kind=None
        ),
        OracleProbe(
            name="peggy-last-claim",
            metric="cosmos_injective_peggy_last_claimed",
            help="Last claimed ethereum event",
            label_names=("type",),
            path="/peggy/v1/oracle/event/{address}",
            extract=_peggy_last_claim,
            address_kind=ACCOUNT
        ),
    ],
}


def network_address_kind(network: str) -> str:
    """Address kind callers must supply for a network (account for injective, validator otherwise)"""
    kinds = {probe.address_kind for probe in NETWORK_PROBES.get(network, []) if probe.address_kind}
    return ACCOUNT if kinds == {ACCOUNT} else VALIDATOR


class OracleHandler(FetchHandler):
    """
    Oracle and bridge counters of one network

    Metrics depend on the network, see NETWORK_PROBES.
    """

    def __init__(self, ctx, network: str):
        super().__init__(ctx)
        self.network = network
        self.probes = NETWORK_PROBES.get(network, [])

    def register(self):
        for probe in self.probes:
            self.namespace.register(probe.metric, probe.help, probe.label_names, MetricType.COUNTER)

    def launch(self, scope: FetchScope, address: str):
        if not self.probes:
            self.log.error(f"No oracle probes for network '{self.network}'")
            return

        self.register()
        for probe in self.probes:
            scope.spawn(self.fetch_probe(probe, address), f"oracle:{self.network}:{probe.name}:{address}")

    async def fetch_probe(self, probe: OracleProbe, address: str):
        what = f"{self.network} {probe.name}"
        response = await self.query(what, self.client.get(probe.url_path(address)))
        if response is None:
            return

        with self.decoding(what):
            samples = probe.extract(response, address)
            for labels, value in samples:
                self.namespace.inc(probe.metric, value, **labels)
