#!/usr/bin/env python3
"""
Request-scoped Metric Namespace

Wraps a fresh prometheus_client CollectorRegistry per scrape request. Fetch tasks
register instruments by name and write samples by label values; the HTTP layer
renders the registry once every task has finished.
"""

import threading
from typing import Dict, Optional, Sequence, Union

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class MetricType:
    """Metric type constants"""
    GAUGE = "gauge"
    COUNTER = "counter"


class MetricNamespace:
    """
    Isolated collection of labeled instruments for one request

    Const labels (e.g. chain_id) are prepended to every instrument's label names,
    so callers only pass the labels they care about.

    Usage:
        namespace = MetricNamespace(const_labels={"chain_id": "cosmoshub-4"})
        namespace.register("cosmos_general_supply_total", "Total supply", ["denom"])
        namespace.inc("cosmos_general_supply_total", 1000.0, denom="uatom")
        body = namespace.render()
    """

    def __init__(self, const_labels: Optional[Dict[str, str]] = None):
        self.const_labels = dict(const_labels or {})
        self.registry = CollectorRegistry()
        self._metrics: Dict[str, Union[Gauge, Counter]] = {}
        self._types: Dict[str, str] = {}
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        documentation: str,
        labelnames: Sequence[str] = (),
        metric_type: str = MetricType.GAUGE
    ) -> Union[Gauge, Counter]:
        """
        Register an instrument, or return the existing one with the same name

        Raises:
            ValueError: name already registered with a different type or labels
        """
        all_labels = tuple(self.const_labels) + tuple(labelnames)

        with self._lock:
            existing = self._metrics.get(name)
            if existing is not None:
                if self._types[name] != metric_type or tuple(existing._labelnames) != all_labels:
                    raise ValueError(f"metric {name} already registered with a different shape")
                return existing

            if metric_type == MetricType.COUNTER:
                metric = Counter(name, documentation, all_labels, registry=self.registry)
            else:
                metric = Gauge(name, documentation, all_labels, registry=self.registry)

            self._metrics[name] = metric
            self._types[name] = metric_type
            return metric

    def set(self, name: str, value: float, /, **labels: str):
        """Set a gauge sample (last write wins)"""
        self._child(name, labels).set(value)

    def inc(self, name: str, value: float, /, **labels: str):
        """Add to a gauge or counter sample (used for running totals)"""
        self._child(name, labels).inc(value)

    def observe(self, name: str, value: float, /, **labels: str):
        """Set gauges, increment counters"""
        if self._types.get(name) == MetricType.COUNTER:
            self.inc(name, value, **labels)
        else:
            self.set(name, value, **labels)

    def sample(self, name: str, /, **labels: str) -> Optional[float]:
        """Read back a sample value, None if it was never written"""
        sample_name = name
        if self._types.get(name) == MetricType.COUNTER and not name.endswith('_total'):
            sample_name = f"{name}_total"
        full_labels = {**self.const_labels, **{k: str(v) for k, v in labels.items()}}
        return self.registry.get_sample_value(sample_name, full_labels)

    def render(self) -> bytes:
        """Serialize the namespace in the Prometheus text exposition format"""
        return generate_latest(self.registry)

    def _child(self, name: str, labels: Dict[str, str]):
        metric = self._metrics.get(name)
        if metric is None:
            raise KeyError(f"metric {name} is not registered")
        if not metric._labelnames:
            return metric
        values = {**self.const_labels, **{k: str(v) for k, v in labels.items()}}
        return metric.labels(**values)

    def __repr__(self) -> str:
        return f"MetricNamespace(metrics={len(self._metrics)}, const_labels={self.const_labels})"
