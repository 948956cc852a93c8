"""
Prometheus text exposition of the metric store.
"""

from collections import OrderedDict

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.registry import Collector

from simon.errors import EncodingFailure
from simon.store import MetricKind, MetricStore

CONTENT_TYPE = CONTENT_TYPE_LATEST


class StoreCollector(Collector):
    """Exposes a MetricStore snapshot as prometheus_client metric families"""

    def __init__(self, store: MetricStore):
        self.store = store

    def collect(self):
        families = OrderedDict()
        for info in self.store.families():
            if info.kind is MetricKind.COUNTER:
                family = CounterMetricFamily(info.name, info.documentation, labels=info.labelnames)
            else:
                family = GaugeMetricFamily(info.name, info.documentation, labels=info.labelnames)
            families[info.name] = family

        for entry in self.store.snapshot():
            family = families.get(entry.name)
            if family is None:
                continue
            family.add_metric([value for _, value in entry.labels], entry.value)

        return iter(families.values())


def build_registry(store: MetricStore) -> CollectorRegistry:
    registry = CollectorRegistry(auto_describe=False)
    registry.register(StoreCollector(store))
    return registry


def render(store: MetricStore, registry: CollectorRegistry = None) -> bytes:
    """
    Encode the store's current values in the Prometheus text format.

    Raises:
        EncodingFailure: If the snapshot cannot be serialized
    """
    if registry is None:
        registry = build_registry(store)
    try:
        return generate_latest(registry)
    except Exception as e:
        raise EncodingFailure(f"Could not encode metrics: {e}") from e
