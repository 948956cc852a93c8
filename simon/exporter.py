"""
Wiring of store, sampler, aggregator and scheduler into one exporter.
"""

import logging
from typing import Optional

from simon.aggregator import Aggregator
from simon.config import ExporterConfig
from simon.render import build_registry, render
from simon.sampler import OSSampler
from simon.scheduler import Scheduler
from simon.store import MetricStore

logger = logging.getLogger(__name__)


class Exporter:
    """Owns the metric store and the collection loop feeding it"""

    def __init__(
        self,
        config: Optional[ExporterConfig] = None,
        sampler: Optional[OSSampler] = None,
        store: Optional[MetricStore] = None
    ):
        self.config = config or ExporterConfig()
        self.store = store or MetricStore()
        self.sampler = sampler or OSSampler(cpu_mode=self.config.cpu_mode)
        self.aggregator = Aggregator(
            self.store,
            cpu_mode=self.config.cpu_mode,
            namespace=self.config.namespace
        )
        self.scheduler = Scheduler(
            self.sampler,
            self.aggregator,
            interval=self.config.collection_interval,
            store=self.store,
            namespace=self.config.namespace
        )
        self.registry = build_registry(self.store)

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> bool:
        stopped = self.scheduler.stop(timeout=self.config.stop_timeout)
        if not stopped:
            logger.warning(
                "Collection loop did not stop in time",
                extra={'context': {'timeout': self.config.stop_timeout}}
            )
        return stopped

    def render(self) -> bytes:
        """Current metrics in Prometheus text format"""
        return render(self.store, self.registry)
