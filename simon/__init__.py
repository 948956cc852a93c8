"""
simon: host metrics exporter for Prometheus

Samples CPU, memory, swap, per-process, network and disk statistics on a
background thread and serves them in the Prometheus text format.
"""

from simon.aggregator import Aggregator
from simon.sampler import OSSampler, RawSample
from simon.scheduler import Scheduler, SchedulerState
from simon.store import MetricKind, MetricStore

__all__ = [
    'Aggregator',
    'MetricKind',
    'MetricStore',
    'OSSampler',
    'RawSample',
    'Scheduler',
    'SchedulerState',
]
__version__ = '1.0.0'
