"""
Folds RawSamples into the metric store.

Rules per family:

- process gauges are rebuilt from scratch every cycle, keyed by process name
  (sum of CPU and memory, earliest start time, longest run time)
- process disk counters are never reset; per-process deltas are computed
  against a private (pid, create_time) table before being added by name
- network and disk counters add the sampler's per-refresh deltas
- CPU seconds accumulate the delta of the OS's absolute per-core time, so the
  counters stay monotonic for every reader
"""

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from simon.sampler import CPU_MODE_PERCENTAGE, CPU_MODE_SECONDS, CPU_MODES, RawSample
from simon.store import MetricKind, MetricStore

logger = logging.getLogger(__name__)

GAUGE = MetricKind.GAUGE
COUNTER = MetricKind.COUNTER

# (subsystem, name, kind, documentation, labelnames)
CPU_PERCENTAGE_METRIC = ('cpu', 'usage_percentage', GAUGE, 'CPU usage percentage per core', ('core',))
CPU_SECONDS_METRIC = ('cpu', 'seconds_total', COUNTER, 'CPU time in seconds by mode', ('core', 'mode'))

MEMORY_METRICS = (
    ('memory', 'total_bytes', GAUGE, 'Total physical memory in bytes', ()),
    ('memory', 'free_bytes', GAUGE, 'Free physical memory in bytes', ()),
    ('memory', 'available_bytes', GAUGE, 'Available physical memory in bytes', ()),
    ('memory', 'used_bytes', GAUGE, 'Used physical memory in bytes', ()),
    ('memory', 'buffers_bytes', GAUGE, 'Buffer memory in bytes', ()),
    ('memory', 'cached_bytes', GAUGE, 'Cached memory in bytes', ()),
    ('swap', 'total_bytes', GAUGE, 'Total swap memory in bytes', ()),
    ('swap', 'free_bytes', GAUGE, 'Free swap memory in bytes', ()),
    ('swap', 'used_bytes', GAUGE, 'Used swap memory in bytes', ()),
)

PROCESS_GAUGE_METRICS = (
    ('process', 'cpu_usage_percentage', GAUGE, 'CPU usage per process (aggregated by name)', ('name',)),
    ('process', 'memory_bytes', GAUGE, 'Memory usage per process (aggregated by name)', ('name',)),
    ('process', 'virtual_memory_bytes', GAUGE, 'Virtual memory usage per process (aggregated by name)', ('name',)),
    ('process', 'start_time_seconds', GAUGE, 'Start time per process (earliest start time by name)', ('name',)),
    ('process', 'runtime_seconds', GAUGE, 'Runtime per process (max runtime by name)', ('name',)),
)

PROCESS_COUNTER_METRICS = (
    ('process', 'disk_read_bytes_total', COUNTER, 'Disk read per process (aggregated by name)', ('name',)),
    ('process', 'disk_write_bytes_total', COUNTER, 'Disk write per process (aggregated by name)', ('name',)),
)

NETWORK_METRICS = (
    ('network', 'received_bytes_total', COUNTER,
     'Total number of bytes received, per network interface', ('interface',)),
    ('network', 'transmitted_bytes_total', COUNTER,
     'Total number of bytes transmitted, per network interface', ('interface',)),
    ('network', 'packets_received_total', COUNTER,
     'Total number of packets received, per network interface', ('interface',)),
    ('network', 'packets_transmitted_total', COUNTER,
     'Total number of packets transmitted, per network interface', ('interface',)),
    ('network', 'errors_on_received_total', COUNTER,
     'Total number of errors on received packets, per network interface', ('interface',)),
    ('network', 'errors_on_transmitted_total', COUNTER,
     'Total number of errors on transmitted packets, per network interface', ('interface',)),
)

DISK_METRICS = (
    ('disk', 'read_bytes_total', COUNTER, 'Total number of bytes read, per disk', ('disk',)),
    ('disk', 'written_bytes_total', COUNTER, 'Total number of bytes written, per disk', ('disk',)),
)

TEMPERATURE_METRIC = ('temp', 'celsius', GAUGE, 'Temperature in Celsius', ('sensor',))


@dataclass
class ProcessAggregate:
    """Per-name aggregate of all processes sharing that name"""
    cpu_percent: float = 0.0
    memory: float = 0.0
    virtual_memory: float = 0.0
    start_time: float = 0.0
    run_time: float = 0.0
    count: int = 0

    def add(self, cpu_percent: float, rss: int, vms: int, start_time: float, run_time: float) -> None:
        self.cpu_percent += cpu_percent
        self.memory += rss
        self.virtual_memory += vms
        self.start_time = start_time if self.count == 0 else min(self.start_time, start_time)
        self.run_time = max(self.run_time, run_time)
        self.count += 1


def metric_name(namespace: str, subsystem: str, name: str) -> str:
    return '_'.join(part for part in (namespace, subsystem, name) if part)


class Aggregator:
    """Applies per-metric combination rules to one sample per cycle"""

    def __init__(self, store: MetricStore, cpu_mode: str = CPU_MODE_PERCENTAGE, namespace: str = 'simon'):
        if cpu_mode not in CPU_MODES:
            raise ValueError(f"cpu_mode must be one of {CPU_MODES}, got {cpu_mode!r}")
        self.store = store
        self.cpu_mode = cpu_mode
        self.namespace = namespace

        # Private state, never exposed through the store
        self._cpu_seconds_seen: Dict[Tuple[str, str], float] = {}
        self._process_io_seen: Dict[Tuple[int, float], Tuple[int, int]] = {}

        cpu_metric = CPU_PERCENTAGE_METRIC if cpu_mode == CPU_MODE_PERCENTAGE else CPU_SECONDS_METRIC
        self.cpu_family = self._register(cpu_metric)
        self.memory_families = {
            (metric[0], metric[1]): self._register(metric) for metric in MEMORY_METRICS
        }
        self.process_gauge_families = [self._register(metric) for metric in PROCESS_GAUGE_METRICS]
        self.process_counter_families = [self._register(metric) for metric in PROCESS_COUNTER_METRICS]
        self.network_families = [self._register(metric) for metric in NETWORK_METRICS]
        self.disk_families = [self._register(metric) for metric in DISK_METRICS]
        self.temperature_family = self._register(TEMPERATURE_METRIC)

    def _register(self, metric) -> str:
        subsystem, name, kind, documentation, labelnames = metric
        full_name = metric_name(self.namespace, subsystem, name)
        self.store.register(full_name, kind, documentation, labelnames)
        return full_name

    def aggregate(self, sample: RawSample) -> None:
        """Fold one sample into the store, skipping sources that failed"""
        if not sample.failed('cpu'):
            if self.cpu_mode == CPU_MODE_SECONDS:
                self.update_cpu_seconds(sample)
            else:
                self.update_cpu_usage(sample)
        if sample.memory is not None or sample.swap is not None:
            self.update_memory(sample)
        if not sample.failed('processes'):
            self.update_process_gauges(sample)
            self.update_process_disk(sample)
        self.update_network(sample)
        self.update_disks(sample)
        self.update_temperatures(sample)

        logger.debug(
            "Aggregated sample",
            extra={'context': {
                'processes': len(sample.processes),
                'interfaces': len(sample.networks),
                'failures': sample.failures,
            }}
        )

    def update_cpu_usage(self, sample: RawSample) -> None:
        for core, percent in enumerate(sample.cpu_percent):
            handle = self.store.get_or_create(self.cpu_family, {'core': str(core)})
            self.store.set(handle, percent)

    def update_cpu_seconds(self, sample: RawSample) -> None:
        for core, modes in enumerate(sample.cpu_times):
            for mode, seconds in modes.items():
                key = (str(core), mode)
                previous = self._cpu_seconds_seen.get(key, 0.0)
                # Time going backwards means the core was reset; re-baseline
                delta = seconds - previous if seconds >= previous else 0.0
                self._cpu_seconds_seen[key] = seconds

                handle = self.store.get_or_create(self.cpu_family, key)
                self.store.increment(handle, delta)

    def update_memory(self, sample: RawSample) -> None:
        values = {}
        if sample.memory is not None:
            mem = sample.memory
            values.update({
                ('memory', 'total_bytes'): mem.total,
                ('memory', 'free_bytes'): mem.free,
                ('memory', 'available_bytes'): mem.available,
                ('memory', 'used_bytes'): mem.used,
                ('memory', 'buffers_bytes'): mem.buffers,
                ('memory', 'cached_bytes'): mem.cached,
            })
        if sample.swap is not None:
            swap = sample.swap
            values.update({
                ('swap', 'total_bytes'): swap.total,
                ('swap', 'free_bytes'): swap.free,
                ('swap', 'used_bytes'): swap.used,
            })

        for key, value in values.items():
            if value is None:
                continue
            handle = self.store.get_or_create(self.memory_families[key])
            self.store.set(handle, value)

    def aggregate_processes(self, sample: RawSample) -> Dict[str, ProcessAggregate]:
        """Combine same-named processes into one aggregate per name"""
        aggregates: Dict[str, ProcessAggregate] = {}
        for process in sample.processes.values():
            if not process.name or not process.name.strip():
                continue
            aggregates.setdefault(process.name, ProcessAggregate()).add(
                cpu_percent=process.cpu_percent,
                rss=process.rss,
                vms=process.vms,
                start_time=process.create_time,
                run_time=process.run_time
            )
        return aggregates

    def update_process_gauges(self, sample: RawSample) -> None:
        aggregates = self.aggregate_processes(sample)

        for family in self.process_gauge_families:
            self.store.reset_family(family)

        cpu, memory, virtual_memory, start_time, run_time = self.process_gauge_families
        for name, agg in aggregates.items():
            labels = {'name': name}
            self.store.set(self.store.get_or_create(cpu, labels), agg.cpu_percent)
            self.store.set(self.store.get_or_create(memory, labels), agg.memory)
            self.store.set(self.store.get_or_create(virtual_memory, labels), agg.virtual_memory)
            self.store.set(self.store.get_or_create(start_time, labels), agg.start_time)
            self.store.set(self.store.get_or_create(run_time, labels), agg.run_time)

    def update_process_disk(self, sample: RawSample) -> None:
        read_family, write_family = self.process_counter_families
        seen: Dict[Tuple[int, float], Tuple[int, int]] = {}
        per_name: Dict[str, Tuple[int, int]] = {}

        for process in sample.processes.values():
            if not process.name or not process.name.strip():
                continue
            read_delta, write_delta = 0, 0
            identity = (process.pid, process.create_time)

            if process.read_bytes is None or process.write_bytes is None:
                # Still alive but unreadable this cycle: keep its baseline
                if identity in self._process_io_seen:
                    seen[identity] = self._process_io_seen[identity]
            else:
                last_read, last_write = self._process_io_seen.get(identity, (0, 0))
                read_delta = max(0, process.read_bytes - last_read)
                write_delta = max(0, process.write_bytes - last_write)
                seen[identity] = (process.read_bytes, process.write_bytes)

            total_read, total_write = per_name.get(process.name, (0, 0))
            per_name[process.name] = (total_read + read_delta, total_write + write_delta)

        # Exited processes drop out; a reused pid starts a new identity
        self._process_io_seen = seen

        for name, (read_delta, write_delta) in per_name.items():
            labels = {'name': name}
            self.store.increment(self.store.get_or_create(read_family, labels), read_delta)
            self.store.increment(self.store.get_or_create(write_family, labels), write_delta)

    def update_network(self, sample: RawSample) -> None:
        for interface, counters in sample.networks.items():
            labels = {'interface': interface}
            deltas = (
                counters.received,
                counters.transmitted,
                counters.packets_received,
                counters.packets_transmitted,
                counters.errors_on_received,
                counters.errors_on_transmitted,
            )
            for family, delta in zip(self.network_families, deltas):
                self.store.increment(self.store.get_or_create(family, labels), delta)

    def update_disks(self, sample: RawSample) -> None:
        read_family, written_family = self.disk_families
        for disk, counters in sample.disks.items():
            labels = {'disk': disk}
            self.store.increment(self.store.get_or_create(read_family, labels), counters.read_bytes)
            self.store.increment(self.store.get_or_create(written_family, labels), counters.written_bytes)

    def update_temperatures(self, sample: RawSample) -> None:
        for sensor, celsius in sample.temperatures.items():
            handle = self.store.get_or_create(self.temperature_family, {'sensor': sensor})
            self.store.set(handle, celsius)

    @property
    def tracked_processes(self) -> int:
        """Number of process identities in the private disk table"""
        return len(self._process_io_seen)
