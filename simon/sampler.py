"""
OS sampler: reads raw host counters through psutil.

The sampler keeps its OS handles alive between calls (primed cpu_percent,
the process_iter cache, interface and disk baselines) so that repeated
sampling refreshes in place instead of re-opening anything.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import psutil

from simon.errors import SourceUnavailable

logger = logging.getLogger(__name__)

CPU_MODE_PERCENTAGE = 'percentage'
CPU_MODE_SECONDS = 'seconds'
CPU_MODES = (CPU_MODE_PERCENTAGE, CPU_MODE_SECONDS)

# Always reported; the rest only where the platform has them
BASE_CPU_TIME_FIELDS = ('user', 'system', 'nice', 'idle')
EXTRA_CPU_TIME_FIELDS = ('iowait', 'irq', 'softirq', 'steal')

PROCESS_ATTRS = ['pid', 'name', 'create_time', 'cpu_percent', 'memory_info', 'io_counters']


@dataclass
class MemoryStats:
    """Physical memory totals in bytes"""
    total: int
    free: int
    available: int
    used: int
    buffers: Optional[int] = None
    cached: Optional[int] = None


@dataclass
class SwapStats:
    """Swap totals in bytes"""
    total: int
    free: int
    used: int


@dataclass
class ProcessStats:
    """Resource usage of one process"""
    pid: int
    name: str
    create_time: float
    run_time: float
    cpu_percent: float
    rss: int
    vms: int
    read_bytes: Optional[int] = None
    write_bytes: Optional[int] = None


@dataclass
class InterfaceCounters:
    """Network counters accumulated since the previous refresh"""
    received: int = 0
    transmitted: int = 0
    packets_received: int = 0
    packets_transmitted: int = 0
    errors_on_received: int = 0
    errors_on_transmitted: int = 0


@dataclass
class DiskCounters:
    """Disk I/O bytes accumulated since the previous refresh"""
    read_bytes: int = 0
    written_bytes: int = 0


@dataclass
class RawSample:
    """Point-in-time OS reading for one collection cycle"""
    timestamp: float
    cpu_percent: List[float] = field(default_factory=list)
    cpu_times: List[Dict[str, float]] = field(default_factory=list)
    memory: Optional[MemoryStats] = None
    swap: Optional[SwapStats] = None
    processes: Dict[int, ProcessStats] = field(default_factory=dict)
    networks: Dict[str, InterfaceCounters] = field(default_factory=dict)
    disks: Dict[str, DiskCounters] = field(default_factory=dict)
    temperatures: Dict[str, float] = field(default_factory=dict)
    failures: List[str] = field(default_factory=list)

    def failed(self, source: str) -> bool:
        return source in self.failures


def _delta(current: int, previous: int) -> int:
    # A counter that went backwards was reset; report nothing for this refresh
    return current - previous if current >= previous else 0


def _process_name(name) -> Optional[str]:
    """Usable process name, or None if missing or not valid text"""
    if not name or not isinstance(name, str):
        return None
    try:
        name.encode('utf-8')
    except UnicodeEncodeError:
        return None
    return name


class OSSampler:
    """Collects a RawSample from the running host"""

    SOURCES = ('cpu', 'memory', 'swap', 'processes', 'networks', 'disks', 'temperatures')

    def __init__(self, cpu_mode: str = CPU_MODE_PERCENTAGE, all_or_nothing: bool = False):
        if cpu_mode not in CPU_MODES:
            raise ValueError(f"cpu_mode must be one of {CPU_MODES}, got {cpu_mode!r}")
        self.cpu_mode = cpu_mode
        self.all_or_nothing = all_or_nothing

        self._net_baseline: Dict[str, tuple] = {}
        self._disk_baseline: Dict[str, tuple] = {}

        # First call establishes the reference point for later readings
        if cpu_mode == CPU_MODE_PERCENTAGE:
            self._prime('cpu', lambda: psutil.cpu_percent(percpu=True, interval=None))
        self._prime('networks', self._refresh_networks)
        self._prime('disks', self._refresh_disks)

    def _prime(self, source: str, read: Callable) -> None:
        try:
            read()
        except (psutil.Error, OSError) as e:
            logger.warning("Could not prime %s baseline: %s", source, e)

    def sample(self, all_or_nothing: Optional[bool] = None) -> RawSample:
        """
        Read every source once.

        A failing source is logged and listed in ``failures``; the others still
        report. Raises SourceUnavailable when every source failed, or on the
        first failure when all-or-nothing was requested.
        """
        strict = self.all_or_nothing if all_or_nothing is None else all_or_nothing
        sample = RawSample(timestamp=time.time())

        readers = (
            ('cpu', self._read_cpu),
            ('memory', self._read_memory),
            ('swap', self._read_swap),
            ('processes', self._read_processes),
            ('networks', self._read_networks),
            ('disks', self._read_disks),
            ('temperatures', self._read_temperatures),
        )

        for source, read in readers:
            try:
                read(sample)
            except (psutil.Error, OSError) as e:
                if strict:
                    raise SourceUnavailable(source, str(e)) from e
                logger.warning(
                    "Skipping %s this cycle: %s", source, e,
                    extra={'context': {'source': source}}
                )
                sample.failures.append(source)

        if len(sample.failures) == len(readers):
            raise SourceUnavailable('all', 'every OS source failed')

        return sample

    def _read_cpu(self, sample: RawSample) -> None:
        if self.cpu_mode == CPU_MODE_PERCENTAGE:
            sample.cpu_percent = [float(p) for p in psutil.cpu_percent(percpu=True, interval=None)]
            return

        per_core = []
        for times in psutil.cpu_times(percpu=True):
            modes = {name: float(getattr(times, name)) for name in BASE_CPU_TIME_FIELDS
                     if hasattr(times, name)}
            for name in EXTRA_CPU_TIME_FIELDS:
                if hasattr(times, name):
                    modes[name] = float(getattr(times, name))
            per_core.append(modes)
        sample.cpu_times = per_core

    def _read_memory(self, sample: RawSample) -> None:
        mem = psutil.virtual_memory()
        sample.memory = MemoryStats(
            total=mem.total,
            free=mem.free,
            available=mem.available,
            used=mem.used,
            buffers=getattr(mem, 'buffers', None),
            cached=getattr(mem, 'cached', None)
        )

    def _read_swap(self, sample: RawSample) -> None:
        swap = psutil.swap_memory()
        sample.swap = SwapStats(total=swap.total, free=swap.free, used=swap.used)

    def _read_processes(self, sample: RawSample) -> None:
        now = time.time()
        processes = {}

        for proc in psutil.process_iter(attrs=PROCESS_ATTRS, ad_value=None):
            info = proc.info
            name = _process_name(info.get('name'))
            if name is None:
                continue

            memory = info.get('memory_info')
            create_time = info.get('create_time')
            if memory is None or create_time is None:
                # Exited or inaccessible between listing and reading
                continue

            io = info.get('io_counters')
            processes[info['pid']] = ProcessStats(
                pid=info['pid'],
                name=name,
                create_time=float(create_time),
                run_time=max(0.0, now - create_time),
                cpu_percent=float(info.get('cpu_percent') or 0.0),
                rss=memory.rss,
                vms=memory.vms,
                read_bytes=io.read_bytes if io is not None else None,
                write_bytes=io.write_bytes if io is not None else None
            )

        sample.processes = processes

    def _refresh_networks(self) -> Dict[str, InterfaceCounters]:
        current = psutil.net_io_counters(pernic=True) or {}
        deltas = {}

        for interface, counters in current.items():
            values = (
                counters.bytes_recv, counters.bytes_sent,
                counters.packets_recv, counters.packets_sent,
                counters.errin, counters.errout
            )
            # An interface seen for the first time is its own baseline
            previous = self._net_baseline.get(interface, values)
            deltas[interface] = InterfaceCounters(*(
                _delta(now, before) for now, before in zip(values, previous)
            ))
            self._net_baseline[interface] = values

        return deltas

    def _read_networks(self, sample: RawSample) -> None:
        sample.networks = self._refresh_networks()

    def _refresh_disks(self) -> Dict[str, DiskCounters]:
        current = psutil.disk_io_counters(perdisk=True) or {}
        deltas = {}

        for disk, counters in current.items():
            values = (counters.read_bytes, counters.write_bytes)
            previous = self._disk_baseline.get(disk, values)
            deltas[disk] = DiskCounters(
                read_bytes=_delta(values[0], previous[0]),
                written_bytes=_delta(values[1], previous[1])
            )
            self._disk_baseline[disk] = values

        return deltas

    def _read_disks(self, sample: RawSample) -> None:
        sample.disks = self._refresh_disks()

    def _read_temperatures(self, sample: RawSample) -> None:
        if not hasattr(psutil, 'sensors_temperatures'):
            return

        readings = {}
        for chip, entries in (psutil.sensors_temperatures() or {}).items():
            for index, entry in enumerate(entries):
                label = entry.label or str(index)
                readings[f"{chip}/{label}"] = float(entry.current)
        sample.temperatures = readings
