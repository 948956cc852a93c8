"""
Background collection loop.

The scheduler thread is the only code that touches the sampler's OS handles.
Shutdown is cooperative: stop() sets an event that the loop checks at the top
of every iteration and that also cuts the inter-cycle sleep short. A cycle in
progress always runs to completion.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from simon.aggregator import Aggregator
from simon.errors import AlreadyRunning, NotRunning
from simon.sampler import OSSampler
from simon.store import MetricKind, MetricStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0


class SchedulerState(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    STOPPING = 'stopping'
    STOPPED = 'stopped'


@dataclass
class CycleResult:
    """Outcome of one collection cycle"""
    started_at: float
    duration: float
    ok: bool
    failures: List[str] = field(default_factory=list)
    error: Optional[str] = None


class Scheduler:
    """Drives sample -> aggregate on a fixed interval in a dedicated thread"""

    def __init__(
        self,
        sampler: OSSampler,
        aggregator: Aggregator,
        interval: float = DEFAULT_INTERVAL,
        store: Optional[MetricStore] = None,
        namespace: str = 'simon'
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval!r}")
        self.sampler = sampler
        self.aggregator = aggregator
        self.interval = interval
        self.store = store

        self.cycles = 0
        self.failed_cycles = 0
        self.last_result: Optional[CycleResult] = None

        self._state = SchedulerState.IDLE
        self._state_lock = threading.Lock()
        # Exclusive access to the sampler's OS handles
        self._cycle_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._self_metrics = None
        if store is not None:
            self._self_metrics = self._register_self_metrics(store, namespace)

    @staticmethod
    def _register_self_metrics(store: MetricStore, namespace: str):
        prefix = f"{namespace}_exporter" if namespace else 'exporter'
        names = (
            f"{prefix}_cycles_total",
            f"{prefix}_cycle_failures_total",
            f"{prefix}_cycle_duration_seconds",
        )
        store.register(names[0], MetricKind.COUNTER, 'Collection cycles run')
        store.register(names[1], MetricKind.COUNTER, 'Collection cycles that raised an error')
        store.register(names[2], MetricKind.GAUGE, 'Duration of the last collection cycle in seconds')
        return tuple(store.get_or_create(name) for name in names)

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    def start(self) -> None:
        """
        Launch the collection loop.

        Raises:
            AlreadyRunning: If a loop is running or still stopping
        """
        with self._state_lock:
            if self._state in (SchedulerState.RUNNING, SchedulerState.STOPPING):
                raise AlreadyRunning(f"Scheduler is {self._state.value}")
            self._stop_event.clear()
            self._state = SchedulerState.RUNNING
            self._thread = threading.Thread(
                target=self._run, name='simon-scheduler', daemon=True
            )
            self._thread.start()

        logger.info(
            "Collection loop started",
            extra={'context': {'interval': self.interval}}
        )

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Request shutdown and wait for the loop to finish.

        Returns True once the loop has stopped (or was never running), False
        if it did not finish within ``timeout``.
        """
        with self._state_lock:
            if self._state in (SchedulerState.IDLE, SchedulerState.STOPPED):
                return True
            if self._state is SchedulerState.RUNNING:
                self._state = SchedulerState.STOPPING
            self._stop_event.set()
            thread = self._thread

        logger.info("Stopping collection loop")
        return self._join(thread, timeout)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the loop exits.

        Raises:
            NotRunning: If the scheduler was never started
        """
        if self._thread is None:
            raise NotRunning("Scheduler was never started")
        return self._join(self._thread, timeout)

    def _join(self, thread: Optional[threading.Thread], timeout: Optional[float]) -> bool:
        if thread is None or thread is threading.current_thread():
            return self._state is SchedulerState.STOPPED
        thread.join(timeout)
        return not thread.is_alive()

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                self.run_once()
                self._stop_event.wait(self.interval)
        finally:
            with self._state_lock:
                self._state = SchedulerState.STOPPED
            logger.info(
                "Collection loop stopped",
                extra={'context': {'cycles': self.cycles, 'failed_cycles': self.failed_cycles}}
            )

    def run_once(self) -> CycleResult:
        """Run one sample -> aggregate cycle; errors are logged, not raised"""
        started_at = time.time()
        start = time.monotonic()

        with self._cycle_lock:
            try:
                sample = self.sampler.sample()
                self.aggregator.aggregate(sample)
                result = CycleResult(
                    started_at=started_at,
                    duration=time.monotonic() - start,
                    ok=True,
                    failures=list(sample.failures)
                )
            except Exception as e:
                logger.error("Error in collection cycle: %s", e, exc_info=True)
                result = CycleResult(
                    started_at=started_at,
                    duration=time.monotonic() - start,
                    ok=False,
                    error=str(e)
                )

        self._record(result)
        return result

    def _record(self, result: CycleResult) -> None:
        self.cycles += 1
        if not result.ok:
            self.failed_cycles += 1
        self.last_result = result

        if self._self_metrics is not None:
            cycles, failures, duration = self._self_metrics
            self.store.increment(cycles)
            if not result.ok:
                self.store.increment(failures)
            self.store.set(duration, result.duration)

        logger.debug(
            "Collection cycle finished",
            extra={'context': {
                'ok': result.ok,
                'duration_ms': round(result.duration * 1000, 2),
                'failures': result.failures,
            }}
        )
