"""
Thread-safe registry of labeled gauge and counter series.

One writer (the scheduler thread) mutates the store; any number of readers
call snapshot() concurrently. Every mutation holds the lock only for a single
series write, and snapshot() only for an in-memory copy, so a reader never
sees a half-written series. A snapshot is not a consistent view of a whole
collection cycle: series from the cycle in progress can appear next to series
from the previous one.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from simon.errors import DuplicateMetric, InvalidDelta, MetricKindMismatch


class MetricKind(str, Enum):
    GAUGE = 'gauge'
    COUNTER = 'counter'


Labels = Union[Mapping[str, str], Sequence[str]]


@dataclass(frozen=True)
class SeriesHandle:
    """Reference to one series, returned by get_or_create()"""
    name: str
    label_values: Tuple[str, ...]
    kind: MetricKind


@dataclass(frozen=True)
class FamilyInfo:
    """Metadata of a registered metric family"""
    name: str
    kind: MetricKind
    documentation: str
    labelnames: Tuple[str, ...]


class SnapshotEntry(NamedTuple):
    name: str
    labels: Tuple[Tuple[str, str], ...]
    value: float
    kind: MetricKind


@dataclass
class _Family:
    info: FamilyInfo
    series: Dict[Tuple[str, ...], float] = field(default_factory=dict)


class MetricStore:
    """Named, labeled numeric series with gauge and counter semantics"""

    def __init__(self):
        self._lock = threading.Lock()
        self._families: Dict[str, _Family] = {}

    def register(
        self,
        name: str,
        kind: MetricKind,
        documentation: str,
        labelnames: Sequence[str] = ()
    ) -> FamilyInfo:
        """
        Register a metric family.

        Raises:
            DuplicateMetric: If a family with this name already exists
        """
        info = FamilyInfo(name, MetricKind(kind), documentation, tuple(labelnames))
        with self._lock:
            if name in self._families:
                raise DuplicateMetric(name)
            self._families[name] = _Family(info)
        return info

    def is_registered(self, name: str) -> bool:
        return name in self._families

    def families(self) -> List[FamilyInfo]:
        """Family metadata in registration order"""
        with self._lock:
            return [family.info for family in self._families.values()]

    def _label_values(self, family: _Family, labels: Labels) -> Tuple[str, ...]:
        labelnames = family.info.labelnames
        if isinstance(labels, Mapping):
            if set(labels) != set(labelnames):
                raise ValueError(
                    f"Labels {sorted(labels)} do not match {list(labelnames)} "
                    f"for metric {family.info.name}"
                )
            return tuple(str(labels[key]) for key in labelnames)

        values = tuple(str(value) for value in labels)
        if len(values) != len(labelnames):
            raise ValueError(
                f"Expected {len(labelnames)} label values for metric "
                f"{family.info.name}, got {len(values)}"
            )
        return values

    def get_or_create(self, name: str, labels: Labels = ()) -> SeriesHandle:
        """
        Return a handle to a series, creating it at 0 on first use.

        Raises:
            KeyError: If no family is registered under ``name``
            ValueError: If ``labels`` do not match the family's label names
        """
        family = self._families[name]
        label_values = self._label_values(family, labels)
        with self._lock:
            family.series.setdefault(label_values, 0.0)
        return SeriesHandle(name, label_values, family.info.kind)

    def set(self, handle: SeriesHandle, value: float) -> None:
        """Overwrite a gauge value"""
        if handle.kind is not MetricKind.GAUGE:
            raise MetricKindMismatch(f"Cannot set counter {handle.name}")
        family = self._families[handle.name]
        with self._lock:
            family.series[handle.label_values] = float(value)

    def increment(self, handle: SeriesHandle, delta: float = 1.0) -> None:
        """
        Add a non-negative delta to a series.

        Raises:
            InvalidDelta: If ``delta`` is negative
        """
        if delta < 0:
            raise InvalidDelta(handle.name, delta)
        family = self._families[handle.name]
        with self._lock:
            family.series[handle.label_values] = (
                family.series.get(handle.label_values, 0.0) + float(delta)
            )

    def reset_family(self, name: str) -> None:
        """Drop every series of a family"""
        family = self._families[name]
        with self._lock:
            family.series = {}

    def value(self, name: str, labels: Labels = ()) -> Optional[float]:
        """Current value of a series, or None if it does not exist"""
        family = self._families[name]
        label_values = self._label_values(family, labels)
        with self._lock:
            return family.series.get(label_values)

    def label_values(self, name: str) -> List[Tuple[str, ...]]:
        """Label value tuples currently present in a family"""
        family = self._families[name]
        with self._lock:
            return sorted(family.series)

    def snapshot(self) -> List[SnapshotEntry]:
        """Copy every series, ordered by family registration then labels"""
        with self._lock:
            copied = [
                (family.info, list(family.series.items()))
                for family in self._families.values()
            ]

        entries = []
        for info, series in copied:
            for label_values, value in sorted(series):
                entries.append(SnapshotEntry(
                    name=info.name,
                    labels=tuple(zip(info.labelnames, label_values)),
                    value=value,
                    kind=info.kind
                ))
        return entries
