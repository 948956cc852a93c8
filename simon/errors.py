"""
Exception hierarchy for the exporter.
"""


class SimonError(Exception):
    """Base class for all exporter errors"""
    pass


class ConfigError(SimonError):
    """Configuration validation error"""
    pass


class SourceUnavailable(SimonError):
    """An OS subsystem could not be read this cycle"""

    def __init__(self, source: str, reason: str = ''):
        self.source = source
        self.reason = reason
        message = f"Source unavailable: {source}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InvalidDelta(SimonError):
    """A negative increment was attempted"""

    def __init__(self, name: str, delta: float):
        self.name = name
        self.delta = delta
        super().__init__(f"Negative increment {delta!r} for metric {name}")


class MetricKindMismatch(SimonError):
    """Operation not allowed for the metric's kind"""
    pass


class DuplicateMetric(SimonError):
    """A metric family was registered twice"""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Metric already registered: {name}")


class AlreadyRunning(SimonError):
    """Scheduler start requested while a loop is active"""
    pass


class NotRunning(SimonError):
    """Scheduler operation requires a started loop"""
    pass


class EncodingFailure(SimonError):
    """The metric snapshot could not be serialized"""
    pass
