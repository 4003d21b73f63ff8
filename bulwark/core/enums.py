"""
core/enums.py - Fault severity and classification enums

Module 1: Error Record
"""

from enum import Enum


class ErrorSeverity(str, Enum):
    """
    Severity of a captured fault.

    Ordered: LOW < MEDIUM < HIGH < CRITICAL.
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, ErrorSeverity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    ErrorSeverity.LOW: 0,
    ErrorSeverity.MEDIUM: 1,
    ErrorSeverity.HIGH: 2,
    ErrorSeverity.CRITICAL: 3,
}


class ErrorClassification(str, Enum):
    """Where in the producer's lifecycle a fault originated."""
    BUILD = "build"             # Producer construction
    RUNTIME = "runtime"         # Ordinary execution
    RENDERING = "rendering"     # Output rendering
    STATE = "state"             # State update pipeline
    EXTERNAL = "external"       # External service (API, database)
    ASYNC_FAULT = "async_fault"  # Detached background task
    UNKNOWN = "unknown"


class FaultChannel(str, Enum):
    """Path a fault arrived on before reaching the controller."""
    SYNC = "sync"
    ASYNC = "async"
    BUILD = "build"
    RENDER = "render"
    STATE = "state"
    MANUAL = "manual"
