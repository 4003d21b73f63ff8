"""
boundary/events.py - Controller transition events and state snapshot

Module 4: Boundary Controller
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

from bulwark.core.record import ErrorRecord

if TYPE_CHECKING:
    from .controller import BoundaryController


class BoundaryEvent(str, Enum):
    """Transitions a controller announces to subscribers."""
    FAULTED = "faulted"      # Healthy/Faulted -> Faulted
    RETRIED = "retried"      # Faulted -> Healthy, same producer
    RESET = "reset"          # -> Healthy, producer re-created
    DISPOSED = "disposed"


# Handler signature: handler(event, controller)
EventHandler = Callable[[BoundaryEvent, "BoundaryController"], None]


@dataclass(frozen=True)
class BoundaryState:
    """Point-in-time view of a controller."""

    current_error: Optional[ErrorRecord]
    attempt_count: int
    recovery_in_progress: bool
    producer_generation: int
    disposed: bool

    @property
    def has_error(self) -> bool:
        return self.current_error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_error": self.has_error,
            "current_error": self.current_error.to_dict() if self.current_error else None,
            "attempt_count": self.attempt_count,
            "recovery_in_progress": self.recovery_in_progress,
            "producer_generation": self.producer_generation,
            "disposed": self.disposed,
        }
