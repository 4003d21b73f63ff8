"""
core/record.py - Immutable snapshot of one captured fault

Module 1: Error Record

A record is created exactly once per captured fault, inside the boundary
controller. It is never mutated; with_overrides() returns a new record.

INVARIANT: Equality covers fault, trace, severity, classification and
source only. captured_at and context never take part in equality or hashing.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType, TracebackType
from typing import Any, Dict, Mapping, Optional
import traceback

from .enums import ErrorClassification, ErrorSeverity


def format_trace(
    fault: Optional[BaseException] = None,
    tb: Optional[TracebackType] = None,
) -> str:
    """
    Render capture-time stack context as text.

    Uses the fault's own traceback when it carries one, otherwise the stack
    of the caller. Returns "" when neither is available.
    """
    if tb is None and fault is not None:
        tb = fault.__traceback__

    if tb is not None:
        return "".join(traceback.format_exception(type(fault), fault, tb))

    # Drop this frame
    stack = traceback.format_stack()[:-1]
    return "".join(stack)


def _freeze_context(context: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(context or {}))


@dataclass(frozen=True)
class ErrorRecord:
    """
    Structured representation of a captured fault.

    Attributes:
        fault: The original error value (usually an exception)
        trace: Formatted stack context, may be empty
        severity: How badly the fault affects the producer
        classification: Where the fault originated
        source: Optional identifier of the boundary or component
        captured_at: When the fault was captured (UTC)
        context: Read-only ordered mapping of extra data
    """

    fault: Any
    trace: str = ""
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    classification: ErrorClassification = ErrorClassification.UNKNOWN
    source: Optional[str] = None
    captured_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
        compare=False,
    )
    context: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({}),
        compare=False,
    )

    def __post_init__(self):
        if not isinstance(self.context, MappingProxyType):
            object.__setattr__(self, "context", _freeze_context(self.context))
        if self.trace is None:
            object.__setattr__(self, "trace", "")

    @property
    def message(self) -> str:
        """Human-readable fault message."""
        return str(self.fault)

    @property
    def fault_type(self) -> str:
        return type(self.fault).__name__

    def with_overrides(self, **changes: Any) -> "ErrorRecord":
        """
        Create a copy with the given fields replaced.

        Unset fields, including captured_at, carry over from this record.
        """
        if "context" in changes:
            changes["context"] = _freeze_context(changes["context"])
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for JSON/logging."""
        return {
            "fault_type": self.fault_type,
            "message": self.message,
            "trace": self.trace,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "source": self.source,
            "captured_at": self.captured_at.isoformat(),
            "context": dict(self.context),
        }

    def __str__(self) -> str:
        return (
            f"ErrorRecord(fault={self.fault!r}, "
            f"classification={self.classification.value}, "
            f"severity={self.severity.value}, "
            f"source={self.source}, "
            f"captured_at={self.captured_at.isoformat()})"
        )
