"""
core/exceptions.py - Package exceptions

Faults captured by a boundary are arbitrary exceptions raised by the
producer. The classes here are raised by the boundary machinery itself, or
by hosts that want to tag a fault with the pipeline stage it came from.
"""

from __future__ import annotations

from typing import Optional


class BoundaryError(Exception):
    """Base exception for boundary operations."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"{self.message} [source={self.source}]"
        return self.message


class PipelineError(BoundaryError):
    """
    Fault raised by the host's build/render/state-update pipeline.

    stage is one of "build", "render", "state" when the host knows it;
    otherwise classification falls back to scanning the message.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        source: Optional[str] = None,
    ):
        super().__init__(message, source=source)
        self.stage = stage


class PolicyConfigurationError(BoundaryError, ValueError):
    """Raised when a recovery policy is constructed with invalid parameters."""


class ReporterError(BoundaryError):
    """Raised inside a reporter adapter when delivery to its sink fails."""

    def __init__(
        self,
        message: str,
        reporter: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message, source=reporter or None)
        self.reporter = reporter
        self.status_code = status_code


class ConfigError(BoundaryError):
    """Raised when configuration values cannot be parsed."""


class EscalatedFault(BoundaryError):
    """
    Carries a non-exception fault value out of a boundary on escalation.

    Exception faults are re-raised as themselves; this wrapper is only used
    when the captured fault is some other value.
    """

    def __init__(self, fault, source: Optional[str] = None):
        super().__init__(f"Escalated fault: {fault!r}", source=source)
        self.fault = fault
