"""
core/ - Fault records and shared types

This module provides the immutable fault snapshot captured by a boundary,
its severity/classification enums, and the package exception hierarchy.
"""

from .enums import (
    ErrorSeverity,
    ErrorClassification,
    FaultChannel,
)

from .record import (
    ErrorRecord,
    format_trace,
)

from .exceptions import (
    BoundaryError,
    PipelineError,
    PolicyConfigurationError,
    ReporterError,
    ConfigError,
    EscalatedFault,
)

__all__ = [
    # Enums
    "ErrorSeverity",
    "ErrorClassification",
    "FaultChannel",
    # Record
    "ErrorRecord",
    "format_trace",
    # Exceptions
    "BoundaryError",
    "PipelineError",
    "PolicyConfigurationError",
    "ReporterError",
    "ConfigError",
    "EscalatedFault",
]
