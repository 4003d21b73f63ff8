"""
reporters/ - Fault reporting

Reporter contract, fan-out group, and adapters for logging, webhooks and
callable-based crash reporting clients.
"""

from .base import (
    BeforeSend,
    Reporter,
    SupportsTagging,
    BaseReporter,
    ReporterGroup,
)

from .console import (
    LoggingReporter,
    SEVERITY_LOG_LEVELS,
)

from .http import (
    HttpReporter,
    ReportPayload,
)

from .callback import (
    CallbackReporter,
)

__all__ = [
    # Contract
    "BeforeSend",
    "Reporter",
    "SupportsTagging",
    "BaseReporter",
    "ReporterGroup",
    # Adapters
    "LoggingReporter",
    "SEVERITY_LOG_LEVELS",
    "HttpReporter",
    "ReportPayload",
    "CallbackReporter",
]
