"""
reporters/console.py - Reporter that writes to the logging system

Module 3: Reporters

Useful during development. Production deployments usually add an
HttpReporter or CallbackReporter next to it.
"""

from __future__ import annotations

from typing import List, Optional
import logging

from bulwark.core.enums import ErrorSeverity
from bulwark.core.record import ErrorRecord

from .base import BaseReporter, BeforeSend


SEVERITY_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.DEBUG,
    ErrorSeverity.MEDIUM: logging.INFO,
    ErrorSeverity.HIGH: logging.WARNING,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}

RULE_WIDTH = 60


class LoggingReporter(BaseReporter):
    """
    Logs each record as a framed block.

    Usage:
        controller = BoundaryController(reporters=[LoggingReporter()])
    """

    name = "console"

    def __init__(
        self,
        include_trace: bool = True,
        min_severity: ErrorSeverity = ErrorSeverity.LOW,
        before_send: Optional[BeforeSend] = None,
        logger_name: str = "reporters.console",
    ):
        super().__init__(min_severity=min_severity, before_send=before_send)
        self.include_trace = include_trace
        self._logger = logging.getLogger(logger_name)

    def format_record(self, record: ErrorRecord) -> str:
        """Render the block written to the log."""
        lines: List[str] = [
            "=" * RULE_WIDTH,
            "ERROR BOUNDARY CAUGHT ERROR",
            "=" * RULE_WIDTH,
            f"Error: {record.fault_type}: {record.message}",
            f"Classification: {record.classification.value}",
            f"Severity: {record.severity.value}",
            f"Captured: {record.captured_at.isoformat()}",
        ]

        if record.source:
            lines.append(f"Source: {record.source}")
        if self._user_id:
            lines.append(f"User: {self._user_id}")
        if self._custom_keys:
            lines.append(f"Custom Data: {self._custom_keys}")
        if record.context:
            lines.append(f"Context: {dict(record.context)}")

        if self.include_trace and record.trace:
            lines.append("-" * RULE_WIDTH)
            lines.append("Trace:")
            lines.append(record.trace.rstrip())

        lines.append("=" * RULE_WIDTH)
        return "\n".join(lines)

    async def _deliver(self, record: ErrorRecord) -> None:
        self._logger.log(
            SEVERITY_LOG_LEVELS[record.severity],
            self.format_record(record),
        )
