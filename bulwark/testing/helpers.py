"""
testing/helpers.py - Utilities for testing code that uses boundaries

Usage:
    tracker = ErrorTracker()
    sleep = FakeSleep()
    boundary = BoundaryController(
        policy=RetryRecovery(),
        on_error=tracker.on_error,
        sleep=sleep,
    )
    boundary.trigger_error(ValueError("boom"))
    await boundary.wait_idle()

    assert tracker.error_count == 1
    assert sleep.delays == [1.0]
"""

from __future__ import annotations

from typing import Any, Callable, List, Optional
import asyncio

from bulwark.core.enums import ErrorSeverity
from bulwark.core.record import ErrorRecord
from bulwark.reporters.base import BaseReporter, BeforeSend


class ErrorTracker:
    """Collects records passed to a controller's on_error callback."""

    def __init__(self):
        self.errors: List[ErrorRecord] = []

    @property
    def last_error(self) -> Optional[ErrorRecord]:
        return self.errors[-1] if self.errors else None

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def on_error(self, record: ErrorRecord) -> None:
        self.errors.append(record)

    def clear(self) -> None:
        self.errors.clear()


class RecordingReporter(BaseReporter):
    """Reporter that keeps every delivered record in memory."""

    name = "recording"

    def __init__(
        self,
        min_severity: ErrorSeverity = ErrorSeverity.LOW,
        before_send: Optional[BeforeSend] = None,
        delay: float = 0.0,
    ):
        super().__init__(min_severity=min_severity, before_send=before_send)
        self.delay = delay
        self.records: List[ErrorRecord] = []

    @property
    def report_count(self) -> int:
        return len(self.records)

    async def _deliver(self, record: ErrorRecord) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.records.append(record)


class FailingReporter:
    """
    Reporter that raises from every method.

    Deliberately breaks the never-raise contract to exercise isolation.
    """

    def __init__(self, error: Optional[Exception] = None):
        self.error = error or RuntimeError("reporter failure")
        self.calls = 0

    async def report(self, record: ErrorRecord) -> None:
        self.calls += 1
        raise self.error

    def set_user_identifier(self, user_id: Optional[str]) -> None:
        raise self.error

    def set_custom_key(self, key: str, value: Any) -> None:
        raise self.error


class FakeSleep:
    """
    Drop-in for asyncio.sleep that records delays.

    Yields to the event loop once per call so scheduling stays realistic,
    but never waits in real time. elapsed is the cumulative virtual time.
    """

    def __init__(self):
        self.delays: List[float] = []

    @property
    def elapsed(self) -> float:
        return sum(self.delays)

    @property
    def timeline(self) -> List[float]:
        """Cumulative virtual time at which each sleep finished."""
        total = 0.0
        points = []
        for delay in self.delays:
            total += delay
            points.append(total)
        return points

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def always_failing(
    error_factory: Callable[[], Exception] = lambda: RuntimeError("producer failed"),
) -> Callable[[], Any]:
    """Producer that raises a fresh error on every call."""

    def produce():
        raise error_factory()

    return produce
