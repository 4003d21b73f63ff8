"""
reporters/base.py - Reporter contract and fan-out group

Module 3: Reporters

A Reporter delivers an ErrorRecord to one sink. report() must never raise:
failures are caught and logged by the reporter itself. ReporterGroup fans a
record out to every member concurrently and isolates members from each
other, so a reporter that breaks the contract cannot affect its siblings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)
import asyncio
import logging

from bulwark.core.enums import ErrorSeverity
from bulwark.core.record import ErrorRecord


logger = logging.getLogger("reporters.base")

# Return None to suppress the report, or a (possibly modified) record
BeforeSend = Callable[[ErrorRecord], Optional[ErrorRecord]]


# =============================================================================
# CAPABILITIES
# =============================================================================

@runtime_checkable
class Reporter(Protocol):
    """Sink for captured faults."""

    async def report(self, record: ErrorRecord) -> None: ...
    def set_user_identifier(self, user_id: Optional[str]) -> None: ...
    def set_custom_key(self, key: str, value: Any) -> None: ...


@runtime_checkable
class SupportsTagging(Protocol):
    """Optional capability: reporters that attach string tags to every report."""

    def add_tag(self, key: str, value: str) -> None: ...
    def remove_tag(self, key: str) -> None: ...


# =============================================================================
# BASE REPORTER
# =============================================================================

class BaseReporter(ABC):
    """
    Abstract base class for reporters.

    Implements the contract once:
    - Per-reporter before_send filter (suppress or transform)
    - Minimum severity threshold
    - User identifier and custom key storage
    - Failure isolation (delivery errors are logged, never raised)

    Subclasses implement _deliver().
    """

    name = "reporter"

    def __init__(
        self,
        min_severity: ErrorSeverity = ErrorSeverity.LOW,
        before_send: Optional[BeforeSend] = None,
    ):
        """
        Initialize the reporter.

        Args:
            min_severity: Records below this severity are not delivered
            before_send: Optional filter applied before delivery
        """
        self.min_severity = min_severity
        self.before_send = before_send

        self._user_id: Optional[str] = None
        self._custom_keys: Dict[str, Any] = {}

        self._stats = {
            "delivered": 0,
            "filtered": 0,
            "failed": 0,
        }

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def custom_keys(self) -> Dict[str, Any]:
        return dict(self._custom_keys)

    @property
    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def prepare(self, record: ErrorRecord) -> Optional[ErrorRecord]:
        """
        Apply severity threshold and before_send filter.

        Returns:
            The record to deliver, or None if it is suppressed
        """
        if record.severity < self.min_severity:
            return None

        if self.before_send is None:
            return record

        return self.before_send(record)

    async def report(self, record: ErrorRecord) -> None:
        """Deliver a record. Never raises."""
        try:
            effective = self.prepare(record)
            if effective is None:
                self._stats["filtered"] += 1
                logger.debug(f"{self.name}: record filtered ({record.fault_type})")
                return

            await self._deliver(effective)
            self._stats["delivered"] += 1
        except Exception as e:
            self._stats["failed"] += 1
            logger.error(f"{self.name}: failed to report error: {e}")

    @abstractmethod
    async def _deliver(self, record: ErrorRecord) -> None:
        """Send a filtered record to the sink."""

    def set_user_identifier(self, user_id: Optional[str]) -> None:
        """Set the user identifier attached to reports (None clears it)."""
        self._user_id = user_id

    def set_custom_key(self, key: str, value: Any) -> None:
        """Set a key attached to all future reports (None removes it)."""
        if value is None:
            self._custom_keys.pop(key, None)
        else:
            self._custom_keys[key] = value


# =============================================================================
# REPORTER GROUP
# =============================================================================

class ReporterGroup:
    """
    Composite reporter delivering to an ordered list of members.

    report() runs every member concurrently and waits for all of them;
    one member failing never stops the others. Identity and custom-key
    updates are broadcast synchronously in list order, without rollback.
    """

    def __init__(self, reporters: Optional[Sequence[Reporter]] = None):
        self._reporters: List[Reporter] = list(reporters or [])

    @property
    def reporters(self) -> List[Reporter]:
        return list(self._reporters)

    def __len__(self) -> int:
        return len(self._reporters)

    def add(self, reporter: Reporter) -> None:
        """Append a member."""
        self._reporters.append(reporter)

    def remove(self, reporter: Reporter) -> bool:
        """Remove a member. Returns True if it was present."""
        try:
            self._reporters.remove(reporter)
            return True
        except ValueError:
            return False

    async def report(self, record: ErrorRecord) -> None:
        """Deliver to all members concurrently. Never raises."""
        if not self._reporters:
            return

        await asyncio.gather(
            *(self._report_one(reporter, record) for reporter in self._reporters)
        )

    async def _report_one(self, reporter: Reporter, record: ErrorRecord) -> None:
        try:
            await reporter.report(record)
        except Exception as e:
            logger.error(
                f"Reporter {type(reporter).__name__} raised from report(): {e}"
            )

    async def aclose(self) -> None:
        """Close members that hold resources. Never raises."""
        for reporter in self._reporters:
            close = getattr(reporter, "aclose", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.error(
                    f"Reporter {type(reporter).__name__} failed to close: {e}"
                )

    def set_user_identifier(self, user_id: Optional[str]) -> None:
        for reporter in self._reporters:
            reporter.set_user_identifier(user_id)

    def set_custom_key(self, key: str, value: Any) -> None:
        for reporter in self._reporters:
            reporter.set_custom_key(key, value)

    def add_tag(self, key: str, value: str) -> int:
        """
        Add a tag on members that support tagging.

        Returns:
            Number of members tagged
        """
        tagged = 0
        for reporter in self._reporters:
            if isinstance(reporter, SupportsTagging):
                reporter.add_tag(key, value)
                tagged += 1
        return tagged

    def remove_tag(self, key: str) -> int:
        removed = 0
        for reporter in self._reporters:
            if isinstance(reporter, SupportsTagging):
                reporter.remove_tag(key)
                removed += 1
        return removed
