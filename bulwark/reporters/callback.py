"""
reporters/callback.py - Reporter over caller-supplied callables

Module 3: Reporters

Adapts any crash-reporting client that exposes record/set-key/set-user/log
functions, without depending on that client's package.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Set
import asyncio
import logging

from bulwark.core.enums import ErrorSeverity
from bulwark.core.record import ErrorRecord

from .base import BaseReporter, BeforeSend


logger = logging.getLogger("reporters.callback")

RecordErrorFn = Callable[..., Awaitable[None]]
SetKeyFn = Callable[[str, Any], Awaitable[None]]
SetUserFn = Callable[[str], Awaitable[None]]
LogFn = Callable[[str], Awaitable[None]]


class CallbackReporter(BaseReporter):
    """
    Reporter that forwards each record to async callables.

    record_error is called as record_error(fault, trace, reason=..., fatal=...).
    Critical records are marked fatal. Context entries are forwarded as
    custom keys prefixed with "ctx_".
    """

    name = "callback"

    def __init__(
        self,
        record_error: RecordErrorFn,
        set_custom_key: Optional[SetKeyFn] = None,
        set_user_identifier: Optional[SetUserFn] = None,
        log: Optional[LogFn] = None,
        collection_enabled: Optional[Callable[[], bool]] = None,
        min_severity: ErrorSeverity = ErrorSeverity.LOW,
        before_send: Optional[BeforeSend] = None,
    ):
        super().__init__(min_severity=min_severity, before_send=before_send)
        self._record_error = record_error
        self._set_key = set_custom_key
        self._set_user = set_user_identifier
        self._log = log
        self.collection_enabled = collection_enabled
        self._pending: Set[asyncio.Task] = set()

    def prepare(self, record: ErrorRecord) -> Optional[ErrorRecord]:
        if self.collection_enabled is not None and not self.collection_enabled():
            return None
        return super().prepare(record)

    async def _deliver(self, record: ErrorRecord) -> None:
        if self._log is not None:
            await self._log("ErrorBoundary caught error")
            await self._log(f"Classification: {record.classification.value}")
            await self._log(f"Severity: {record.severity.value}")
            if record.source:
                await self._log(f"Source: {record.source}")

        if self._set_key is not None:
            await self._set_key("error_classification", record.classification.value)
            await self._set_key("error_severity", record.severity.value)
            await self._set_key("error_captured_at", record.captured_at.isoformat())
            if record.source:
                await self._set_key("error_source", record.source)
            for key, value in record.context.items():
                await self._set_key(f"ctx_{key}", str(value))

        await self._record_error(
            record.fault,
            record.trace,
            reason=f"ErrorBoundary: {record.message}",
            fatal=record.severity == ErrorSeverity.CRITICAL,
        )

    def set_user_identifier(self, user_id: Optional[str]) -> None:
        super().set_user_identifier(user_id)
        if self._set_user is not None:
            self._schedule(self._set_user(user_id or ""))

    def set_custom_key(self, key: str, value: Any) -> None:
        super().set_custom_key(key, value)
        if self._set_key is not None and value is not None:
            self._schedule(self._set_key(key, value))

    def _schedule(self, awaitable: Awaitable[None]) -> None:
        # Identity updates are synchronous; the client call completes in the background
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(_quiet(awaitable))
            return
        task = loop.create_task(_quiet(awaitable))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def aclose(self) -> None:
        """Wait for identity updates still in flight."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


async def _quiet(awaitable: Awaitable[None]) -> None:
    try:
        await awaitable
    except Exception as e:
        logger.error(f"Callback reporter client call failed: {e}")
