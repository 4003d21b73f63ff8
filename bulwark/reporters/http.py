"""
reporters/http.py - Webhook reporter

Module 3: Reporters

Posts each record as JSON to an HTTP endpoint. The payload shape is the
ReportPayload model below; the core itself has no wire format.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
import logging

import httpx
from pydantic import BaseModel, Field

from bulwark.core.enums import ErrorSeverity
from bulwark.core.exceptions import ReporterError
from bulwark.core.record import ErrorRecord

from .base import BaseReporter, BeforeSend


logger = logging.getLogger("reporters.http")


SEVERITY_LEVELS = {
    ErrorSeverity.LOW: "info",
    ErrorSeverity.MEDIUM: "warning",
    ErrorSeverity.HIGH: "error",
    ErrorSeverity.CRITICAL: "fatal",
}


class ReportPayload(BaseModel):
    """JSON body sent for one record."""

    fault_type: str
    message: str
    level: str
    severity: str
    classification: str
    captured_at: str
    source: Optional[str] = None
    trace: Optional[str] = None
    user_id: Optional[str] = None
    environment: Optional[str] = None
    release: Optional[str] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    extra: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)


class HttpReporter(BaseReporter):
    """
    Reporter that POSTs records to a webhook.

    Supports tagging (see SupportsTagging): tags are sent with every report.

    Usage:
        reporter = HttpReporter(
            "https://errors.example.com/ingest",
            environment="production",
            before_send=lambda r: None if r.fault_type == "Ignorable" else r,
        )
    """

    name = "http"

    def __init__(
        self,
        endpoint: str,
        environment: Optional[str] = None,
        release: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 10.0,
        include_trace: bool = True,
        min_severity: ErrorSeverity = ErrorSeverity.LOW,
        before_send: Optional[BeforeSend] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the webhook reporter.

        Args:
            endpoint: URL records are posted to
            environment: Optional environment name (e.g. "production")
            release: Optional release/version identifier
            headers: Extra request headers (auth tokens etc.)
            timeout_seconds: Request timeout
            include_trace: Send the formatted trace
            min_severity: Records below this severity are not sent
            before_send: Optional filter applied before sending
            client: Pre-built client (mainly for tests)
        """
        super().__init__(min_severity=min_severity, before_send=before_send)
        self.endpoint = endpoint
        self.environment = environment
        self.release = release
        self.headers = dict(headers or {})
        self.timeout_seconds = timeout_seconds
        self.include_trace = include_trace

        self._client = client
        self._owns_client = client is None
        self._tags: Dict[str, str] = {}

    @property
    def tags(self) -> Dict[str, str]:
        return dict(self._tags)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self.headers,
                timeout=self.timeout_seconds,
            )
        return self._client

    def build_payload(self, record: ErrorRecord) -> ReportPayload:
        """Map a record onto the wire payload."""
        tags = {
            "error_classification": record.classification.value,
            "error_severity": record.severity.value,
        }
        if record.source:
            tags["error_source"] = record.source
        if self.environment:
            tags["environment"] = self.environment
        tags.update(self._tags)

        return ReportPayload(
            fault_type=record.fault_type,
            message=record.message,
            level=SEVERITY_LEVELS[record.severity],
            severity=record.severity.value,
            classification=record.classification.value,
            captured_at=record.captured_at.isoformat(),
            source=record.source,
            trace=record.trace if self.include_trace else None,
            user_id=self._user_id,
            environment=self.environment,
            release=self.release,
            tags=tags,
            extra=dict(self._custom_keys),
            context={key: _jsonable(value) for key, value in record.context.items()},
        )

    async def _deliver(self, record: ErrorRecord) -> None:
        payload = self.build_payload(record)
        client = self._get_client()

        response = await client.post(self.endpoint, json=payload.model_dump())
        if response.status_code >= 400:
            raise ReporterError(
                f"Endpoint returned status {response.status_code}",
                reporter=self.name,
                status_code=response.status_code,
            )
        logger.debug(f"Reported {record.fault_type} to {self.endpoint}")

    def set_custom_key(self, key: str, value: Any) -> None:
        """Custom keys are also mirrored into tags as strings."""
        super().set_custom_key(key, value)
        if value is None:
            self._tags.pop(key, None)
        else:
            self._tags[key] = value if isinstance(value, str) else str(value)

    def add_tag(self, key: str, value: str) -> None:
        self._tags[key] = value

    def remove_tag(self, key: str) -> None:
        self._tags.pop(key, None)

    async def aclose(self) -> None:
        """Close the client if this reporter created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)
