"""
Unit tests for HttpReporter using httpx.MockTransport.
"""

import json

import httpx
import pytest

from bulwark.core.enums import ErrorSeverity
from bulwark.reporters import HttpReporter, SupportsTagging


ENDPOINT = "https://errors.example.test/ingest"


def _reporter(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpReporter(ENDPOINT, client=client, **kwargs)


class TestHttpReporter:
    """Tests for the webhook reporter."""

    @pytest.mark.asyncio
    async def test_posts_payload(self, sample_record):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(202)

        reporter = _reporter(handler, environment="staging", release="1.4.0")
        reporter.set_user_identifier("u-7")
        reporter.set_custom_key("tenant", "acme")

        await reporter.report(sample_record)

        assert len(requests) == 1
        assert str(requests[0].url) == ENDPOINT
        body = json.loads(requests[0].content)
        assert body["fault_type"] == "ValueError"
        assert body["message"] == "bad value"
        assert body["severity"] == "medium"
        assert body["level"] == "warning"
        assert body["classification"] == "runtime"
        assert body["source"] == "tests"
        assert body["user_id"] == "u-7"
        assert body["environment"] == "staging"
        assert body["release"] == "1.4.0"
        assert body["extra"] == {"tenant": "acme"}
        assert body["tags"]["tenant"] == "acme"
        assert body["tags"]["error_severity"] == "medium"
        assert reporter.stats["delivered"] == 1

    @pytest.mark.asyncio
    async def test_server_error_is_not_raised(self, sample_record):
        """A 5xx response counts as failed but report() returns normally."""
        reporter = _reporter(lambda request: httpx.Response(500))

        await reporter.report(sample_record)

        assert reporter.stats["failed"] == 1
        assert reporter.stats["delivered"] == 0

    @pytest.mark.asyncio
    async def test_transport_error_is_not_raised(self, sample_record):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        reporter = _reporter(handler)
        await reporter.report(sample_record)

        assert reporter.stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_suppressed_record_sends_nothing(self, sample_record):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        reporter = _reporter(handler, before_send=lambda record: None)
        await reporter.report(sample_record)

        assert requests == []
        assert reporter.stats["filtered"] == 1

    @pytest.mark.asyncio
    async def test_below_threshold_sends_nothing(self, sample_record):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200)

        reporter = _reporter(handler, min_severity=ErrorSeverity.CRITICAL)
        await reporter.report(sample_record)

        assert requests == []

    @pytest.mark.asyncio
    async def test_trace_can_be_omitted(self, sample_record):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200)

        reporter = _reporter(handler, include_trace=False)
        await reporter.report(sample_record)

        assert bodies[0]["trace"] is None

    def test_context_is_made_jsonable(self, sample_record):
        reporter = HttpReporter(ENDPOINT)
        record = sample_record.with_overrides(context={"ids": (1, 2), "obj": object()})

        payload = reporter.build_payload(record)

        assert payload.context["ids"] == [1, 2]
        assert isinstance(payload.context["obj"], str)

    def test_tagging(self):
        reporter = HttpReporter(ENDPOINT)
        assert isinstance(reporter, SupportsTagging)

        reporter.add_tag("team", "payments")
        assert reporter.tags == {"team": "payments"}

        reporter.remove_tag("team")
        assert reporter.tags == {}

    def test_custom_key_removal_drops_tag(self):
        reporter = HttpReporter(ENDPOINT)
        reporter.set_custom_key("build", 42)
        assert reporter.tags == {"build": "42"}

        reporter.set_custom_key("build", None)
        assert reporter.tags == {}
        assert reporter.custom_keys == {}

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        reporter = HttpReporter(ENDPOINT, client=client)

        await reporter.aclose()

        assert not client.is_closed
        await client.aclose()
