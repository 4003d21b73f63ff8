"""
Bulwark Test Configuration and Fixtures

Shared fixtures for boundary, reporter and recovery tests.
"""

import pytest

from bulwark.boundary.controller import BoundaryController
from bulwark.bootstrap.config import reset_config
from bulwark.core.enums import ErrorClassification
from bulwark.core.record import ErrorRecord
from bulwark.testing import ErrorTracker, FakeSleep, RecordingReporter


@pytest.fixture
def tracker():
    """Collects records passed to on_error."""
    return ErrorTracker()


@pytest.fixture
def fake_sleep():
    """Recovery sleep that records delays without waiting."""
    return FakeSleep()


@pytest.fixture
def recording_reporter():
    """Reporter that keeps delivered records."""
    return RecordingReporter()


@pytest.fixture
def sample_record():
    """A runtime fault record."""
    return ErrorRecord(
        fault=ValueError("bad value"),
        trace="Traceback (most recent call last): ...",
        classification=ErrorClassification.RUNTIME,
        source="tests",
    )


@pytest.fixture
def make_boundary(fake_sleep, tracker):
    """
    Factory for controllers wired to the fake sleep and tracker.

    Channels are detached at teardown so loop exception handlers are restored.
    """
    created = []

    def _make(**kwargs):
        kwargs.setdefault("sleep", fake_sleep)
        kwargs.setdefault("on_error", tracker.on_error)
        boundary = BoundaryController(**kwargs)
        created.append(boundary)
        return boundary

    yield _make

    for boundary in created:
        boundary.channel.detach()


@pytest.fixture(autouse=True)
def _clear_config():
    """Each test starts without a cached global config."""
    reset_config()
    yield
    reset_config()
