"""
testing/ - Helpers for exercising boundaries in tests
"""

from .helpers import (
    ErrorTracker,
    RecordingReporter,
    FailingReporter,
    FakeSleep,
    always_failing,
)

__all__ = [
    "ErrorTracker",
    "RecordingReporter",
    "FailingReporter",
    "FakeSleep",
    "always_failing",
]
