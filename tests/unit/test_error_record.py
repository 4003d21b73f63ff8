"""
Unit tests for ErrorRecord.

Tests immutability, copy semantics, equality and serialization.
"""

import dataclasses
from datetime import datetime, timezone

import pytest

from bulwark.core.enums import ErrorClassification, ErrorSeverity
from bulwark.core.record import ErrorRecord, format_trace


class TestErrorRecordDefaults:
    """Tests for record construction."""

    def test_defaults(self):
        """Severity defaults to medium, classification to unknown."""
        record = ErrorRecord(fault=ValueError("x"))

        assert record.severity == ErrorSeverity.MEDIUM
        assert record.classification == ErrorClassification.UNKNOWN
        assert record.source is None
        assert record.trace == ""
        assert dict(record.context) == {}

    def test_captured_at_defaults_to_now(self):
        """captured_at is set at construction time."""
        before = datetime.now(timezone.utc)
        record = ErrorRecord(fault=ValueError("x"))
        after = datetime.now(timezone.utc)

        assert before <= record.captured_at <= after

    def test_message(self):
        """message is the fault's string form."""
        record = ErrorRecord(fault=KeyError("missing"))
        assert record.message == "'missing'"
        assert record.fault_type == "KeyError"


class TestImmutability:
    """Records cannot be changed after construction."""

    def test_fields_are_frozen(self, sample_record):
        """Assigning a field raises."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            sample_record.severity = ErrorSeverity.HIGH

    def test_context_is_read_only(self):
        """Context cannot be mutated, and caller's dict is copied."""
        source = {"user": "u1"}
        record = ErrorRecord(fault=ValueError("x"), context=source)

        source["user"] = "u2"
        assert record.context["user"] == "u1"

        with pytest.raises(TypeError):
            record.context["user"] = "u3"

    def test_context_keeps_insertion_order(self):
        """Context preserves key order."""
        record = ErrorRecord(fault=ValueError("x"), context={"b": 1, "a": 2, "c": 3})
        assert list(record.context) == ["b", "a", "c"]


class TestCopySemantics:
    """Tests for with_overrides()."""

    def test_override_creates_new_record(self, sample_record):
        """Overriding returns a new record and leaves the original untouched."""
        downgraded = sample_record.with_overrides(severity=ErrorSeverity.LOW)

        assert downgraded is not sample_record
        assert downgraded.severity == ErrorSeverity.LOW
        assert sample_record.severity == ErrorSeverity.MEDIUM

    def test_override_preserves_unset_fields(self, sample_record):
        """Unset fields, including captured_at, carry over."""
        copy = sample_record.with_overrides(source="elsewhere")

        assert copy.fault is sample_record.fault
        assert copy.trace == sample_record.trace
        assert copy.classification == sample_record.classification
        assert copy.captured_at == sample_record.captured_at

    def test_override_context_is_frozen(self, sample_record):
        """Overridden context is also read-only."""
        copy = sample_record.with_overrides(context={"k": "v"})
        with pytest.raises(TypeError):
            copy.context["k"] = "w"


class TestEquality:
    """Equality ignores context and timestamp."""

    def test_equal_despite_context_and_timestamp(self):
        """Records differing only in context/captured_at are equal."""
        fault = ValueError("x")
        a = ErrorRecord(
            fault=fault,
            trace="t",
            captured_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            context={"a": 1},
        )
        b = ErrorRecord(
            fault=fault,
            trace="t",
            captured_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
            context={"b": 2},
        )

        assert a == b
        assert hash(a) == hash(b)

    def test_not_equal_on_severity(self):
        """Severity takes part in equality."""
        fault = ValueError("x")
        a = ErrorRecord(fault=fault, severity=ErrorSeverity.LOW)
        b = ErrorRecord(fault=fault, severity=ErrorSeverity.HIGH)
        assert a != b

    def test_not_equal_on_source(self):
        """Source takes part in equality."""
        fault = ValueError("x")
        assert ErrorRecord(fault=fault, source="a") != ErrorRecord(fault=fault, source="b")


class TestSerialization:
    """Tests for to_dict()."""

    def test_to_dict(self, sample_record):
        data = sample_record.to_dict()

        assert data["fault_type"] == "ValueError"
        assert data["message"] == "bad value"
        assert data["severity"] == "medium"
        assert data["classification"] == "runtime"
        assert data["source"] == "tests"
        assert data["context"] == {}
        assert "captured_at" in data


class TestSeverityOrdering:
    """ErrorSeverity compares by rank."""

    def test_ordering(self):
        assert ErrorSeverity.LOW < ErrorSeverity.MEDIUM < ErrorSeverity.HIGH < ErrorSeverity.CRITICAL
        assert ErrorSeverity.CRITICAL >= ErrorSeverity.HIGH
        assert not ErrorSeverity.HIGH < ErrorSeverity.MEDIUM

    def test_sorted(self):
        shuffled = [ErrorSeverity.HIGH, ErrorSeverity.LOW, ErrorSeverity.CRITICAL, ErrorSeverity.MEDIUM]
        assert sorted(shuffled) == list(ErrorSeverity)


class TestFormatTrace:
    """Tests for format_trace()."""

    def test_uses_fault_traceback(self):
        """A raised exception's own traceback is used."""
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            trace = format_trace(e)

        assert "RuntimeError: boom" in trace
        assert "test_uses_fault_traceback" in trace

    def test_falls_back_to_current_stack(self):
        """An exception that was never raised gets the caller's stack."""
        trace = format_trace(RuntimeError("never raised"))
        assert "test_falls_back_to_current_stack" in trace
