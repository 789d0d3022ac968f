"""Unit tests for custom exception hierarchy"""
import psycopg
import pytest
from datetime import datetime

from nomi.exceptions import (
    ConfigurationError,
    DatabaseError,
    NomiError,
    NotFoundError,
    QueryError,
    SchedulingError,
    UnavailableError,
    ValidationError,
    wrap_external_exception,
)


class TestNomiError:
    """Test base exception class"""

    def test_basic_exception(self):
        """Test basic exception creation"""
        error = NomiError("Test error")
        assert error.message == "Test error"
        assert error.user_message == "Something went wrong, please try again."
        assert error.request_id is not None
        assert isinstance(error.timestamp, datetime)

    def test_exception_with_context(self):
        """Test exception with full context"""
        error = NomiError(
            message="Failed to save mood entry",
            user_id="user_1",
            operation="save_mood_entry",
            context={"entry_id": "mood_1"},
            user_message="Could not save your mood"
        )
        assert error.user_id == "user_1"
        assert error.operation == "save_mood_entry"
        assert error.context["entry_id"] == "mood_1"
        assert error.user_message == "Could not save your mood"

    def test_to_dict(self):
        """Test API serialization"""
        error = NomiError("Test error", request_id="req-1")
        data = error.to_dict()
        assert data["error"] == "NomiError"
        assert data["message"] == "Test error"
        assert data["request_id"] == "req-1"
        assert "timestamp" in data


class TestSubclasses:
    """Test specialized exceptions"""

    def test_validation_error_field(self):
        """Test field is surfaced in the user message and context"""
        error = ValidationError("must be between 1 and 5", field="intensity", value=9)
        assert error.field == "intensity"
        assert error.value == 9
        assert error.user_message == "Invalid intensity: must be between 1 and 5"
        assert error.context == {"field": "intensity", "value": 9}

    def test_validation_error_merges_context(self):
        """Test extra context is kept alongside field info"""
        error = ValidationError("Missing required fields", context={"missing": ["userId"]})
        assert error.context["missing"] == ["userId"]
        assert error.context["field"] is None
        assert error.user_message == "Missing required fields"

    def test_not_found_error(self):
        """Test record info on NotFoundError"""
        error = NotFoundError("Medication med1 not found", record_type="medication", record_id="med1")
        assert isinstance(error, DatabaseError)
        assert error.record_id == "med1"
        assert error.user_message == "medication not found."

    def test_unavailable_error_default_message(self):
        """Test UnavailableError has a default message"""
        error = UnavailableError()
        assert isinstance(error, DatabaseError)
        assert error.message == "Database not available"
        assert "trouble connecting" in error.user_message

    def test_query_error_keeps_query(self):
        """Test QueryError records the statement"""
        error = QueryError("insert failed", query="INSERT INTO medications")
        assert error.context["query"] == "INSERT INTO medications"

    def test_scheduling_error_context(self):
        """Test SchedulingError carries medication and time"""
        error = SchedulingError("Invalid time format", medication_id="med1", time="25:00")
        assert error.medication_id == "med1"
        assert error.context["time"] == "25:00"

    def test_configuration_error(self):
        """Test ConfigurationError carries the key"""
        error = ConfigurationError("missing", config_key="DATABASE_URL")
        assert error.context["config_key"] == "DATABASE_URL"


class TestWrapExternalException:
    """Test mapping third-party errors into the hierarchy"""

    def test_passes_through_nomi_errors(self):
        original = ValidationError("bad")
        assert wrap_external_exception(original, operation="op") is original

    def test_operational_error_becomes_unavailable(self):
        wrapped = wrap_external_exception(psycopg.OperationalError("connection refused"), operation="add")
        assert isinstance(wrapped, UnavailableError)
        assert wrapped.operation == "add"
        assert "connection refused" in wrapped.message

    def test_psycopg_error_becomes_query_error(self):
        wrapped = wrap_external_exception(psycopg.DataError("bad value"), operation="add")
        assert isinstance(wrapped, QueryError)

    def test_generic_error_fallback(self):
        cause = RuntimeError("boom")
        wrapped = wrap_external_exception(cause, operation="record_dose", user_id="local")
        assert type(wrapped) is NomiError
        assert wrapped.message == "record_dose failed: boom"
        assert wrapped.cause is cause
