"""
Standardized exception hierarchy for nomi
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class NomiError(Exception):
    """
    Base exception for all nomi errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise NomiError(
            message="Failed to save mood entry",
            user_id="user_2abc",
            operation="save_mood_entry",
            context={"entry_id": "mood_1700000000000_user_2abc_x1y2"}
        )
    """

    log_level: int = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "Something went wrong, please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (User Input)
# ==========================================

class ValidationError(NomiError):
    """
    Raised when input fails validation, before any I/O happens

    Examples:
    - Mood intensity outside 1..5
    - Medication without a name or dosage
    - Note longer than 200 characters
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={**(kwargs.pop("context", None) or {}), "field": field, "value": value},
            **kwargs
        )


# ==========================================
# Database Errors
# ==========================================

class DatabaseError(NomiError):
    """
    Base class for database-related errors
    """
    pass


class UnavailableError(DatabaseError):
    """Database is not configured or cannot be reached"""

    def __init__(self, message: str = "Database not available", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble connecting right now. Please try again in a moment.",
            **kwargs
        )


class QueryError(DatabaseError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your data. Please try again.",
            context={**(kwargs.pop("context", None) or {}), "query": query},
            **kwargs
        )


class NotFoundError(DatabaseError):
    """Update or delete referenced a record that does not exist"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={**(kwargs.pop("context", None) or {}), "record_type": record_type, "record_id": record_id},
            **kwargs
        )


# ==========================================
# Scheduling Errors
# ==========================================

class SchedulingError(NomiError):
    """
    A single reminder could not be scheduled (bad HH:MM, timer failure).

    Logged and skipped by the scheduler; never aborts a batch.
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        medication_id: Optional[str] = None,
        time: Optional[str] = None,
        **kwargs
    ):
        self.medication_id = medication_id
        self.time = time
        super().__init__(
            message=message,
            user_message="We couldn't set up one of your reminders.",
            context={**(kwargs.pop("context", None) or {}), "medication_id": medication_id, "time": time},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(NomiError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={**(kwargs.pop("context", None) or {}), "config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> NomiError:
    """
    Wrap external exceptions (psycopg, etc.) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate NomiError subclass

    Example:
        try:
            await queries.insert_mood_entry(entry)
        except psycopg.Error as e:
            raise wrap_external_exception(
                e,
                operation="save_mood_entry",
                user_id=entry.user_id,
            )
    """
    import psycopg

    if isinstance(error, NomiError):
        return error

    if isinstance(error, psycopg.OperationalError):
        return UnavailableError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # Generic fallback
    return NomiError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
