"""
Centralized Pydantic Input Validation Layer

Validation runs before any I/O. Pydantic failures are translated into
nomi.exceptions.ValidationError so callers only deal with one error type.

Validation Categories:
1. Mood Entries - intensity 1-5, note length, date format
2. Medications - required fields, supply counters, refill threshold
3. Time Zones - IANA names
"""

import logging
from datetime import date
from typing import Any, Optional

import pytz
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from nomi.exceptions import ValidationError
from nomi.models.medication import Medication
from nomi.models.mood import MoodEntry

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 200


# ============================================================================
# MOOD ENTRY VALIDATION
# ============================================================================

class MoodEntryInput(BaseModel):
    """
    Validate a mood entry before it is written

    Constraints:
    - id and user_id non-empty
    - intensity: 1-5
    - note: at most 200 characters
    - date: YYYY-MM-DD
    """
    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    intensity: int = Field(..., ge=1, le=5)
    note: Optional[str] = Field(default=None, max_length=MAX_NOTE_LENGTH)
    date: str

    @field_validator("date")
    @classmethod
    def validate_date_format(cls, v: str) -> str:
        """Ensure YYYY-MM-DD format"""
        try:
            date.fromisoformat(v)
        except ValueError:
            raise ValueError(f"Invalid date format: '{v}'. Must be YYYY-MM-DD")
        return v


# ============================================================================
# MEDICATION VALIDATION
# ============================================================================

class MedicationInput(BaseModel):
    """
    Validate a wellness item before it is added or updated

    Constraints:
    - name, dosage, frequency, duration: required, not blank
    - supply counters: non-negative
    - refill_at: 0-100 (percentage)
    """
    name: str
    dosage: str
    frequency: str
    duration: str
    current_supply: float = Field(default=0, ge=0)
    total_supply: float = Field(default=0, ge=0)
    refill_at: float = Field(default=0, ge=0, le=100)

    @field_validator("name", "dosage", "frequency", "duration")
    @classmethod
    def validate_required(cls, v: str) -> str:
        """Reject empty or whitespace-only values"""
        if not v or not v.strip():
            raise ValueError("This field is required")
        return v.strip()


class NewMedicationInput(MedicationInput):
    """
    Extra checks when a wellness item is created with refill reminders on

    Current supply and threshold are required, and the threshold must be
    below the current supply.
    """
    refill_reminder: bool = False

    @model_validator(mode="after")
    def validate_refill_threshold(self) -> "NewMedicationInput":
        if not self.refill_reminder:
            return self
        if not self.current_supply:
            raise ValueError("Please enter your current supply amount")
        if not self.refill_at:
            raise ValueError("Please set when you'd like to be reminded")
        if self.refill_at >= self.current_supply:
            raise ValueError("Reminder should be set before you run out")
        return self


# ============================================================================
# HELPERS
# ============================================================================

def _raise_first(error: PydanticValidationError, data: dict[str, Any]) -> None:
    """Convert the first pydantic error into our ValidationError"""
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    message = first.get("msg", "Invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    raise ValidationError(
        message=message,
        field=field,
        value=data.get(field) if field else None,
        operation="validate",
    ) from error


def validate_mood_entry(entry: MoodEntry) -> None:
    """
    Validate a mood entry

    Raises:
        ValidationError: If any constraint is violated
    """
    data = {
        "id": entry.id,
        "user_id": entry.user_id,
        "intensity": entry.intensity,
        "note": entry.note,
        "date": entry.date,
    }
    try:
        MoodEntryInput(**data)
    except PydanticValidationError as e:
        _raise_first(e, data)


def validate_intensity(intensity: int) -> None:
    """Raise ValidationError unless 1 <= intensity <= 5"""
    if not isinstance(intensity, int) or isinstance(intensity, bool) or not 1 <= intensity <= 5:
        raise ValidationError(
            message="Intensity must be between 1 and 5",
            field="intensity",
            value=intensity,
        )


def validate_note(note: Optional[str]) -> None:
    """Raise ValidationError if the note exceeds the maximum length"""
    if note is not None and len(note) > MAX_NOTE_LENGTH:
        raise ValidationError(
            message=f"Note must be at most {MAX_NOTE_LENGTH} characters",
            field="note",
            value=f"{note[:20]}...",
        )


def validate_medication(medication: Medication, creating: bool = False) -> None:
    """
    Validate a wellness item

    Args:
        medication: Item to check
        creating: Also apply the refill-threshold checks of the add form

    Raises:
        ValidationError: If a required field is empty or a counter is out of range
    """
    data = {
        "name": medication.name,
        "dosage": medication.dosage,
        "frequency": medication.frequency,
        "duration": medication.duration,
        "current_supply": medication.current_supply,
        "total_supply": medication.total_supply,
        "refill_at": medication.refill_at,
    }
    try:
        if creating:
            NewMedicationInput(**data, refill_reminder=medication.refill_reminder)
        else:
            MedicationInput(**data)
    except PydanticValidationError as e:
        _raise_first(e, data)


def validate_timezone(tz_name: str) -> str:
    """Ensure valid IANA timezone"""
    try:
        pytz.timezone(tz_name)
    except pytz.exceptions.UnknownTimeZoneError:
        raise ValidationError(
            message=f"Invalid timezone: '{tz_name}'. Use IANA timezone (e.g., 'Europe/Stockholm')",
            field="timezone",
            value=tz_name,
        )
    return tz_name
