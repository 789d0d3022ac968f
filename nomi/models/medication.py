"""Medication (wellness item) and reminder models"""
import random
import re
from datetime import datetime
from typing import Any, Literal, Optional
from uuid import uuid4
from pydantic import BaseModel, Field

NotificationType = Literal["medication", "refill", "past_due"]

MEDICATION_COLORS = ["#6B73FF", "#FF6B9D", "#4ECDC4", "#FFB74D", "#9C88FF", "#FF8A80"]

# Labels offered when adding a wellness item
DURATION_OPTIONS = {
    "1 week": 7,
    "2 weeks": 14,
    "1 month": 30,
    "3 months": 90,
    "Ongoing": -1,
}

FREQUENCY_TIMES = {
    "Once daily": ["09:00"],
    "Twice daily": ["09:00", "21:00"],
    "Three times daily": ["09:00", "15:00", "21:00"],
    "Four times daily": ["09:00", "13:00", "17:00", "21:00"],
    "As needed": [],
}

_UNIT_DAYS = {"day": 1, "week": 7, "month": 30}
_UNIT_PATTERN = re.compile(r"^(day|week|month)s?$")


def parse_duration_days(label: Optional[str]) -> Optional[int]:
    """
    Convert a duration label into a number of days

    "14" -> 14, "2 weeks" -> 14, "1 month" -> 30, "-1" / "Ongoing" -> -1.

    Returns:
        Days, -1 for ongoing, or None when the label cannot be parsed
    """
    if not label or not label.strip():
        return None
    tokens = label.strip().split()
    if tokens[0].lower() == "ongoing":
        return -1
    try:
        count = int(tokens[0])
    except ValueError:
        return None
    if count == -1:
        return -1
    if count < 0:
        return None
    if len(tokens) > 1:
        unit = _UNIT_PATTERN.match(tokens[1].lower())
        if unit:
            return count * _UNIT_DAYS[unit.group(1)]
    return count


class Medication(BaseModel):
    """User-tracked wellness item with a reminder schedule"""
    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str
    dosage: str
    frequency: str
    duration: str
    start_date: str  # ISO-8601
    times: list[str] = Field(default_factory=list)  # "HH:MM"
    notes: str = ""
    reminder_enabled: bool = True
    refill_reminder: bool = False
    current_supply: float = 0
    total_supply: float = 0
    refill_at: float = 0  # percentage threshold 0-100
    last_refill_date: Optional[str] = None
    color: str = Field(default_factory=lambda: random.choice(MEDICATION_COLORS))

    @property
    def duration_days(self) -> Optional[int]:
        return parse_duration_days(self.duration)

    @property
    def supply_percentage(self) -> Optional[float]:
        if self.total_supply <= 0:
            return None
        return self.current_supply / self.total_supply * 100


class DoseHistory(BaseModel):
    """One dose event (append-only)"""
    id: str = Field(default_factory=lambda: uuid4().hex)
    medication_id: str
    taken: bool
    timestamp: str  # ISO-8601


class StoredNotification(BaseModel):
    """Tracking record for a scheduled reminder"""
    id: str
    medication_id: str
    type: NotificationType
    scheduled_for: str  # ISO-8601 instant the reminder fires at
    notification_id: str
    scheduled_time: Optional[str] = None  # HH:MM the reminder refers to


class ReminderNotification(BaseModel):
    """Payload delivered to the notifier when a reminder fires"""
    notification_id: str
    medication_id: Optional[str] = None
    type: str
    title: str
    message: str
    fire_at: datetime
    payload: dict[str, Any] = Field(default_factory=dict)
