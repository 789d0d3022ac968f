"""Global test fixtures and utilities for nomi tests"""
import pytest
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import MagicMock

from nomi.db import queries
from nomi.models.medication import DoseHistory, Medication, StoredNotification
from nomi.models.mood import MOOD_TYPES_BY_ID, MoodEntry
from nomi.models.user import User
from nomi.utils.datetime_helpers import FixedClock, parse_iso_datetime


# ============================================================================
# In-memory Store
# ============================================================================

class FakeStore:
    """
    Dict-backed stand-in for nomi.db.queries

    Mirrors the query signatures and ordering rules so services and the
    scheduler run unchanged against it.
    """

    def __init__(self):
        self.mood_types = []
        self.mood_entries: dict[str, MoodEntry] = {}
        self.medications: dict[str, Medication] = {}
        self.doses: list[DoseHistory] = []
        self.notifications: dict[str, StoredNotification] = {}
        self.app_state: dict[str, str] = {}
        self.users: dict[str, User] = {}

    # Users

    async def upsert_user(self, user: User) -> bool:
        if user.clerk_id in self.users:
            return False
        self.users[user.clerk_id] = user
        return True

    async def ensure_user(self, clerk_id: str) -> None:
        self.users.setdefault(clerk_id, User(clerk_id=clerk_id))

    async def user_exists(self, clerk_id: str) -> bool:
        return clerk_id in self.users

    # Moods

    async def get_mood_types(self):
        return list(self.mood_types)

    async def insert_mood_entry(self, entry: MoodEntry) -> None:
        if entry.id in self.mood_entries:
            raise RuntimeError(f"duplicate key value violates unique constraint: {entry.id}")
        self.mood_entries[entry.id] = entry

    async def upsert_mood_entry(self, entry: MoodEntry) -> None:
        self.mood_entries[entry.id] = entry

    async def update_mood_entry(self, entry_id: str, updates: dict) -> bool:
        entry = self.mood_entries.get(entry_id)
        if entry is None:
            return False
        fields = {key: updates[key] for key in ("intensity", "note", "timestamp") if key in updates}
        if "mood_type_id" in updates:
            fields["mood"] = MOOD_TYPES_BY_ID[updates["mood_type_id"]]
        self.mood_entries[entry_id] = entry.model_copy(update=fields)
        return True

    def _entries_for(self, user_id: str) -> list[MoodEntry]:
        # Newest first; later inserts win timestamp ties
        entries = [entry for entry in reversed(list(self.mood_entries.values())) if entry.user_id == user_id]
        return sorted(entries, key=lambda entry: entry.timestamp, reverse=True)

    async def get_mood_entries(self, user_id: str, limit: Optional[int] = None):
        entries = self._entries_for(user_id)
        return entries[:limit] if limit is not None else entries

    async def get_mood_entries_for_date_range(self, user_id: str, start_date: str, end_date: str):
        return [entry for entry in self._entries_for(user_id) if start_date <= entry.date <= end_date]

    async def get_mood_entry_for_date(self, user_id: str, entry_date: str):
        matches = [entry for entry in self._entries_for(user_id) if entry.date == entry_date]
        return matches[0] if matches else None

    async def delete_mood_entry(self, entry_id: str) -> bool:
        return self.mood_entries.pop(entry_id, None) is not None

    async def delete_mood_entries_for_user(self, user_id: str) -> int:
        doomed = [key for key, entry in self.mood_entries.items() if entry.user_id == user_id]
        for key in doomed:
            del self.mood_entries[key]
        return len(doomed)

    # Medications

    async def get_medications(self, user_id: str):
        return list(self.medications.values())

    async def get_medication(self, user_id: str, medication_id: str):
        return self.medications.get(medication_id)

    async def insert_medication(self, user_id: str, medication: Medication) -> None:
        if medication.id in self.medications:
            raise RuntimeError(f"duplicate key value violates unique constraint: {medication.id}")
        self.medications[medication.id] = medication

    async def update_medication(self, user_id: str, medication: Medication) -> bool:
        if medication.id not in self.medications:
            return False
        self.medications[medication.id] = medication
        return True

    async def delete_all_medications(self, user_id: str) -> int:
        deleted = len(self.medications)
        self.medications.clear()
        self.doses.clear()
        return deleted

    async def insert_dose(self, user_id: str, dose: DoseHistory) -> None:
        self.doses.append(dose)

    async def get_doses_between(self, user_id: str, start: datetime, end: datetime):
        matches = [
            dose for dose in self.doses
            if start <= parse_iso_datetime(dose.timestamp, start.tzinfo) < end
        ]
        return sorted(matches, key=lambda dose: parse_iso_datetime(dose.timestamp, start.tzinfo))

    async def get_dose_history(self, user_id: str, medication_id: Optional[str] = None):
        doses = [dose for dose in self.doses if medication_id is None or dose.medication_id == medication_id]
        return sorted(doses, key=lambda dose: parse_iso_datetime(dose.timestamp, timezone.utc), reverse=True)

    # Notification records

    async def save_notification(self, user_id: str, record: StoredNotification) -> None:
        self.notifications[record.id] = record

    async def get_notifications(self, user_id: str):
        return list(self.notifications.values())

    async def delete_notifications(self, user_id: str, medication_id: str, notification_type: Optional[str] = None) -> int:
        doomed = [
            key for key, record in self.notifications.items()
            if record.medication_id == medication_id
            and (notification_type is None or record.type == notification_type)
        ]
        for key in doomed:
            del self.notifications[key]
        return len(doomed)

    async def delete_notifications_by_id(self, user_id: str, record_ids: list[str]) -> int:
        doomed = [key for key in record_ids if key in self.notifications]
        for key in doomed:
            del self.notifications[key]
        return len(doomed)

    async def delete_all_notifications(self, user_id: str) -> int:
        deleted = len(self.notifications)
        self.notifications.clear()
        return deleted

    # App state

    async def get_app_state(self, key: str) -> Optional[str]:
        return self.app_state.get(key)

    async def set_app_state(self, key: str, value: str) -> None:
        self.app_state[key] = value

    async def delete_app_state(self, key: str) -> None:
        self.app_state.pop(key, None)


@pytest.fixture
def store(monkeypatch):
    """Route every nomi.db.queries call to an in-memory FakeStore"""
    fake = FakeStore()
    for name in queries.__all__:
        monkeypatch.setattr(queries, name, getattr(fake, name))
    return fake


# ============================================================================
# Clock Fixtures
# ============================================================================

@pytest.fixture
def clock():
    """Sunday 2026-10-18 08:00 UTC"""
    return FixedClock(datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc), "UTC")


# ============================================================================
# Scheduler Fixtures
# ============================================================================

@pytest.fixture
def mock_scheduler():
    """APScheduler stand-in; add_job returns a job mock carrying its kwargs"""
    scheduler = MagicMock()
    scheduler.running = False

    def add_job(func, **kwargs):
        job = MagicMock()
        job.id = kwargs.get("id")
        job.func = func
        job.kwargs = kwargs
        return job

    scheduler.add_job.side_effect = add_job
    return scheduler


# ============================================================================
# Model Factories
# ============================================================================

@pytest.fixture
def make_medication():
    """Build a Medication with sensible defaults"""
    def _make(**overrides) -> Medication:
        fields = {
            "id": "med1",
            "name": "Vitamin D",
            "dosage": "1 tablet",
            "frequency": "Once daily",
            "duration": "Ongoing",
            "start_date": "2026-10-18T00:00:00+00:00",
            "times": ["09:00"],
            "color": "#6B73FF",
        }
        fields.update(overrides)
        return Medication(**fields)
    return _make


@pytest.fixture
def make_mood_entry():
    """Build a MoodEntry on a date (noon UTC timestamp unless given)"""
    counter = {"n": 0}

    def _make(mood_id: str = "happy", entry_date: str = "2026-10-18", user_id: str = "user_1",
              intensity: Optional[int] = None, note: Optional[str] = None,
              timestamp: Optional[int] = None) -> MoodEntry:
        counter["n"] += 1
        mood = MOOD_TYPES_BY_ID[mood_id]
        if timestamp is None:
            noon = datetime.fromisoformat(f"{entry_date}T12:00:00+00:00")
            timestamp = int(noon.timestamp() * 1000) + counter["n"]
        return MoodEntry(
            id=f"mood_{timestamp}_{user_id}_{counter['n']}",
            user_id=user_id,
            mood=mood,
            intensity=intensity if intensity is not None else mood.value,
            note=note,
            timestamp=timestamp,
            date=entry_date,
        )
    return _make
