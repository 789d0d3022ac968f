"""
MoodService - Mood Entry Business Logic

Saving a mood always inserts a new entry with a freshly minted id; several
entries per user per day are expected. Resubmitting an existing id goes
through upsert_mood_entry, and field edits through update_mood_entry.
"""

import logging
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from nomi.db import queries
from nomi.exceptions import NotFoundError, ValidationError, wrap_external_exception
from nomi.models.mood import MOOD_TYPES, MoodEntry, MoodType, find_mood_type
from nomi.utils.datetime_helpers import Clock, SystemClock, format_date, now_ms, today
from nomi.validators import validate_intensity, validate_mood_entry, validate_note

logger = logging.getLogger(__name__)


def new_mood_entry_id(user_id: str, timestamp: int) -> str:
    """mood_{timestamp}_{user_id}_{random}"""
    return f"mood_{timestamp}_{user_id}_{uuid4().hex[:9]}"


def merge_mood_types(rows: List[MoodType]) -> List[MoodType]:
    """Database rows override built-ins by id; built-ins without a row are kept"""
    merged = {mood.id: mood for mood in MOOD_TYPES}
    merged.update({mood.id: mood for mood in rows})
    return sorted(merged.values(), key=lambda mood: (mood.value, mood.id))


class MoodService:
    """
    Service for the mood entry log.

    Responsibilities:
    - Mood type catalog (database with built-in fallback)
    - Saving new entries (insert-only) and explicit upsert/update paths
    - Range and per-date lookups
    - Deletion and bulk clear
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        logger.debug("MoodService initialized")

    # Mood Types

    async def get_mood_types(self) -> List[MoodType]:
        """Mood type catalog, falling back to the built-ins"""
        try:
            rows = await queries.get_mood_types()
        except Exception as e:
            logger.warning(f"Using built-in mood types: {e}")
            return list(MOOD_TYPES)
        return merge_mood_types(rows)

    async def resolve_mood_type(self, key: str) -> Optional[MoodType]:
        """Find a mood type by id, name or emoji"""
        return find_mood_type(key, await self.get_mood_types())

    # Writes

    async def save_mood_entry(self, entry: MoodEntry) -> MoodEntry:
        """
        Insert a new mood entry.

        The caller supplies a fresh id; an existing id fails at the database
        instead of overwriting the earlier entry.

        Raises:
            ValidationError: Bad intensity, note or date (before any I/O)
        """
        validate_mood_entry(entry)
        try:
            await queries.insert_mood_entry(entry)
        except Exception as e:
            raise wrap_external_exception(
                e, operation="save_mood_entry", user_id=entry.user_id,
                context={"entry_id": entry.id}
            )
        return entry

    async def create_mood_entry(
        self,
        user_id: str,
        mood: Union[MoodType, str],
        intensity: Optional[int] = None,
        note: Optional[str] = None
    ) -> MoodEntry:
        """
        Mint and save a new entry stamped with the current date/time.

        Args:
            user_id: Owner of the entry
            mood: MoodType or an id/name/emoji to resolve
            intensity: 1-5 (defaults to the mood's value)
            note: Optional note, at most 200 characters
        """
        if isinstance(mood, str):
            resolved = await self.resolve_mood_type(mood)
            if resolved is None:
                raise ValidationError(f"Unknown mood: '{mood}'", field="mood", value=mood)
            mood = resolved

        timestamp = now_ms(self.clock)
        entry = MoodEntry(
            id=new_mood_entry_id(user_id, timestamp),
            user_id=user_id,
            mood=mood,
            intensity=intensity if intensity is not None else mood.value,
            note=note.strip() if note and note.strip() else None,
            timestamp=timestamp,
            date=format_date(today(self.clock)),
        )
        return await self.save_mood_entry(entry)

    async def upsert_mood_entry(self, entry: MoodEntry) -> MoodEntry:
        """Retry path: same id resubmitted updates the stored fields"""
        validate_mood_entry(entry)
        try:
            await queries.upsert_mood_entry(entry)
        except Exception as e:
            raise wrap_external_exception(
                e, operation="upsert_mood_entry", user_id=entry.user_id,
                context={"entry_id": entry.id}
            )
        return entry

    async def update_mood_entry(
        self,
        entry_id: str,
        mood: Optional[Union[MoodType, str]] = None,
        intensity: Optional[int] = None,
        note: Optional[str] = None,
        timestamp: Optional[int] = None
    ) -> None:
        """
        Update fields of an existing entry.

        Raises:
            ValidationError: Bad intensity/note or unknown mood
            NotFoundError: If the id does not exist
        """
        updates: Dict[str, Any] = {}
        if mood is not None:
            if isinstance(mood, str):
                resolved = await self.resolve_mood_type(mood)
                if resolved is None:
                    raise ValidationError(f"Unknown mood: '{mood}'", field="mood", value=mood)
                mood = resolved
            updates["mood_type_id"] = mood.id
        if intensity is not None:
            validate_intensity(intensity)
            updates["intensity"] = intensity
        if note is not None:
            validate_note(note)
            updates["note"] = note or None
        if timestamp is not None:
            updates["timestamp"] = timestamp
        if not updates:
            raise ValidationError("No fields to update", field="entry_id", value=entry_id)

        try:
            updated = await queries.update_mood_entry(entry_id, updates)
        except Exception as e:
            raise wrap_external_exception(e, operation="update_mood_entry", context={"entry_id": entry_id})
        if not updated:
            raise NotFoundError(
                f"Mood entry {entry_id} not found",
                record_type="mood_entry",
                record_id=entry_id,
            )

    async def delete_mood_entry(self, entry_id: str) -> None:
        """
        Hard-delete an entry.

        Raises:
            NotFoundError: If the id does not exist
        """
        try:
            deleted = await queries.delete_mood_entry(entry_id)
        except Exception as e:
            raise wrap_external_exception(e, operation="delete_mood_entry", context={"entry_id": entry_id})
        if not deleted:
            raise NotFoundError(
                f"Mood entry {entry_id} not found",
                record_type="mood_entry",
                record_id=entry_id,
            )

    async def clear_mood_entries(self, user_id: str) -> int:
        """Bulk-clear a user's mood history"""
        try:
            return await queries.delete_mood_entries_for_user(user_id)
        except Exception as e:
            raise wrap_external_exception(e, operation="clear_mood_entries", user_id=user_id)

    # Reads

    async def get_all_mood_entries(self, user_id: str) -> List[MoodEntry]:
        """All entries, newest first"""
        try:
            return await queries.get_mood_entries(user_id)
        except Exception as e:
            logger.error(f"Error loading mood entries for {user_id}: {e}", exc_info=True)
            return []

    async def get_recent_mood_entries(self, user_id: str, limit: int = 30) -> List[MoodEntry]:
        try:
            return await queries.get_mood_entries(user_id, limit=limit)
        except Exception as e:
            logger.error(f"Error loading recent mood entries for {user_id}: {e}", exc_info=True)
            return []

    async def get_mood_entries_for_date_range(
        self,
        user_id: str,
        start_date: str,
        end_date: str
    ) -> List[MoodEntry]:
        """Entries with start_date <= date <= end_date (inclusive), newest first"""
        try:
            return await queries.get_mood_entries_for_date_range(user_id, start_date, end_date)
        except Exception as e:
            logger.error(f"Error loading mood entries {start_date}..{end_date}: {e}", exc_info=True)
            return []

    async def get_mood_entry_for_date(self, user_id: str, entry_date: str) -> Optional[MoodEntry]:
        """Most recent entry on a date, or None"""
        try:
            return await queries.get_mood_entry_for_date(user_id, entry_date)
        except Exception as e:
            logger.error(f"Error loading mood entry for {entry_date}: {e}", exc_info=True)
            return None

    async def get_todays_mood_entry(self, user_id: str) -> Optional[MoodEntry]:
        return await self.get_mood_entry_for_date(user_id, format_date(today(self.clock)))

