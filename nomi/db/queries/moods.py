"""Mood database queries"""
import logging
from datetime import date, datetime
from typing import Any, Optional
from nomi.db.connection import db
from nomi.models.mood import MoodEntry, MoodType

logger = logging.getLogger(__name__)


MOOD_ENTRY_SELECT = """
    SELECT
        me.id,
        me.user_id,
        me.intensity,
        me.note,
        me.date,
        me.timestamp,
        mt.id AS mood_id,
        mt.name AS mood_name,
        mt.emoji AS mood_emoji,
        mt.color AS mood_color,
        mt.value AS mood_value
    FROM mood_entries me
    JOIN mood_types mt ON me.mood_type_id = mt.id
"""

# Newest first; ties broken by insertion order
MOOD_ENTRY_ORDER = "ORDER BY me.timestamp DESC, me.created_at DESC"


# ==========================================
# Row Mapping
# ==========================================

def _date_str(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def row_to_mood_type(row: dict) -> MoodType:
    """Map a mood_types row"""
    return MoodType(
        id=row["id"],
        name=row["name"],
        emoji=row["emoji"],
        color=row["color"],
        value=int(row["value"]),
    )


def row_to_mood_entry(row: dict) -> MoodEntry:
    """Map a mood_entries JOIN mood_types row"""
    return MoodEntry(
        id=row["id"],
        user_id=row["user_id"],
        mood=MoodType(
            id=row["mood_id"],
            name=row["mood_name"],
            emoji=row["mood_emoji"],
            color=row["mood_color"],
            value=int(row["mood_value"]),
        ),
        intensity=int(row["intensity"]),
        note=row.get("note"),
        date=_date_str(row["date"]),
        timestamp=int(row["timestamp"]),
    )


# ==========================================
# Mood Types
# ==========================================

async def get_mood_types() -> list[MoodType]:
    """Get all mood types ordered by value"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT id, name, emoji, color, value FROM mood_types ORDER BY value ASC, id ASC"
            )
            rows = await cur.fetchall()
    return [row_to_mood_type(row) for row in rows]


# ==========================================
# Mood Entry CRUD Operations
# ==========================================

async def insert_mood_entry(entry: MoodEntry) -> None:
    """
    Insert a new mood entry

    A duplicate id is a primary-key violation, never an update.
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO mood_entries (
                    id, user_id, mood_type_id, intensity, note, date, timestamp
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    entry.id,
                    entry.user_id,
                    entry.mood.id,
                    entry.intensity,
                    entry.note or None,
                    entry.date,
                    entry.timestamp,
                )
            )
            await conn.commit()
    logger.info(f"Saved mood entry {entry.id} for user {entry.user_id}")


async def upsert_mood_entry(entry: MoodEntry) -> None:
    """Insert, or update the fields of an entry resubmitted with the same id"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO mood_entries (
                    id, user_id, mood_type_id, intensity, note, date, timestamp
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    mood_type_id = EXCLUDED.mood_type_id,
                    intensity = EXCLUDED.intensity,
                    note = EXCLUDED.note,
                    date = EXCLUDED.date,
                    timestamp = EXCLUDED.timestamp,
                    updated_at = NOW()
                """,
                (
                    entry.id,
                    entry.user_id,
                    entry.mood.id,
                    entry.intensity,
                    entry.note or None,
                    entry.date,
                    entry.timestamp,
                )
            )
            await conn.commit()
    logger.info(f"Upserted mood entry {entry.id} for user {entry.user_id}")


async def update_mood_entry(entry_id: str, updates: dict[str, Any]) -> bool:
    """
    Update selected columns of a mood entry

    Args:
        entry_id: Entry to update
        updates: Column -> value (mood_type_id, intensity, note, timestamp)

    Returns:
        True if a row was updated, False if the id does not exist
    """
    allowed = ("mood_type_id", "intensity", "note", "timestamp")
    columns = [column for column in allowed if column in updates]
    if not columns:
        return False

    set_clause = ", ".join(f"{column} = %s" for column in columns)
    values = [updates[column] for column in columns]

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"UPDATE mood_entries SET {set_clause} WHERE id = %s RETURNING id",
                (*values, entry_id)
            )
            result = await cur.fetchone()
            await conn.commit()

    if result:
        logger.info(f"Updated mood entry {entry_id}: {', '.join(columns)}")
        return True
    return False


async def get_mood_entries(user_id: str, limit: Optional[int] = None) -> list[MoodEntry]:
    """Get mood entries for a user, newest first"""
    query = f"{MOOD_ENTRY_SELECT} WHERE me.user_id = %s {MOOD_ENTRY_ORDER}"
    params: tuple = (user_id,)
    if limit is not None:
        query += " LIMIT %s"
        params = (user_id, limit)

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            rows = await cur.fetchall()
    return [row_to_mood_entry(row) for row in rows]


async def get_mood_entries_for_date_range(user_id: str, start_date: str, end_date: str) -> list[MoodEntry]:
    """Get mood entries with start_date <= date <= end_date, newest first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                {MOOD_ENTRY_SELECT}
                WHERE me.user_id = %s
                  AND me.date >= %s
                  AND me.date <= %s
                {MOOD_ENTRY_ORDER}
                """,
                (user_id, start_date, end_date)
            )
            rows = await cur.fetchall()
    return [row_to_mood_entry(row) for row in rows]


async def get_mood_entry_for_date(user_id: str, entry_date: str) -> Optional[MoodEntry]:
    """Get the most recent mood entry on a date"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                {MOOD_ENTRY_SELECT}
                WHERE me.user_id = %s AND me.date = %s
                {MOOD_ENTRY_ORDER}
                LIMIT 1
                """,
                (user_id, entry_date)
            )
            row = await cur.fetchone()
    return row_to_mood_entry(row) if row else None


async def delete_mood_entry(entry_id: str) -> bool:
    """
    Hard-delete a mood entry

    Returns:
        True if deleted, False if not found
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "DELETE FROM mood_entries WHERE id = %s RETURNING id",
                (entry_id,)
            )
            result = await cur.fetchone()
            await conn.commit()

    if result:
        logger.info(f"Deleted mood entry {entry_id}")
        return True
    return False


async def delete_mood_entries_for_user(user_id: str) -> int:
    """Bulk-clear a user's mood history"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute("DELETE FROM mood_entries WHERE user_id = %s", (user_id,))
            deleted = cur.rowcount
            await conn.commit()
    logger.info(f"Cleared {deleted} mood entries for user {user_id}")
    return deleted
