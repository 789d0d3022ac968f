"""Medication and dose history database queries"""
import logging
from datetime import datetime
from typing import Any, Optional
from nomi.db.connection import db
from nomi.models.medication import DoseHistory, Medication

logger = logging.getLogger(__name__)


MEDICATION_COLUMNS = """
    id, name, dosage, frequency, duration, start_date, times, notes,
    reminder_enabled, refill_reminder, current_supply, total_supply,
    refill_at, last_refill_date, color
"""


# ==========================================
# Row Mapping
# ==========================================

def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _timestamp(value: Optional[str]) -> Optional[datetime]:
    """ISO string -> datetime for TIMESTAMPTZ columns"""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def row_to_medication(row: dict) -> Medication:
    return Medication(
        id=row["id"],
        name=row["name"],
        dosage=row["dosage"],
        frequency=row["frequency"],
        duration=row["duration"],
        start_date=_iso(row["start_date"]),
        times=list(row.get("times") or []),
        notes=row.get("notes") or "",
        reminder_enabled=bool(row["reminder_enabled"]),
        refill_reminder=bool(row["refill_reminder"]),
        current_supply=float(row["current_supply"]),
        total_supply=float(row["total_supply"]),
        refill_at=float(row["refill_at"]),
        last_refill_date=_iso(row.get("last_refill_date")),
        color=row["color"],
    )


def row_to_dose(row: dict) -> DoseHistory:
    return DoseHistory(
        id=row["id"],
        medication_id=row["medication_id"],
        taken=bool(row["taken"]),
        timestamp=_iso(row["timestamp"]),
    )


# ==========================================
# Medication CRUD Operations
# ==========================================

async def get_medications(user_id: str) -> list[Medication]:
    """Get all wellness items for a user in insertion order"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {MEDICATION_COLUMNS}
                FROM medications
                WHERE user_id = %s
                ORDER BY created_at ASC
                """,
                (user_id,)
            )
            rows = await cur.fetchall()
    return [row_to_medication(row) for row in rows]


async def get_medication(user_id: str, medication_id: str) -> Optional[Medication]:
    """Get one wellness item, or None if not found"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                f"SELECT {MEDICATION_COLUMNS} FROM medications WHERE user_id = %s AND id = %s",
                (user_id, medication_id)
            )
            row = await cur.fetchone()
    return row_to_medication(row) if row else None


async def insert_medication(user_id: str, medication: Medication) -> None:
    """Create a wellness item"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO medications (
                    id, user_id, name, dosage, frequency, duration, start_date,
                    times, notes, reminder_enabled, refill_reminder,
                    current_supply, total_supply, refill_at, last_refill_date, color
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    medication.id,
                    user_id,
                    medication.name,
                    medication.dosage,
                    medication.frequency,
                    medication.duration,
                    _timestamp(medication.start_date),
                    medication.times,
                    medication.notes,
                    medication.reminder_enabled,
                    medication.refill_reminder,
                    medication.current_supply,
                    medication.total_supply,
                    medication.refill_at,
                    _timestamp(medication.last_refill_date),
                    medication.color,
                )
            )
            await conn.commit()
    logger.info(f"Created medication {medication.id} ({medication.name}) for user {user_id}")


async def update_medication(user_id: str, medication: Medication) -> bool:
    """
    Replace every field of an existing wellness item

    Returns:
        True if updated, False if the id does not exist
    """
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                UPDATE medications SET
                    name = %s,
                    dosage = %s,
                    frequency = %s,
                    duration = %s,
                    start_date = %s,
                    times = %s,
                    notes = %s,
                    reminder_enabled = %s,
                    refill_reminder = %s,
                    current_supply = %s,
                    total_supply = %s,
                    refill_at = %s,
                    last_refill_date = %s,
                    color = %s
                WHERE user_id = %s AND id = %s
                RETURNING id
                """,
                (
                    medication.name,
                    medication.dosage,
                    medication.frequency,
                    medication.duration,
                    _timestamp(medication.start_date),
                    medication.times,
                    medication.notes,
                    medication.reminder_enabled,
                    medication.refill_reminder,
                    medication.current_supply,
                    medication.total_supply,
                    medication.refill_at,
                    _timestamp(medication.last_refill_date),
                    medication.color,
                    user_id,
                    medication.id,
                )
            )
            result = await cur.fetchone()
            await conn.commit()

    if result:
        logger.info(f"Updated medication {medication.id} for user {user_id}")
        return True
    return False


async def delete_all_medications(user_id: str) -> int:
    """Remove every wellness item and dose record for a user"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute("DELETE FROM dose_history WHERE user_id = %s", (user_id,))
            await cur.execute("DELETE FROM medications WHERE user_id = %s", (user_id,))
            deleted = cur.rowcount
            await conn.commit()
    logger.info(f"Cleared {deleted} medications for user {user_id}")
    return deleted


# ==========================================
# Dose History
# ==========================================

async def insert_dose(user_id: str, dose: DoseHistory) -> None:
    """Append a dose event"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO dose_history (id, user_id, medication_id, taken, timestamp)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (dose.id, user_id, dose.medication_id, dose.taken, _timestamp(dose.timestamp))
            )
            await conn.commit()
    logger.info(f"Recorded dose for medication {dose.medication_id} (taken={dose.taken})")


async def get_doses_between(user_id: str, start: datetime, end: datetime) -> list[DoseHistory]:
    """Get dose events with start <= timestamp < end, oldest first"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT id, medication_id, taken, timestamp
                FROM dose_history
                WHERE user_id = %s AND timestamp >= %s AND timestamp < %s
                ORDER BY timestamp ASC
                """,
                (user_id, start, end)
            )
            rows = await cur.fetchall()
    return [row_to_dose(row) for row in rows]


async def get_dose_history(user_id: str, medication_id: Optional[str] = None) -> list[DoseHistory]:
    """Get every dose event for a user, newest first"""
    query = "SELECT id, medication_id, taken, timestamp FROM dose_history WHERE user_id = %s"
    params: tuple = (user_id,)
    if medication_id:
        query += " AND medication_id = %s"
        params = (user_id, medication_id)
    query += " ORDER BY timestamp DESC"

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            rows = await cur.fetchall()
    return [row_to_dose(row) for row in rows]
