"""Scheduled notification records and app state queries"""
import logging
from typing import Optional
from nomi.db.connection import db
from nomi.models.medication import StoredNotification

logger = logging.getLogger(__name__)


def row_to_notification(row: dict) -> StoredNotification:
    return StoredNotification(
        id=row["id"],
        medication_id=row["medication_id"],
        type=row["type"],
        scheduled_for=row["scheduled_for"],
        notification_id=row["notification_id"],
        scheduled_time=row.get("scheduled_time"),
    )


# ==========================================
# Notification Records
# ==========================================

async def save_notification(user_id: str, record: StoredNotification) -> None:
    """Insert or replace a notification record keyed by its id"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO scheduled_notifications (
                    id, user_id, medication_id, type, scheduled_for,
                    notification_id, scheduled_time
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    medication_id = EXCLUDED.medication_id,
                    type = EXCLUDED.type,
                    scheduled_for = EXCLUDED.scheduled_for,
                    notification_id = EXCLUDED.notification_id,
                    scheduled_time = EXCLUDED.scheduled_time,
                    created_at = NOW()
                """,
                (
                    record.id,
                    user_id,
                    record.medication_id,
                    record.type,
                    record.scheduled_for,
                    record.notification_id,
                    record.scheduled_time,
                )
            )
            await conn.commit()


async def get_notifications(user_id: str) -> list[StoredNotification]:
    """Get all notification records for a user"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT id, medication_id, type, scheduled_for, notification_id, scheduled_time
                FROM scheduled_notifications
                WHERE user_id = %s
                ORDER BY created_at ASC
                """,
                (user_id,)
            )
            rows = await cur.fetchall()
    return [row_to_notification(row) for row in rows]


async def delete_notifications(
    user_id: str,
    medication_id: str,
    notification_type: Optional[str] = None
) -> int:
    """Delete a medication's records, optionally only one type"""
    query = "DELETE FROM scheduled_notifications WHERE user_id = %s AND medication_id = %s"
    params: tuple = (user_id, medication_id)
    if notification_type:
        query += " AND type = %s"
        params = (user_id, medication_id, notification_type)

    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            deleted = cur.rowcount
            await conn.commit()
    return deleted


async def delete_notifications_by_id(user_id: str, record_ids: list[str]) -> int:
    """Delete specific records"""
    if not record_ids:
        return 0
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "DELETE FROM scheduled_notifications WHERE user_id = %s AND id = ANY(%s)",
                (user_id, record_ids)
            )
            deleted = cur.rowcount
            await conn.commit()
    return deleted


async def delete_all_notifications(user_id: str) -> int:
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute("DELETE FROM scheduled_notifications WHERE user_id = %s", (user_id,))
            deleted = cur.rowcount
            await conn.commit()
    logger.info(f"Cleared {deleted} notification records for user {user_id}")
    return deleted


# ==========================================
# App State
# ==========================================

async def get_app_state(key: str) -> Optional[str]:
    """Read a persisted key/value setting"""
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute("SELECT value FROM app_state WHERE key = %s", (key,))
            row = await cur.fetchone()
    return row["value"] if row else None


async def set_app_state(key: str, value: str) -> None:
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                INSERT INTO app_state (key, value, updated_at)
                VALUES (%s, %s, NOW())
                ON CONFLICT (key) DO UPDATE SET
                    value = EXCLUDED.value,
                    updated_at = NOW()
                """,
                (key, value)
            )
            await conn.commit()


async def delete_app_state(key: str) -> None:
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute("DELETE FROM app_state WHERE key = %s", (key,))
            await conn.commit()
