"""
Schema bootstrap

Creates every table the stores use, seeds the mood-type catalog, and
migrates the legacy free-form mood log into the catalog-joined shape.
All statements are idempotent; running init_schema() twice is a no-op.
"""
import logging

from nomi.db.connection import Database, db
from nomi.models.mood import MOOD_TYPES

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS users (
        clerk_id VARCHAR(100) PRIMARY KEY,
        firstname VARCHAR(100),
        lastname VARCHAR(100),
        username VARCHAR(100),
        email VARCHAR(255),
        date_of_birth DATE,
        gender VARCHAR(50),
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mood_types (
        id VARCHAR(50) PRIMARY KEY,
        name VARCHAR(100) NOT NULL,
        emoji VARCHAR(10) NOT NULL,
        color VARCHAR(20) NOT NULL,
        value INTEGER NOT NULL CHECK (value >= 1 AND value <= 5)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mood_entries (
        id VARCHAR(100) PRIMARY KEY,
        user_id VARCHAR(100) NOT NULL,
        mood_type_id VARCHAR(50) NOT NULL REFERENCES mood_types(id),
        intensity INTEGER NOT NULL CHECK (intensity >= 1 AND intensity <= 5),
        note TEXT,
        date DATE NOT NULL,
        timestamp BIGINT NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_mood_entries_user_id ON mood_entries(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_mood_entries_date ON mood_entries(date)",
    "CREATE INDEX IF NOT EXISTS idx_mood_entries_user_date ON mood_entries(user_id, date)",
    "CREATE INDEX IF NOT EXISTS idx_mood_entries_timestamp ON mood_entries(timestamp)",
    """
    CREATE TABLE IF NOT EXISTS medications (
        id VARCHAR(100) PRIMARY KEY,
        user_id VARCHAR(100) NOT NULL,
        name VARCHAR(200) NOT NULL,
        dosage VARCHAR(200) NOT NULL,
        frequency VARCHAR(100) NOT NULL,
        duration VARCHAR(100) NOT NULL,
        start_date TIMESTAMP WITH TIME ZONE NOT NULL,
        times TEXT[] NOT NULL DEFAULT '{}',
        notes TEXT NOT NULL DEFAULT '',
        reminder_enabled BOOLEAN NOT NULL DEFAULT TRUE,
        refill_reminder BOOLEAN NOT NULL DEFAULT FALSE,
        current_supply DOUBLE PRECISION NOT NULL DEFAULT 0,
        total_supply DOUBLE PRECISION NOT NULL DEFAULT 0,
        refill_at DOUBLE PRECISION NOT NULL DEFAULT 0,
        last_refill_date TIMESTAMP WITH TIME ZONE,
        color VARCHAR(20) NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_medications_user_id ON medications(user_id)",
    """
    CREATE TABLE IF NOT EXISTS dose_history (
        id VARCHAR(100) PRIMARY KEY,
        user_id VARCHAR(100) NOT NULL,
        medication_id VARCHAR(100) NOT NULL,
        taken BOOLEAN NOT NULL,
        timestamp TIMESTAMP WITH TIME ZONE NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_dose_history_user_ts ON dose_history(user_id, timestamp)",
    """
    CREATE TABLE IF NOT EXISTS scheduled_notifications (
        id VARCHAR(200) PRIMARY KEY,
        user_id VARCHAR(100) NOT NULL,
        medication_id VARCHAR(100) NOT NULL,
        type VARCHAR(20) NOT NULL CHECK (type IN ('medication', 'refill', 'past_due')),
        scheduled_for VARCHAR(50) NOT NULL,
        notification_id VARCHAR(200) NOT NULL,
        scheduled_time VARCHAR(5),
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_scheduled_notifications_med ON scheduled_notifications(user_id, medication_id)",
    """
    CREATE TABLE IF NOT EXISTS app_state (
        key VARCHAR(100) PRIMARY KEY,
        value TEXT,
        updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    )
    """,
    """
    CREATE OR REPLACE FUNCTION update_updated_at_column()
    RETURNS TRIGGER AS $$
    BEGIN
        NEW.updated_at = NOW();
        RETURN NEW;
    END;
    $$ language 'plpgsql'
    """,
    "DROP TRIGGER IF EXISTS update_mood_entries_updated_at ON mood_entries",
    """
    CREATE TRIGGER update_mood_entries_updated_at
        BEFORE UPDATE ON mood_entries
        FOR EACH ROW
        EXECUTE FUNCTION update_updated_at_column()
    """,
    "DROP TRIGGER IF EXISTS update_medications_updated_at ON medications",
    """
    CREATE TRIGGER update_medications_updated_at
        BEFORE UPDATE ON medications
        FOR EACH ROW
        EXECUTE FUNCTION update_updated_at_column()
    """,
]

SEED_MOOD_TYPE_SQL = """
    INSERT INTO mood_types (id, name, emoji, color, value)
    VALUES (%s, %s, %s, %s, %s)
    ON CONFLICT (id) DO NOTHING
"""

# The free-form log stored (user_id, mood, label, color, created_at) rows
# without a catalog join. It is detected by its "label" column.
LEGACY_DETECT_SQL = """
    SELECT column_name
    FROM information_schema.columns
    WHERE table_schema = 'public' AND table_name = 'mood_entries'
"""

LEGACY_RENAME_SQL = "ALTER TABLE mood_entries RENAME TO mood_entries_legacy"

LEGACY_MIGRATE_SQL = """
    INSERT INTO mood_entries (id, user_id, mood_type_id, intensity, note, date, timestamp, created_at)
    SELECT
        'legacy_' || md5(l.user_id || l.created_at::text || coalesce(l.label, '') || coalesce(l.mood, '')),
        l.user_id,
        mt.id,
        mt.value,
        NULL,
        l.created_at::date,
        (EXTRACT(EPOCH FROM l.created_at) * 1000)::bigint,
        l.created_at
    FROM mood_entries_legacy l
    JOIN mood_types mt
      ON mt.id = lower(l.mood)
      OR mt.emoji = l.mood
      OR lower(mt.name) = lower(l.label)
    WHERE l.user_id IS NOT NULL AND l.created_at IS NOT NULL
    ON CONFLICT (id) DO NOTHING
"""


async def _migrate_legacy_mood_entries(cur) -> int:
    """Move legacy free-form mood rows into the catalog-joined table"""
    await cur.execute(LEGACY_DETECT_SQL)
    columns = {row["column_name"] for row in await cur.fetchall()}
    if "label" not in columns or "mood_type_id" in columns:
        return 0

    logger.info("Legacy mood_entries table detected, migrating to catalog-joined shape")
    await cur.execute(LEGACY_RENAME_SQL)
    # Recreate the normalized table and its indexes under the original name
    for statement in SCHEMA_STATEMENTS[2:7]:
        await cur.execute(statement)
    await cur.execute(LEGACY_MIGRATE_SQL)
    migrated = cur.rowcount or 0
    logger.info(f"Migrated {migrated} legacy mood entries (unmatched rows stay in mood_entries_legacy)")
    return migrated


async def init_schema(database: Database = db) -> dict:
    """
    Create tables, seed mood types, migrate legacy mood rows

    Returns:
        {'seeded': int, 'migrated': int}
    """
    async with database.connection() as conn:
        async with conn.cursor() as cur:
            # mood_types must exist before a legacy migration can join on it
            await cur.execute(SCHEMA_STATEMENTS[0])
            await cur.execute(SCHEMA_STATEMENTS[1])
            for mood in MOOD_TYPES:
                await cur.execute(
                    SEED_MOOD_TYPE_SQL,
                    (mood.id, mood.name, mood.emoji, mood.color, mood.value)
                )
            migrated = await _migrate_legacy_mood_entries(cur)
            for statement in SCHEMA_STATEMENTS[2:]:
                await cur.execute(statement)
            await conn.commit()

    logger.info(f"Database schema ready ({len(MOOD_TYPES)} mood types seeded)")
    return {"seeded": len(MOOD_TYPES), "migrated": migrated}
