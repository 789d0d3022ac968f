"""Unit tests for schema bootstrap (nomi/db/schema.py)"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from nomi.db.schema import (
    LEGACY_MIGRATE_SQL,
    LEGACY_RENAME_SQL,
    SCHEMA_STATEMENTS,
    SEED_MOOD_TYPE_SQL,
    init_schema,
)
from nomi.models.mood import MOOD_TYPES


def _mock_database(columns, rowcount=0):
    cursor = AsyncMock()
    cursor.execute = AsyncMock()
    cursor.fetchall = AsyncMock(return_value=[{"column_name": name} for name in columns])
    cursor.rowcount = rowcount

    conn = MagicMock()
    conn.cursor.return_value.__aenter__.return_value = cursor
    conn.commit = AsyncMock()

    database = MagicMock()
    database.connection.return_value.__aenter__.return_value = conn
    return database, cursor, conn


def _statements(cursor):
    return [call[0][0] for call in cursor.execute.call_args_list]


@pytest.mark.asyncio
async def test_init_schema_seeds_catalog():
    """Test every built-in mood type is seeded idempotently"""
    database, cursor, conn = _mock_database(["id", "user_id", "mood_type_id", "intensity"])

    result = await init_schema(database)

    seeds = [call for call in cursor.execute.call_args_list if call[0][0] == SEED_MOOD_TYPE_SQL]
    assert len(seeds) == len(MOOD_TYPES)
    assert seeds[0][0][1] == (MOOD_TYPES[0].id, MOOD_TYPES[0].name, MOOD_TYPES[0].emoji,
                              MOOD_TYPES[0].color, MOOD_TYPES[0].value)
    assert result == {"seeded": len(MOOD_TYPES), "migrated": 0}
    conn.commit.assert_called_once()


@pytest.mark.asyncio
async def test_init_schema_creates_every_table():
    """Test all table statements run on a fresh database"""
    database, cursor, _ = _mock_database([])

    await init_schema(database)

    executed = _statements(cursor)
    for statement in SCHEMA_STATEMENTS:
        assert statement in executed
    assert LEGACY_RENAME_SQL not in executed


@pytest.mark.asyncio
async def test_init_schema_migrates_legacy_rows():
    """Test the free-form mood log is renamed and migrated"""
    database, cursor, _ = _mock_database(
        ["id", "user_id", "mood", "label", "color", "created_at"],
        rowcount=4,
    )

    result = await init_schema(database)

    executed = _statements(cursor)
    assert LEGACY_RENAME_SQL in executed
    assert LEGACY_MIGRATE_SQL in executed
    assert executed.index(LEGACY_RENAME_SQL) < executed.index(LEGACY_MIGRATE_SQL)
    assert result["migrated"] == 4


@pytest.mark.asyncio
async def test_init_schema_skips_already_migrated_table():
    """Test a normalized table is not migrated again"""
    database, cursor, _ = _mock_database(["id", "label", "mood_type_id"])

    result = await init_schema(database)

    assert LEGACY_RENAME_SQL not in _statements(cursor)
    assert result["migrated"] == 0
