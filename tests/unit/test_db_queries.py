"""Unit tests for database queries (nomi/db/queries)"""
import pytest
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from nomi.db.connection import Database, db
from nomi.db.queries import medications as medication_queries
from nomi.db.queries import moods as mood_queries
from nomi.db.queries import notifications as notification_queries
from nomi.db.queries import users as user_queries
from nomi.exceptions import UnavailableError
from nomi.models.medication import DoseHistory, Medication, StoredNotification
from nomi.models.mood import MOOD_TYPES_BY_ID, MoodEntry
from nomi.models.user import User


def _mock_cursor(fetchone=None, fetchall=None, rowcount=0):
    cursor = AsyncMock()
    cursor.execute = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=fetchone)
    cursor.fetchall = AsyncMock(return_value=fetchall or [])
    cursor.rowcount = rowcount
    return cursor


def _mock_connection(cursor):
    conn = MagicMock()
    conn.cursor.return_value.__aenter__.return_value = cursor
    conn.commit = AsyncMock()
    return conn


def _mood_row(**overrides):
    row = {
        "id": "mood_1_user_1_abc",
        "user_id": "user_1",
        "intensity": 4,
        "note": "Walked outside",
        "date": date(2026, 10, 18),
        "timestamp": 1792324800000,
        "mood_id": "happy",
        "mood_name": "Happy",
        "mood_emoji": "😊",
        "mood_color": "#22c55e",
        "mood_value": 4,
    }
    row.update(overrides)
    return row


def _medication_row(**overrides):
    row = {
        "id": "med1",
        "name": "Vitamin D",
        "dosage": "1 tablet",
        "frequency": "Once daily",
        "duration": "Ongoing",
        "start_date": datetime(2026, 10, 18, tzinfo=timezone.utc),
        "times": ["09:00"],
        "notes": "",
        "reminder_enabled": True,
        "refill_reminder": False,
        "current_supply": 30.0,
        "total_supply": 30.0,
        "refill_at": 20.0,
        "last_refill_date": None,
        "color": "#6B73FF",
    }
    row.update(overrides)
    return row


def _entry() -> MoodEntry:
    return MoodEntry(
        id="mood_1_user_1_abc",
        user_id="user_1",
        mood=MOOD_TYPES_BY_ID["happy"],
        intensity=4,
        note="",
        timestamp=1792324800000,
        date="2026-10-18",
    )


# ============================================================================
# Connection Tests
# ============================================================================

@pytest.mark.asyncio
async def test_unconfigured_database_raises_unavailable():
    """Test connection() refuses when no URL is configured"""
    database = Database(None)

    assert database.is_available is False
    with pytest.raises(UnavailableError):
        async with database.connection():
            pass


@pytest.mark.asyncio
async def test_uninitialized_pool_raises_unavailable():
    """Test connection() refuses before init_pool()"""
    database = Database("postgresql://localhost/nomi")

    with pytest.raises(UnavailableError):
        async with database.connection():
            pass


@pytest.mark.asyncio
async def test_connection_check_unconfigured():
    """Test test_connection() is False without a URL"""
    assert await Database(None).test_connection() is False


# ============================================================================
# Mood Query Tests
# ============================================================================

@pytest.mark.asyncio
async def test_get_mood_types_maps_rows():
    """Test mood_types rows become MoodType models"""
    cursor = _mock_cursor(fetchall=[
        {"id": "calm", "name": "Calm", "emoji": "😌", "color": "#06b6d4", "value": 4},
    ])
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        result = await mood_queries.get_mood_types()

    assert result[0].id == "calm"
    assert result[0].value == 4
    assert "ORDER BY value" in cursor.execute.call_args[0][0]


@pytest.mark.asyncio
async def test_insert_mood_entry_never_upserts():
    """Test inserting a mood entry uses a plain INSERT"""
    cursor = _mock_cursor()
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        await mood_queries.insert_mood_entry(_entry())

    sql, params = cursor.execute.call_args[0]
    assert "INSERT INTO mood_entries" in sql
    assert "ON CONFLICT" not in sql
    assert params[0] == "mood_1_user_1_abc"
    assert params[2] == "happy"
    # Empty notes are stored as NULL
    assert params[4] is None
    conn.commit.assert_called_once()


@pytest.mark.asyncio
async def test_upsert_mood_entry_updates_on_conflict():
    """Test the explicit upsert path"""
    cursor = _mock_cursor()
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        await mood_queries.upsert_mood_entry(_entry())

    sql = cursor.execute.call_args[0][0]
    assert "ON CONFLICT (id) DO UPDATE" in sql
    assert "updated_at = NOW()" in sql


@pytest.mark.asyncio
async def test_update_mood_entry_only_allowed_columns():
    """Test unknown keys are ignored when building the UPDATE"""
    cursor = _mock_cursor(fetchone={"id": "mood_1"})
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        result = await mood_queries.update_mood_entry("mood_1", {"intensity": 2, "user_id": "intruder"})

    sql, params = cursor.execute.call_args[0]
    assert result is True
    assert "intensity = %s" in sql
    assert "user_id" not in sql.split("WHERE")[0]
    assert params == (2, "mood_1")


@pytest.mark.asyncio
async def test_update_mood_entry_missing_row():
    """Test updating an unknown id returns False"""
    cursor = _mock_cursor(fetchone=None)
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        assert await mood_queries.update_mood_entry("missing", {"note": "x"}) is False


@pytest.mark.asyncio
async def test_update_mood_entry_no_fields_skips_database():
    """Test an empty update never opens a connection"""
    with patch.object(db, "connection") as mock_db:
        assert await mood_queries.update_mood_entry("mood_1", {}) is False
        mock_db.assert_not_called()


@pytest.mark.asyncio
async def test_get_mood_entries_with_limit():
    """Test history query joins the catalog and applies the limit"""
    cursor = _mock_cursor(fetchall=[_mood_row()])
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        result = await mood_queries.get_mood_entries("user_1", limit=5)

    sql, params = cursor.execute.call_args[0]
    assert "JOIN mood_types" in sql
    assert "ORDER BY me.timestamp DESC" in sql
    assert sql.rstrip().endswith("LIMIT %s")
    assert params == ("user_1", 5)
    assert result[0].mood.emoji == "😊"
    assert result[0].date == "2026-10-18"


@pytest.mark.asyncio
async def test_get_mood_entries_for_date_range_inclusive():
    """Test range filter is inclusive on both ends"""
    cursor = _mock_cursor(fetchall=[])
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        await mood_queries.get_mood_entries_for_date_range("user_1", "2026-10-12", "2026-10-18")

    sql, params = cursor.execute.call_args[0]
    assert "me.date >= %s" in sql
    assert "me.date <= %s" in sql
    assert params == ("user_1", "2026-10-12", "2026-10-18")


@pytest.mark.asyncio
async def test_get_mood_entry_for_date_none():
    """Test no entry on a date returns None"""
    cursor = _mock_cursor(fetchone=None)
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        assert await mood_queries.get_mood_entry_for_date("user_1", "2026-10-18") is None


@pytest.mark.asyncio
async def test_delete_mood_entries_for_user_returns_count():
    """Test bulk clear reports the deleted row count"""
    cursor = _mock_cursor(rowcount=7)
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        assert await mood_queries.delete_mood_entries_for_user("user_1") == 7


# ============================================================================
# Medication Query Tests
# ============================================================================

@pytest.mark.asyncio
async def test_get_medications_maps_rows():
    """Test medication rows convert timestamps and arrays"""
    cursor = _mock_cursor(fetchall=[_medication_row(times=None)])
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        result = await medication_queries.get_medications("local")

    assert result[0].start_date == "2026-10-18T00:00:00+00:00"
    assert result[0].times == []
    assert result[0].last_refill_date is None


@pytest.mark.asyncio
async def test_insert_medication_parses_iso_start_date():
    """Test ISO strings are sent as aware datetimes"""
    cursor = _mock_cursor()
    conn = _mock_connection(cursor)
    medication = Medication(
        id="med1", name="Vitamin D", dosage="1 tablet", frequency="Once daily",
        duration="Ongoing", start_date="2026-10-18T09:00:00Z", color="#6B73FF",
    )

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        await medication_queries.insert_medication("local", medication)

    params = cursor.execute.call_args[0][1]
    assert params[0] == "med1"
    assert params[1] == "local"
    assert params[6] == datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
    conn.commit.assert_called_once()


@pytest.mark.asyncio
async def test_update_medication_missing_row():
    """Test updating an unknown id returns False"""
    cursor = _mock_cursor(fetchone=None)
    conn = _mock_connection(cursor)
    medication = Medication(
        id="ghost", name="X", dosage="1", frequency="Once daily",
        duration="7", start_date="2026-10-18T00:00:00Z",
    )

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        assert await medication_queries.update_medication("local", medication) is False


@pytest.mark.asyncio
async def test_delete_all_medications_clears_doses_first():
    """Test dose history is removed along with medications"""
    cursor = _mock_cursor(rowcount=2)
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        deleted = await medication_queries.delete_all_medications("local")

    statements = [call[0][0] for call in cursor.execute.call_args_list]
    assert "dose_history" in statements[0]
    assert "medications" in statements[1]
    assert deleted == 2


@pytest.mark.asyncio
async def test_insert_dose():
    """Test dose events are appended"""
    cursor = _mock_cursor()
    conn = _mock_connection(cursor)
    dose = DoseHistory(id="dose1", medication_id="med1", taken=True, timestamp="2026-10-18T09:05:00+00:00")

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        await medication_queries.insert_dose("local", dose)

    sql, params = cursor.execute.call_args[0]
    assert "INSERT INTO dose_history" in sql
    assert params[:4] == ("dose1", "local", "med1", True)


@pytest.mark.asyncio
async def test_get_dose_history_filtered_by_medication():
    """Test optional medication filter"""
    cursor = _mock_cursor(fetchall=[
        {"id": "dose1", "medication_id": "med1", "taken": True,
         "timestamp": datetime(2026, 10, 18, 9, 5, tzinfo=timezone.utc)},
    ])
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        result = await medication_queries.get_dose_history("local", "med1")

    sql, params = cursor.execute.call_args[0]
    assert "AND medication_id = %s" in sql
    assert params == ("local", "med1")
    assert result[0].timestamp == "2026-10-18T09:05:00+00:00"


# ============================================================================
# Notification Record Tests
# ============================================================================

@pytest.mark.asyncio
async def test_save_notification_upserts_by_id():
    """Test records are keyed by their id"""
    cursor = _mock_cursor()
    conn = _mock_connection(cursor)
    record = StoredNotification(
        id="med1-09:00", medication_id="med1", type="medication",
        scheduled_for="2026-10-18T09:00:00+00:00", notification_id="med_med1_0900",
        scheduled_time="09:00",
    )

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        await notification_queries.save_notification("local", record)

    sql, params = cursor.execute.call_args[0]
    assert "ON CONFLICT (id) DO UPDATE" in sql
    assert params[0] == "med1-09:00"
    assert params[-1] == "09:00"


@pytest.mark.asyncio
async def test_delete_notifications_by_type():
    """Test deleting one type of a medication's records"""
    cursor = _mock_cursor(rowcount=1)
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        deleted = await notification_queries.delete_notifications("local", "med1", "refill")

    sql, params = cursor.execute.call_args[0]
    assert "AND type = %s" in sql
    assert params == ("local", "med1", "refill")
    assert deleted == 1


@pytest.mark.asyncio
async def test_delete_notifications_by_id_empty_list():
    """Test an empty id list never opens a connection"""
    with patch.object(db, "connection") as mock_db:
        assert await notification_queries.delete_notifications_by_id("local", []) == 0
        mock_db.assert_not_called()


@pytest.mark.asyncio
async def test_get_app_state():
    """Test key/value reads"""
    cursor = _mock_cursor(fetchone={"value": "2026-10-18T08:00:00+00:00"})
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        assert await notification_queries.get_app_state("last_past_due_check:local") == "2026-10-18T08:00:00+00:00"


# ============================================================================
# User Query Tests
# ============================================================================

@pytest.mark.asyncio
async def test_upsert_user_new():
    """Test creating a user reports insertion"""
    cursor = _mock_cursor(fetchone={"clerk_id": "user_1"})
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        created = await user_queries.upsert_user(User(clerk_id="user_1", email="a@example.com"))

    sql = cursor.execute.call_args[0][0]
    assert "ON CONFLICT (clerk_id) DO NOTHING" in sql
    assert created is True


@pytest.mark.asyncio
async def test_upsert_user_existing():
    """Test an existing user is left untouched"""
    cursor = _mock_cursor(fetchone=None)
    conn = _mock_connection(cursor)

    with patch.object(db, "connection") as mock_db:
        mock_db.return_value.__aenter__.return_value = conn

        assert await user_queries.upsert_user(User(clerk_id="user_1")) is False
