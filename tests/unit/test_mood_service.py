"""Unit tests for MoodService"""
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from nomi.db import queries
from nomi.exceptions import NomiError, NotFoundError, ValidationError
from nomi.models.mood import MOOD_TYPES, MOOD_TYPES_BY_ID, MoodType
from nomi.services.mood_service import MoodService, merge_mood_types, new_mood_entry_id


@pytest.fixture
def service(store, clock):
    return MoodService(clock)


# ============================================================================
# Helper Tests
# ============================================================================

def test_new_mood_entry_id_format():
    """Test ids embed timestamp and user plus a random suffix"""
    first = new_mood_entry_id("user_1", 1700000000000)
    second = new_mood_entry_id("user_1", 1700000000000)

    assert first.startswith("mood_1700000000000_user_1_")
    assert len(first.rsplit("_", 1)[1]) == 9
    assert first != second


def test_merge_mood_types_overrides_builtins():
    """Test database rows replace built-ins with the same id"""
    custom = MoodType(id="happy", name="Joyful", emoji="😁", color="#00ff00", value=4)
    extra = MoodType(id="tired", name="Tired", emoji="🥱", color="#999999", value=2)

    merged = merge_mood_types([custom, extra])

    by_id = {mood.id: mood for mood in merged}
    assert by_id["happy"].name == "Joyful"
    assert "tired" in by_id
    assert len(merged) == len(MOOD_TYPES) + 1
    assert [mood.value for mood in merged] == sorted(mood.value for mood in merged)


# ============================================================================
# Mood Type Tests
# ============================================================================

@pytest.mark.asyncio
async def test_mood_types_fall_back_to_builtins(service, monkeypatch):
    """Test an unreachable database still yields the catalog"""
    monkeypatch.setattr(queries, "get_mood_types", AsyncMock(side_effect=RuntimeError("down")))

    assert await service.get_mood_types() == MOOD_TYPES


@pytest.mark.asyncio
async def test_resolve_mood_type(service):
    """Test resolving by id, name and emoji"""
    assert (await service.resolve_mood_type("😰")).id == "anxious"
    assert (await service.resolve_mood_type("Calm")).id == "calm"
    assert await service.resolve_mood_type("bored") is None


# ============================================================================
# Save Tests
# ============================================================================

@pytest.mark.asyncio
async def test_two_entries_same_day_are_distinct(service):
    """Test saving twice on one date keeps both entries"""
    first = await service.create_mood_entry("user_1", "happy")
    second = await service.create_mood_entry("user_1", "sad", note="Long day")

    entries = await service.get_all_mood_entries("user_1")

    assert first.id != second.id
    assert first.date == second.date == "2026-10-18"
    assert {entry.id for entry in entries} == {first.id, second.id}


@pytest.mark.asyncio
async def test_create_mood_entry_defaults(service, clock):
    """Test intensity defaults to the mood value and stamps come from the clock"""
    entry = await service.create_mood_entry("user_1", MOOD_TYPES_BY_ID["excited"], note="  ")

    assert entry.intensity == 5
    assert entry.note is None
    assert entry.timestamp == int(clock.now().timestamp() * 1000)
    assert entry.date == "2026-10-18"


@pytest.mark.asyncio
async def test_create_mood_entry_unknown_mood(service, store):
    """Test unknown moods are rejected before any write"""
    with pytest.raises(ValidationError):
        await service.create_mood_entry("user_1", "grumpy")

    assert store.mood_entries == {}


@pytest.mark.asyncio
async def test_save_rejects_bad_intensity(service, store, make_mood_entry):
    """Test intensity outside 1-5 never reaches the store"""
    with pytest.raises(ValidationError):
        await service.save_mood_entry(make_mood_entry(intensity=7))

    assert store.mood_entries == {}


@pytest.mark.asyncio
async def test_save_duplicate_id_does_not_overwrite(service, store, make_mood_entry):
    """Test the insert path refuses an existing id"""
    entry = make_mood_entry(note="first")
    await service.save_mood_entry(entry)

    with pytest.raises(NomiError):
        await service.save_mood_entry(entry.model_copy(update={"note": "second"}))

    assert store.mood_entries[entry.id].note == "first"


@pytest.mark.asyncio
async def test_upsert_updates_existing(service, store, make_mood_entry):
    """Test the explicit upsert path replaces fields"""
    entry = make_mood_entry(note="first")
    await service.save_mood_entry(entry)

    await service.upsert_mood_entry(entry.model_copy(update={"note": "second"}))

    assert store.mood_entries[entry.id].note == "second"


@pytest.mark.asyncio
async def test_save_when_unavailable_raises(service, monkeypatch, make_mood_entry):
    """Test writes surface database failures"""
    monkeypatch.setattr(queries, "insert_mood_entry", AsyncMock(side_effect=RuntimeError("down")))

    with pytest.raises(NomiError):
        await service.save_mood_entry(make_mood_entry())


# ============================================================================
# Update / Delete Tests
# ============================================================================

@pytest.mark.asyncio
async def test_update_mood_entry(service, store, make_mood_entry):
    """Test editing mood and intensity"""
    entry = make_mood_entry()
    await service.save_mood_entry(entry)

    await service.update_mood_entry(entry.id, mood="calm", intensity=2)

    updated = store.mood_entries[entry.id]
    assert updated.mood.id == "calm"
    assert updated.intensity == 2


@pytest.mark.asyncio
async def test_update_requires_fields(service):
    """Test an empty update is a validation error"""
    with pytest.raises(ValidationError):
        await service.update_mood_entry("mood_1")


@pytest.mark.asyncio
async def test_update_rejects_bad_intensity(service):
    """Test update values are validated"""
    with pytest.raises(ValidationError):
        await service.update_mood_entry("mood_1", intensity=0)


@pytest.mark.asyncio
async def test_update_missing_entry(service):
    """Test updating an unknown id raises NotFoundError"""
    with pytest.raises(NotFoundError):
        await service.update_mood_entry("ghost", note="hello")


@pytest.mark.asyncio
async def test_delete_mood_entry(service, store, make_mood_entry):
    """Test hard delete and NotFoundError on repeat"""
    entry = make_mood_entry()
    await service.save_mood_entry(entry)

    await service.delete_mood_entry(entry.id)

    assert store.mood_entries == {}
    with pytest.raises(NotFoundError):
        await service.delete_mood_entry(entry.id)


@pytest.mark.asyncio
async def test_clear_mood_entries(service, make_mood_entry):
    """Test bulk clear only affects one user"""
    await service.save_mood_entry(make_mood_entry(user_id="user_1"))
    await service.save_mood_entry(make_mood_entry(user_id="user_1"))
    await service.save_mood_entry(make_mood_entry(user_id="user_2"))

    cleared = await service.clear_mood_entries("user_1")

    assert cleared == 2
    assert await service.get_all_mood_entries("user_1") == []
    assert len(await service.get_all_mood_entries("user_2")) == 1


# ============================================================================
# Read Tests
# ============================================================================

@pytest.mark.asyncio
async def test_range_is_inclusive(service, make_mood_entry):
    """Test both range endpoints are included"""
    for day in ("2026-10-11", "2026-10-12", "2026-10-15", "2026-10-18", "2026-10-19"):
        await service.save_mood_entry(make_mood_entry(entry_date=day))

    entries = await service.get_mood_entries_for_date_range("user_1", "2026-10-12", "2026-10-18")

    assert [entry.date for entry in entries] == ["2026-10-18", "2026-10-15", "2026-10-12"]


@pytest.mark.asyncio
async def test_recent_entries_newest_first(service, make_mood_entry):
    """Test the history is newest first and limited"""
    for day in ("2026-10-15", "2026-10-16", "2026-10-17", "2026-10-18"):
        await service.save_mood_entry(make_mood_entry(entry_date=day))

    recent = await service.get_recent_mood_entries("user_1", limit=2)

    assert [entry.date for entry in recent] == ["2026-10-18", "2026-10-17"]


@pytest.mark.asyncio
async def test_todays_mood_entry(service, make_mood_entry):
    """Test today's lookup returns the most recent entry"""
    await service.save_mood_entry(make_mood_entry(mood_id="sad", entry_date="2026-10-18"))
    await service.save_mood_entry(make_mood_entry(mood_id="calm", entry_date="2026-10-18"))

    entry = await service.get_todays_mood_entry("user_1")

    assert entry.mood.id == "calm"


@pytest.mark.asyncio
async def test_reads_degrade_when_unavailable(service, monkeypatch):
    """Test read failures return empty results"""
    failing = AsyncMock(side_effect=RuntimeError("down"))
    monkeypatch.setattr(queries, "get_mood_entries", failing)
    monkeypatch.setattr(queries, "get_mood_entries_for_date_range", failing)
    monkeypatch.setattr(queries, "get_mood_entry_for_date", failing)

    assert await service.get_all_mood_entries("user_1") == []
    assert await service.get_recent_mood_entries("user_1") == []
    assert await service.get_mood_entries_for_date_range("user_1", "2026-10-12", "2026-10-18") == []
    assert await service.get_mood_entry_for_date("user_1", "2026-10-18") is None
