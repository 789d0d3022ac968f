"""Mood models"""
from typing import Literal, Optional
from pydantic import BaseModel, Field

StatsPeriod = Literal["day", "week", "month"]


class MoodType(BaseModel):
    """Catalog entry describing one mood category"""
    id: str
    name: str
    emoji: str
    color: str  # hex, e.g. "#22c55e"
    value: int = Field(ge=1, le=5, description="1 (very low) to 5 (very high)")

    model_config = {"frozen": True}


class MoodEntry(BaseModel):
    """A single timestamped mood submission"""
    id: str
    user_id: str
    mood: MoodType
    intensity: int  # 1-5, checked by validators before any write
    note: Optional[str] = None
    timestamp: int  # epoch milliseconds
    date: str  # YYYY-MM-DD


class MoodStats(BaseModel):
    """Aggregate statistics over a window of mood entries"""
    total_entries: int = 0
    average_mood: float = 0
    average_intensity: float = 0
    mood_distribution: dict[str, int] = Field(default_factory=dict)
    streak: int = 0
    period: StatsPeriod = "week"


# Built-in catalog. Rows in the mood_types table override matching ids.
MOOD_TYPES: list[MoodType] = [
    MoodType(id="very-sad", name="Very Sad", emoji="😢", color="#ef4444", value=1),
    MoodType(id="sad", name="Sad", emoji="😔", color="#f97316", value=2),
    MoodType(id="anxious", name="Anxious", emoji="😰", color="#8b5cf6", value=2),
    MoodType(id="neutral", name="Neutral", emoji="😐", color="#eab308", value=3),
    MoodType(id="calm", name="Calm", emoji="😌", color="#06b6d4", value=4),
    MoodType(id="happy", name="Happy", emoji="😊", color="#22c55e", value=4),
    MoodType(id="excited", name="Excited", emoji="🤩", color="#ec4899", value=5),
    MoodType(id="very-happy", name="Very Happy", emoji="😄", color="#10b981", value=5),
]

MOOD_TYPES_BY_ID: dict[str, MoodType] = {mood.id: mood for mood in MOOD_TYPES}


def find_mood_type(key: str, catalog: Optional[list[MoodType]] = None) -> Optional[MoodType]:
    """
    Resolve a mood type by id, display name, or emoji

    Used to map free-form legacy payloads ({mood, label}) onto the catalog.
    """
    if not key:
        return None
    catalog = catalog if catalog is not None else MOOD_TYPES
    needle = key.strip()
    lowered = needle.lower()
    for mood in catalog:
        if mood.id == lowered or mood.name.lower() == lowered or mood.emoji == needle:
            return mood
    # "Very Happy" -> "very-happy"
    slug = lowered.replace(" ", "-")
    for mood in catalog:
        if mood.id == slug:
            return mood
    return None
