"""Pydantic models for API request/response validation"""
from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==========================================
# Requests
# ==========================================

class MoodLogRequest(CamelModel):
    """Mood submission from the app (userId, mood, label, color)"""
    user_id: Optional[str] = None
    mood: Optional[str] = Field(default=None, description="Mood id, name or emoji")
    label: Optional[str] = None
    color: Optional[str] = None
    intensity: Optional[int] = Field(default=None, description="1-5, defaults to the mood's value")
    note: Optional[str] = None


class UserCreateRequest(BaseModel):
    """Signup payload; clerkId is camelCase, the rest snake_case"""
    model_config = ConfigDict(populate_by_name=True)

    firstname: Optional[str] = None
    lastname: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None
    clerk_id: Optional[str] = Field(default=None, alias="clerkId")
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None


class MedicationRequest(CamelModel):
    """Add or edit a wellness item"""
    name: str
    dosage: str
    frequency: str
    duration: str
    start_date: Optional[str] = Field(default=None, description="ISO-8601, defaults to now")
    times: Optional[List[str]] = Field(default=None, description="HH:MM; defaults from frequency")
    notes: str = ""
    reminder_enabled: bool = True
    refill_reminder: bool = False
    current_supply: float = 0
    total_supply: Optional[float] = Field(default=None, description="Defaults to current supply")
    refill_at: float = 0
    color: Optional[str] = None


class DoseRequest(CamelModel):
    taken: bool = True
    timestamp: Optional[str] = Field(default=None, description="ISO-8601, defaults to now")


# ==========================================
# Responses
# ==========================================

class MoodTypeResponse(CamelModel):
    id: str
    name: str
    emoji: str
    color: str
    value: int


class MoodEntryResponse(CamelModel):
    id: str
    user_id: str
    mood: MoodTypeResponse
    intensity: int
    note: Optional[str] = None
    timestamp: int
    date: str


class MoodListResponse(BaseModel):
    data: List[MoodEntryResponse]


class MoodStatsResponse(CamelModel):
    total_entries: int
    average_mood: float
    average_intensity: float
    mood_distribution: Dict[str, int]
    streak: int
    period: str


class StreakResponse(CamelModel):
    user_id: str
    streak: int


class InsightsResponse(CamelModel):
    user_id: str
    insights: List[str]


class MoodContextResponse(CamelModel):
    user_id: str
    context: str
    summary: str


class MedicationResponse(CamelModel):
    id: str
    name: str
    dosage: str
    frequency: str
    duration: str
    start_date: str
    times: List[str]
    notes: str
    reminder_enabled: bool
    refill_reminder: bool
    current_supply: float
    total_supply: float
    refill_at: float
    last_refill_date: Optional[str] = None
    color: str
    supply_percentage: Optional[float] = None
    supply_status: Optional[Dict[str, str]] = None


class MedicationSavedResponse(CamelModel):
    medication: MedicationResponse
    reminders: Dict[str, int]


class DoseResponse(CamelModel):
    id: str
    medication_id: str
    taken: bool
    timestamp: str


class TodayResponse(CamelModel):
    medications: List[MedicationResponse]
    doses: List[DoseResponse]
    completed: int
    total: int
    progress: float


class HealthCheckResponse(BaseModel):
    """Health check response"""
    status: str
    database: str
    scheduled_reminders: int
    timestamp: datetime
