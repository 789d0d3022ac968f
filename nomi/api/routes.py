"""API routes for the wellness core"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query, Request, Response, status

from nomi.api.middleware import limiter
from nomi.api.models import (
    DoseRequest, DoseResponse,
    HealthCheckResponse,
    InsightsResponse,
    MedicationRequest, MedicationResponse, MedicationSavedResponse,
    MoodContextResponse, MoodEntryResponse, MoodListResponse, MoodLogRequest,
    MoodStatsResponse, MoodTypeResponse,
    StreakResponse, TodayResponse, UserCreateRequest,
)
from nomi.config import MOOD_HISTORY_LIMIT
from nomi.db import queries
from nomi.db.connection import db
from nomi.exceptions import ValidationError, wrap_external_exception
from nomi.models.medication import FREQUENCY_TIMES, Medication
from nomi.models.user import User
from nomi.services.container import ServiceContainer, get_container
from nomi.services.medication_service import supply_status

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services() -> ServiceContainer:
    return get_container()


def _require(**fields: Any) -> None:
    """400 unless every field is present and non-empty"""
    missing = [name for name, value in fields.items() if value is None or value == ""]
    if missing:
        raise ValidationError("Missing required fields", context={"missing": missing})


def _medication_response(medication: Medication) -> MedicationResponse:
    return MedicationResponse(
        **medication.model_dump(),
        supply_percentage=medication.supply_percentage,
        supply_status=supply_status(medication),
    )


def _dose_response(dose) -> DoseResponse:
    return DoseResponse(**dose.model_dump())


def _mood_response(entry) -> MoodEntryResponse:
    return MoodEntryResponse.model_validate(entry.model_dump())


def _medication_fields(payload: MedicationRequest, services: ServiceContainer) -> Dict[str, Any]:
    """Request -> Medication fields, filling the defaults the add screen uses"""
    fields: Dict[str, Any] = {
        "name": payload.name,
        "dosage": payload.dosage,
        "frequency": payload.frequency,
        "duration": payload.duration,
        "start_date": payload.start_date or services.clock.now().isoformat(),
        "times": payload.times if payload.times is not None else list(FREQUENCY_TIMES.get(payload.frequency, [])),
        "notes": payload.notes,
        "reminder_enabled": payload.reminder_enabled,
        "refill_reminder": payload.refill_reminder,
        "current_supply": payload.current_supply,
        "total_supply": payload.total_supply if payload.total_supply is not None else payload.current_supply,
        "refill_at": payload.refill_at,
    }
    if payload.color:
        fields["color"] = payload.color
    return fields


# ==========================================
# Mood
# ==========================================

@router.post("/mood", response_model=MoodListResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def log_mood(
    request: Request,
    payload: MoodLogRequest,
    services: ServiceContainer = Depends(get_services)
):
    """Log a mood from the app's {userId, mood, label, color} payload (Rate limit: 30/minute)"""
    _require(userId=payload.user_id, mood=payload.mood, label=payload.label, color=payload.color)

    mood_service = services.mood_service
    mood = await mood_service.resolve_mood_type(payload.mood)
    if mood is None:
        mood = await mood_service.resolve_mood_type(payload.label)
    if mood is None:
        raise ValidationError(f"Unknown mood: '{payload.mood}'", field="mood", value=payload.mood)

    try:
        await queries.ensure_user(payload.user_id)
    except Exception as e:
        raise wrap_external_exception(e, operation="ensure_user", user_id=payload.user_id)

    entry = await mood_service.create_mood_entry(
        payload.user_id,
        mood,
        intensity=payload.intensity,
        note=payload.note,
    )
    logger.info(f"Logged mood {mood.id} for user {payload.user_id}")
    return MoodListResponse(data=[_mood_response(entry)])


@router.get("/mood", response_model=MoodListResponse)
@limiter.limit("60/minute")
async def get_mood_history(
    request: Request,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    services: ServiceContainer = Depends(get_services)
):
    """Last 30 mood entries, newest first"""
    _require(userId=user_id)
    entries = await services.mood_service.get_recent_mood_entries(user_id, limit=MOOD_HISTORY_LIMIT)
    return MoodListResponse(data=[_mood_response(entry) for entry in entries])


@router.get("/mood/types", response_model=List[MoodTypeResponse])
@limiter.limit("60/minute")
async def get_mood_types(request: Request, services: ServiceContainer = Depends(get_services)):
    return [MoodTypeResponse(**mood.model_dump()) for mood in await services.mood_service.get_mood_types()]


@router.get("/mood/stats", response_model=MoodStatsResponse)
@limiter.limit("60/minute")
async def get_mood_stats(
    request: Request,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    period: str = Query(default="week"),
    date: Optional[str] = Query(default=None, description="Day, or first day of the week"),
    year: Optional[int] = None,
    month: Optional[int] = None,
    services: ServiceContainer = Depends(get_services)
):
    """Mood statistics for a day, week or month"""
    _require(userId=user_id)
    analytics = services.mood_analytics
    if period == "day":
        stats = await analytics.get_daily_stats(user_id, date)
    elif period == "week":
        stats = await analytics.get_weekly_stats(user_id, date)
    elif period == "month":
        stats = await analytics.get_monthly_stats(user_id, year, month)
    else:
        raise ValidationError("period must be one of day, week, month", field="period", value=period)
    return MoodStatsResponse(**stats.model_dump())


@router.get("/mood/streak", response_model=StreakResponse)
@limiter.limit("60/minute")
async def get_mood_streak(
    request: Request,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    services: ServiceContainer = Depends(get_services)
):
    _require(userId=user_id)
    streak = await services.mood_analytics.get_current_streak(user_id)
    return StreakResponse(user_id=user_id, streak=streak)


@router.get("/mood/insights", response_model=InsightsResponse)
@limiter.limit("60/minute")
async def get_mood_insights(
    request: Request,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    services: ServiceContainer = Depends(get_services)
):
    _require(userId=user_id)
    insights = await services.mood_analytics.get_weekly_insights(user_id)
    return InsightsResponse(user_id=user_id, insights=insights)


@router.get("/mood/context", response_model=MoodContextResponse)
@limiter.limit("30/minute")
async def get_mood_context(
    request: Request,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    services: ServiceContainer = Depends(get_services)
):
    """Prompt context for the chat feature"""
    _require(userId=user_id)
    analytics = services.mood_analytics
    return MoodContextResponse(
        user_id=user_id,
        context=await analytics.get_detailed_mood_context(user_id),
        summary=await analytics.get_simple_mood_summary(user_id),
    )


# ==========================================
# Users
# ==========================================

@router.post("/user", status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_user(request: Request, payload: UserCreateRequest):
    """Create a user profile after signup (Rate limit: 20/minute)"""
    _require(
        firstname=payload.firstname,
        lastname=payload.lastname,
        username=payload.username,
        email=payload.email,
        clerkId=payload.clerk_id,
        date_of_birth=payload.date_of_birth,
        gender=payload.gender,
    )
    user = User(**payload.model_dump())
    try:
        created = await queries.upsert_user(user)
    except Exception as e:
        raise wrap_external_exception(e, operation="create_user", user_id=user.clerk_id)
    return {"data": {"clerkId": user.clerk_id, "created": created}}


@router.post("/webhooks/clerk")
@limiter.limit("60/minute")
async def clerk_webhook(request: Request, response: Response):
    """Identity provider events; only user.created is handled"""
    body = await request.json()
    if body.get("type") != "user.created":
        return {"message": "Event not handled"}

    data = body.get("data") or {}
    primary = next(
        (
            email for email in data.get("email_addresses") or []
            if email.get("id") == data.get("primary_email_address_id")
        ),
        None
    )
    if primary is None:
        logger.error("No primary email found for user")
        response.status_code = status.HTTP_400_BAD_REQUEST
        return {"error": "No primary email found"}

    email = primary.get("email_address", "")
    user = User(
        clerk_id=data.get("id"),
        firstname=data.get("first_name") or "",
        lastname=data.get("last_name") or "",
        username=data.get("username") or email.split("@")[0],
        email=email,
    )
    try:
        await queries.upsert_user(user)
    except Exception as e:
        raise wrap_external_exception(e, operation="clerk_webhook", user_id=user.clerk_id)
    logger.info(f"User created via webhook: {user.clerk_id}")
    return {"success": True}


# ==========================================
# Medications
# ==========================================

@router.get("/medications", response_model=List[MedicationResponse])
@limiter.limit("60/minute")
async def list_medications(
    request: Request,
    date: Optional[str] = Query(default=None, description="Only items active on this date"),
    services: ServiceContainer = Depends(get_services)
):
    medication_service = services.medication_service
    if date:
        try:
            medications = await medication_service.get_medications_for_date(date)
        except ValueError:
            raise ValidationError(f"Invalid date: '{date}'", field="date", value=date)
    else:
        medications = await medication_service.get_all()
    return [_medication_response(medication) for medication in medications]


@router.post("/medications", response_model=MedicationSavedResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def add_medication(
    request: Request,
    payload: MedicationRequest,
    services: ServiceContainer = Depends(get_services)
):
    """Add a wellness item and schedule its reminders"""
    medication = Medication(**_medication_fields(payload, services))
    await services.medication_service.add(medication)
    reminders = await services.reminder_scheduler.update_medication_reminders(medication)
    return MedicationSavedResponse(medication=_medication_response(medication), reminders=reminders)


@router.get("/medications/today", response_model=TodayResponse)
@limiter.limit("60/minute")
async def get_today(request: Request, services: ServiceContainer = Depends(get_services)):
    """Today's schedule with completion progress"""
    medication_service = services.medication_service
    medications = await medication_service.get_todays_medications()
    doses = await medication_service.get_todays_doses()
    progress = await medication_service.get_todays_progress()
    return TodayResponse(
        medications=[_medication_response(medication) for medication in medications],
        doses=[_dose_response(dose) for dose in doses],
        **progress,
    )


@router.get("/medications/refills", response_model=List[MedicationResponse])
@limiter.limit("60/minute")
async def get_low_supply(request: Request, services: ServiceContainer = Depends(get_services)):
    """Items at or below their refill threshold"""
    medications = await services.medication_service.get_low_supply_medications()
    return [_medication_response(medication) for medication in medications]


@router.put("/medications/{medication_id}", response_model=MedicationSavedResponse)
@limiter.limit("30/minute")
async def update_medication(
    request: Request,
    medication_id: str,
    payload: MedicationRequest,
    services: ServiceContainer = Depends(get_services)
):
    """Edit a wellness item and replace its reminders"""
    medication_service = services.medication_service
    existing = await medication_service.get_medication(medication_id)
    fields = _medication_fields(payload, services)
    if not payload.start_date:
        fields["start_date"] = existing.start_date
    medication = existing.model_copy(update=fields)
    await medication_service.update(medication)
    reminders = await services.reminder_scheduler.update_medication_reminders(medication)
    return MedicationSavedResponse(medication=_medication_response(medication), reminders=reminders)


@router.post(
    "/medications/{medication_id}/doses",
    response_model=DoseResponse,
    status_code=status.HTTP_201_CREATED
)
@limiter.limit("60/minute")
async def record_dose(
    request: Request,
    medication_id: str,
    payload: DoseRequest,
    services: ServiceContainer = Depends(get_services)
):
    medication_service = services.medication_service
    await medication_service.get_medication(medication_id)
    dose = await medication_service.record_dose(medication_id, payload.taken, payload.timestamp)
    return _dose_response(dose)


@router.post("/medications/{medication_id}/refill", response_model=MedicationSavedResponse)
@limiter.limit("30/minute")
async def record_refill(
    request: Request,
    medication_id: str,
    services: ServiceContainer = Depends(get_services)
):
    """Restock to total supply; the refill reminder is re-evaluated"""
    medication = await services.medication_service.record_refill(medication_id)
    reminders = await services.reminder_scheduler.update_medication_reminders(medication)
    return MedicationSavedResponse(medication=_medication_response(medication), reminders=reminders)


@router.delete("/medications", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("10/minute")
async def clear_medications(request: Request, services: ServiceContainer = Depends(get_services)):
    """Start fresh: remove every wellness item, dose and reminder"""
    await services.reminder_scheduler.cancel_all_notifications()
    await services.medication_service.clear_all()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ==========================================
# Doses
# ==========================================

@router.get("/doses/today", response_model=List[DoseResponse])
@limiter.limit("60/minute")
async def get_todays_doses(request: Request, services: ServiceContainer = Depends(get_services)):
    return [_dose_response(dose) for dose in await services.medication_service.get_todays_doses()]


@router.get("/doses")
@limiter.limit("60/minute")
async def get_dose_history(
    request: Request,
    date: Optional[str] = Query(default=None),
    medication_id: Optional[str] = Query(default=None, alias="medicationId"),
    services: ServiceContainer = Depends(get_services)
):
    """Dose log (optionally one calendar day) with adherence totals"""
    medication_service = services.medication_service
    if date:
        try:
            day = datetime.strptime(date, "%Y-%m-%d").date()
        except ValueError:
            raise ValidationError(f"Invalid date: '{date}'", field="date", value=date)
        doses = await medication_service.get_doses_for_date(day)
        if medication_id:
            doses = [dose for dose in doses if dose.medication_id == medication_id]
    else:
        doses = await medication_service.get_dose_history(medication_id)
    adherence = await medication_service.get_adherence(medication_id)
    return {
        "doses": [_dose_response(dose).model_dump(by_alias=True) for dose in doses],
        "adherence": adherence,
    }


# ==========================================
# Notifications
# ==========================================

@router.get("/notifications")
@limiter.limit("30/minute")
async def get_notifications(request: Request, services: ServiceContainer = Depends(get_services)):
    """Tracked reminder records plus the timers currently armed"""
    scheduler = services.reminder_scheduler
    records = await scheduler.get_scheduled_notifications()
    return {
        "records": [record.model_dump() for record in records],
        "scheduled": scheduler.scheduled_ids,
    }


@router.post("/notifications/test", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit("5/minute")
async def send_test_notification(request: Request, services: ServiceContainer = Depends(get_services)):
    notification_id = services.reminder_scheduler.send_test_notification()
    return {"notificationId": notification_id}


# ==========================================
# Health
# ==========================================

@router.get("/health", response_model=HealthCheckResponse)
@limiter.limit("60/minute")
async def health_check(request: Request, services: ServiceContainer = Depends(get_services)):
    """Health check endpoint (Rate limit: 60/minute for monitoring systems)"""
    if not db.is_configured:
        db_status = "not_configured"
    elif await db.test_connection():
        db_status = "connected"
    else:
        db_status = "disconnected"

    return HealthCheckResponse(
        status="healthy" if db_status == "connected" else "degraded",
        database=db_status,
        scheduled_reminders=len(services.reminder_scheduler.scheduled_ids),
        timestamp=services.clock.now(),
    )
