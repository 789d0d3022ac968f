"""
MedicationService - Wellness Item and Dose History Business Logic

Handles wellness item CRUD, the append-only dose log, the "active today"
derivation, daily progress and refill/supply checks.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from nomi.db import queries
from nomi.exceptions import NotFoundError, ValidationError, wrap_external_exception
from nomi.models.medication import DoseHistory, Medication
from nomi.utils.datetime_helpers import (
    Clock,
    SystemClock,
    at_time_on,
    local_date_of,
    parse_date,
    parse_iso_datetime,
    today,
)
from nomi.validators import validate_medication

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "local"


def is_active_on(medication: Medication, day: date, clock: Clock) -> bool:
    """
    Whether a wellness item is scheduled on a calendar day

    Ongoing items (-1) are always active. Otherwise the item is active from
    its start date through start date + N days, inclusive. Items whose
    duration or start date cannot be parsed are never active.
    """
    days = medication.duration_days
    if days is None:
        logger.debug(f"Unparseable duration '{medication.duration}' for {medication.id}")
        return False
    if days == -1:
        return True
    try:
        start = local_date_of(medication.start_date, clock.tz)
    except (TypeError, ValueError):
        logger.warning(f"Invalid start date '{medication.start_date}' for {medication.id}")
        return False
    return start <= day <= start + timedelta(days=days)


def supply_status(medication: Medication) -> Optional[Dict[str, str]]:
    """Restock label shown on the refills screen, or None when supply is not tracked"""
    percentage = medication.supply_percentage
    if percentage is None:
        return None
    if percentage <= medication.refill_at:
        return {"status": "Time to Restock", "color": "#FF6B9D", "emoji": "🔔"}
    if percentage <= 50:
        return {"status": "Getting Low", "color": "#FFB74D", "emoji": "⚠️"}
    return {"status": "Well Stocked", "color": "#4ECDC4", "emoji": "✅"}


def needs_refill(medication: Medication) -> bool:
    """
    Refill reminder condition

    Requires the refill reminder flag, a tracked total supply and a
    threshold; fires when current/total*100 <= refill_at.
    """
    if not medication.refill_reminder or medication.refill_at <= 0:
        return False
    percentage = medication.supply_percentage
    if percentage is None:
        return False
    return percentage <= medication.refill_at


class MedicationService:
    """
    Service for wellness items and dose history.

    Responsibilities:
    - Wellness item CRUD (add, update, get, clear)
    - Dose recording (append-only)
    - Today's schedule and completion progress
    - Supply and refill tracking

    Reads degrade to empty results when the database is unavailable;
    writes raise.
    """

    def __init__(self, clock: Optional[Clock] = None, user_id: str = DEFAULT_USER_ID):
        """
        Initialize MedicationService.

        Args:
            clock: Source of "now" and the local timezone
            user_id: Owner of every record this service touches
        """
        self.clock = clock or SystemClock()
        self.user_id = user_id
        logger.debug("MedicationService initialized")

    # Wellness Items

    async def get_all(self) -> List[Medication]:
        """All wellness items, or [] if the store is unreachable"""
        try:
            return await queries.get_medications(self.user_id)
        except Exception as e:
            logger.error(f"Error loading medications for {self.user_id}: {e}", exc_info=True)
            return []

    async def get_medication(self, medication_id: str) -> Medication:
        """
        Get a single wellness item.

        Raises:
            NotFoundError: If the id does not exist
        """
        try:
            medication = await queries.get_medication(self.user_id, medication_id)
        except Exception as e:
            raise wrap_external_exception(e, operation="get_medication", user_id=self.user_id)
        if medication is None:
            raise NotFoundError(
                f"Medication {medication_id} not found",
                record_type="medication",
                record_id=medication_id,
                user_id=self.user_id,
            )
        return medication

    async def add(self, medication: Medication) -> Medication:
        """
        Insert a new wellness item.

        Raises:
            ValidationError: If name, dosage, frequency or duration is empty, or
                refill reminders are on without a usable supply and threshold
        """
        validate_medication(medication, creating=True)
        try:
            await queries.insert_medication(self.user_id, medication)
        except Exception as e:
            raise wrap_external_exception(
                e, operation="add_medication", user_id=self.user_id,
                context={"medication_id": medication.id}
            )
        logger.info(f"Added medication '{medication.name}' ({medication.id}) for {self.user_id}")
        return medication

    async def update(self, medication: Medication) -> Medication:
        """
        Replace an existing wellness item, keyed by id.

        Raises:
            ValidationError: If required fields are empty
            NotFoundError: If the id does not exist
        """
        validate_medication(medication)
        try:
            updated = await queries.update_medication(self.user_id, medication)
        except Exception as e:
            raise wrap_external_exception(
                e, operation="update_medication", user_id=self.user_id,
                context={"medication_id": medication.id}
            )
        if not updated:
            raise NotFoundError(
                f"Medication {medication.id} not found",
                record_type="medication",
                record_id=medication.id,
                user_id=self.user_id,
            )
        return medication

    async def record_refill(self, medication_id: str) -> Medication:
        """Restock to total supply and stamp the refill date"""
        medication = await self.get_medication(medication_id)
        refilled = medication.model_copy(update={
            "current_supply": medication.total_supply,
            "last_refill_date": self.clock.now().isoformat(),
        })
        await self.update(refilled)
        logger.info(f"Recorded refill for {medication.name}: {refilled.current_supply:g} units")
        return refilled

    async def clear_all(self) -> None:
        """Wipe every wellness item, dose record and reminder record"""
        try:
            await queries.delete_all_notifications(self.user_id)
            await queries.delete_all_medications(self.user_id)
        except Exception as e:
            raise wrap_external_exception(e, operation="clear_all_medications", user_id=self.user_id)
        logger.info(f"Cleared all medication data for {self.user_id}")

    # Doses

    async def record_dose(
        self,
        medication_id: str,
        taken: bool,
        timestamp: Optional[str] = None
    ) -> DoseHistory:
        """
        Append a dose event. The wellness item itself is not modified.

        Args:
            medication_id: Item the dose belongs to
            taken: True if taken, False if skipped/missed
            timestamp: ISO-8601 instant (defaults to now)
        """
        if not medication_id:
            raise ValidationError("medication_id is required", field="medication_id")
        if timestamp is None:
            timestamp = self.clock.now().isoformat()
        else:
            try:
                parse_iso_datetime(timestamp, self.clock.tz)
            except (TypeError, ValueError):
                raise ValidationError(
                    f"Invalid timestamp: '{timestamp}'",
                    field="timestamp",
                    value=timestamp,
                )

        dose = DoseHistory(medication_id=medication_id, taken=taken, timestamp=timestamp)
        try:
            await queries.insert_dose(self.user_id, dose)
        except Exception as e:
            raise wrap_external_exception(
                e, operation="record_dose", user_id=self.user_id,
                context={"medication_id": medication_id}
            )
        return dose

    async def get_doses_for_date(self, day: date) -> List[DoseHistory]:
        """Dose events whose timestamp falls on a local calendar date"""
        tz = self.clock.tz
        start = at_time_on(day, datetime.min.time(), tz)
        end = start + timedelta(days=1)
        try:
            doses = await queries.get_doses_between(self.user_id, start, end)
        except Exception as e:
            logger.error(f"Error loading doses for {day}: {e}", exc_info=True)
            return []
        return [dose for dose in doses if local_date_of(dose.timestamp, tz) == day]

    async def get_todays_doses(self) -> List[DoseHistory]:
        return await self.get_doses_for_date(today(self.clock))

    async def get_dose_history(self, medication_id: Optional[str] = None) -> List[DoseHistory]:
        """Every dose event, newest first"""
        try:
            return await queries.get_dose_history(self.user_id, medication_id)
        except Exception as e:
            logger.error(f"Error loading dose history: {e}", exc_info=True)
            return []

    async def get_adherence(self, medication_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Adherence over the whole dose log.

        Returns:
            {'total': int, 'taken': int, 'missed': int, 'rate': float 0-1}
        """
        doses = await self.get_dose_history(medication_id)
        taken = sum(1 for dose in doses if dose.taken)
        total = len(doses)
        return {
            "total": total,
            "taken": taken,
            "missed": total - taken,
            "rate": taken / total if total else 0.0,
        }

    # Today

    async def get_todays_medications(self) -> List[Medication]:
        current = today(self.clock)
        return [
            medication for medication in await self.get_all()
            if is_active_on(medication, current, self.clock)
        ]

    async def get_medications_for_date(self, day: str) -> List[Medication]:
        """Items active on a calendar date (calendar view)"""
        target = parse_date(day)
        return [
            medication for medication in await self.get_all()
            if is_active_on(medication, target, self.clock)
        ]

    async def is_taken_today(self, medication_id: str) -> bool:
        return any(
            dose.medication_id == medication_id and dose.taken
            for dose in await self.get_todays_doses()
        )

    async def get_todays_progress(self) -> Dict[str, Any]:
        """
        Daily completion.

        Returns:
            {'completed': taken doses today, 'total': active items today,
             'progress': completed/total capped at 1.0}
        """
        medications = await self.get_todays_medications()
        doses = await self.get_todays_doses()
        completed = sum(1 for dose in doses if dose.taken)
        total = len(medications)
        progress = min(completed / total, 1.0) if total else 0.0
        return {"completed": completed, "total": total, "progress": progress}

    # Supply

    async def get_low_supply_medications(self) -> List[Medication]:
        return [medication for medication in await self.get_all() if needs_refill(medication)]
