"""Medication reminder scheduler using APScheduler one-shot jobs"""
import inspect
import logging
from collections import deque
from datetime import date, datetime, time, timedelta
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, NamedTuple, Optional, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from nomi.config import (
    NOTIFICATION_RETENTION_DAYS,
    PAST_DUE_CHECK_INTERVAL_HOURS,
    PAST_DUE_DELAY_MINUTES,
    REFILL_REMINDER_HOUR,
)
from nomi.db import queries
from nomi.exceptions import SchedulingError
from nomi.models.medication import Medication, ReminderNotification, StoredNotification
from nomi.services.medication_service import MedicationService, is_active_on, needs_refill
from nomi.utils.datetime_helpers import (
    at_time_on,
    next_occurrence,
    parse_hhmm,
    parse_iso_datetime,
    time_slug,
    today,
)

logger = logging.getLogger(__name__)

PAST_DUE_CHECK_KEY = "last_past_due_check"
TEST_NOTIFICATION_ID = "test_notification"

Notifier = Callable[[ReminderNotification], Union[None, Awaitable[None]]]


def log_notifier(notification: ReminderNotification) -> None:
    """Default delivery: write the reminder to the log"""
    logger.info(f"🔔 Notification: {notification.title} - {notification.message}")


class ScheduledJob(NamedTuple):
    job: Any
    medication_id: Optional[str]
    type: str
    fire_at: datetime


class ReminderScheduler:
    """
    Schedule medication, refill and past-due reminders

    Every timer is a one-shot APScheduler "date" job registered under a
    deterministic id (med_{id}_{HHMM}, refill_{id}, pastdue_{id}_{HHMM}),
    so scheduling the same thing twice replaces rather than duplicates.
    Fired timers are not re-registered for the next day; reschedule_all()
    (run by refresh()) does that.

    Tracking records for each timer are persisted through the
    scheduled_notifications queries so past-due reminders can be
    de-duplicated across runs.
    """

    def __init__(
        self,
        medication_service: MedicationService,
        scheduler: Optional[AsyncIOScheduler] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.medication_service = medication_service
        self.clock = medication_service.clock
        self.user_id = medication_service.user_id
        self.scheduler = scheduler or AsyncIOScheduler(timezone=self.clock.tz)
        self.notifier = notifier or log_notifier
        self._jobs: Dict[str, ScheduledJob] = {}
        self.failures: Deque[SchedulingError] = deque(maxlen=50)

    # ==========================================
    # Lifecycle
    # ==========================================

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Reminder scheduler started")

    def shutdown(self) -> None:
        """Drop every in-memory timer and stop the scheduler (records stay)"""
        for notification_id in list(self._jobs):
            self._cancel_job(notification_id)
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Reminder scheduler stopped")

    @property
    def scheduled_ids(self) -> List[str]:
        return sorted(self._jobs)

    # ==========================================
    # Timer registry
    # ==========================================

    def _register(self, notification: ReminderNotification) -> bool:
        """Register a one-shot timer, replacing any timer with the same id"""
        delay = (notification.fire_at - self.clock.now()).total_seconds()
        if delay <= 0:
            logger.warning(f"Notification {notification.notification_id} scheduled for past time, skipping")
            return False

        self._cancel_job(notification.notification_id)
        job = self.scheduler.add_job(
            self._fire,
            trigger="date",
            run_date=notification.fire_at,
            args=[notification],
            id=notification.notification_id,
            replace_existing=True,
        )
        self._jobs[notification.notification_id] = ScheduledJob(
            job, notification.medication_id, notification.type, notification.fire_at
        )
        logger.info(
            f"📅 Scheduled notification \"{notification.title}\" for "
            f"{notification.fire_at.isoformat()} (in {delay / 60:.0f} min)"
        )
        return True

    def _pending(self, notification_id: str) -> bool:
        """A registered timer that has not fired yet"""
        entry = self._jobs.get(notification_id)
        return entry is not None and entry.fire_at > self.clock.now()

    def _cancel_job(self, notification_id: str) -> bool:
        entry = self._jobs.pop(notification_id, None)
        if entry is None:
            return False
        try:
            entry.job.remove()
        except JobLookupError:
            # Already fired
            pass
        logger.debug(f"🗑️ Cancelled notification: {notification_id}")
        return True

    async def _fire(self, notification: ReminderNotification) -> None:
        self._jobs.pop(notification.notification_id, None)
        try:
            result = self.notifier(notification)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Notifier failed for {notification.notification_id}: {e}", exc_info=True)

    def _fail(self, message: str, medication_id: Optional[str] = None,
              at: Optional[str] = None, cause: Optional[Exception] = None) -> None:
        """Record a per-item failure; the batch carries on"""
        self.failures.append(SchedulingError(
            message,
            medication_id=medication_id,
            time=at,
            user_id=self.user_id,
            operation="schedule_reminder",
            cause=cause,
        ))

    # ==========================================
    # Tracking records
    # ==========================================

    async def _store_record(self, record: StoredNotification) -> None:
        try:
            await queries.save_notification(self.user_id, record)
        except Exception as e:
            logger.warning(f"Could not store notification record {record.id}: {e}")

    async def _load_records(self) -> List[StoredNotification]:
        try:
            return await queries.get_notifications(self.user_id)
        except Exception as e:
            logger.warning(f"Could not load notification records: {e}")
            return []

    async def _cancel(self, medication_id: str, types: Optional[Iterable[str]] = None) -> int:
        """Cancel timers and records of a medication, optionally only some types"""
        wanted = set(types) if types is not None else None
        matching = [
            notification_id for notification_id, entry in self._jobs.items()
            if entry.medication_id == medication_id and (wanted is None or entry.type in wanted)
        ]
        for notification_id in matching:
            self._cancel_job(notification_id)

        try:
            if wanted is None:
                await queries.delete_notifications(self.user_id, medication_id)
            else:
                for notification_type in sorted(wanted):
                    await queries.delete_notifications(self.user_id, medication_id, notification_type)
        except Exception as e:
            logger.warning(f"Could not delete notification records for {medication_id}: {e}")
        return len(matching)

    # ==========================================
    # Medication reminders
    # ==========================================

    async def _drop_stale_medication_timers(self, medication: Medication) -> None:
        """Cancel medication-type timers and records for times the item no longer has"""
        wanted = {
            f"med_{medication.id}_{time_slug(label.strip())}"
            for label in medication.times if parse_hhmm(label) is not None
        }
        for notification_id, entry in list(self._jobs.items()):
            if (entry.medication_id == medication.id and entry.type == "medication"
                    and notification_id not in wanted):
                self._cancel_job(notification_id)

        stale = [
            record.id for record in await self._load_records()
            if record.medication_id == medication.id and record.type == "medication"
            and record.scheduled_time not in medication.times
        ]
        if stale:
            try:
                await queries.delete_notifications_by_id(self.user_id, stale)
            except Exception as e:
                logger.warning(f"Could not delete stale reminder records for {medication.id}: {e}")

    async def schedule_medication_reminder(self, medication: Medication, keep_pending: bool = False) -> List[str]:
        """
        Schedule the next occurrence of each reminder time

        Only medication-type timers of the item are replaced. Its pending
        past-due and refill timers stay; update_medication_reminders() is
        the path that cancels every timer of the item.

        Args:
            medication: Item to schedule
            keep_pending: Leave a timer that has not fired yet in place
                instead of re-arming it (the periodic refresh)

        Returns:
            Notification ids armed (med_{id}_{HHMM}); empty if reminders
            are disabled or there are no times
        """
        if not medication.reminder_enabled or not medication.times:
            logger.info(f"⏭️ Skipping reminder for {medication.name} - not enabled or no times")
            return []

        if keep_pending:
            await self._drop_stale_medication_timers(medication)
        else:
            await self._cancel(medication.id, types=["medication"])

        identifiers: List[str] = []
        now = self.clock.now()
        for reminder_time in medication.times:
            try:
                at = parse_hhmm(reminder_time)
                if at is None:
                    self._fail(f"Invalid time format: {reminder_time!r}", medication.id, reminder_time)
                    continue

                notification_id = f"med_{medication.id}_{time_slug(reminder_time.strip())}"
                if keep_pending and self._pending(notification_id):
                    identifiers.append(notification_id)
                    continue

                fire_at = next_occurrence(at, now)
                notification = ReminderNotification(
                    notification_id=notification_id,
                    medication_id=medication.id,
                    type="medication",
                    title="Wellness Reminder 🌟",
                    message=f"Time for your {medication.name} ({medication.dosage})",
                    fire_at=fire_at,
                    payload={
                        "medication_name": medication.name,
                        "dosage": medication.dosage,
                        "scheduled_time": reminder_time,
                    },
                )
                if not self._register(notification):
                    continue
                identifiers.append(notification_id)
                await self._store_record(StoredNotification(
                    id=f"{medication.id}-{reminder_time}",
                    medication_id=medication.id,
                    type="medication",
                    scheduled_for=fire_at.isoformat(),
                    notification_id=notification_id,
                    scheduled_time=reminder_time,
                ))
            except Exception as e:
                self._fail(f"Failed to schedule {medication.name} at {reminder_time}: {e}",
                           medication.id, reminder_time, cause=e)

        logger.info(f"📱 Total notifications scheduled for {medication.name}: {len(identifiers)}")
        return identifiers

    async def schedule_refill_reminder(self, medication: Medication, keep_pending: bool = False) -> Optional[str]:
        """
        Schedule a restock reminder for tomorrow morning when supply is low

        With keep_pending a refill timer that has not fired yet is left
        alone, so repeated refreshes do not push it a day further out.

        Returns:
            refill_{id}, or None when supply is sufficient
        """
        if not needs_refill(medication):
            return None

        notification_id = f"refill_{medication.id}"
        if keep_pending and self._pending(notification_id):
            return notification_id

        try:
            await self.cancel_refill_reminders(medication.id)
            fire_at = at_time_on(
                today(self.clock) + timedelta(days=1),
                time(hour=REFILL_REMINDER_HOUR),
                self.clock.tz,
            )
            notification = ReminderNotification(
                notification_id=notification_id,
                medication_id=medication.id,
                type="refill",
                title="Supply Running Low 📦",
                message=(
                    f"Your {medication.name} is running low. "
                    f"You have {medication.current_supply:g} units left."
                ),
                fire_at=fire_at,
                payload={
                    "medication_name": medication.name,
                    "current_supply": medication.current_supply,
                },
            )
            if not self._register(notification):
                return None
            await self._store_record(StoredNotification(
                id=f"{medication.id}-refill",
                medication_id=medication.id,
                type="refill",
                scheduled_for=fire_at.isoformat(),
                notification_id=notification_id,
            ))
            logger.info(f"📦 Scheduled refill reminder for {medication.name} at {fire_at.isoformat()}")
            return notification_id
        except Exception as e:
            self._fail(f"Failed to schedule refill reminder for {medication.name}: {e}",
                       medication.id, cause=e)
            return None

    async def schedule_past_due_reminder(self, medication: Medication, missed_time: str) -> Optional[str]:
        """Remind about a missed dose PAST_DUE_DELAY_MINUTES from now"""
        try:
            fire_at = self.clock.now() + timedelta(minutes=PAST_DUE_DELAY_MINUTES)
            notification_id = f"pastdue_{medication.id}_{time_slug(missed_time.strip())}"
            notification = ReminderNotification(
                notification_id=notification_id,
                medication_id=medication.id,
                type="past_due",
                title="Missed Wellness Reminder ⏰",
                message=f"You missed your {medication.name} at {missed_time}. Take it when convenient.",
                fire_at=fire_at,
                payload={
                    "medication_name": medication.name,
                    "missed_time": missed_time,
                },
            )
            if not self._register(notification):
                return None
            await self._store_record(StoredNotification(
                id=f"{medication.id}-pastdue-{missed_time}",
                medication_id=medication.id,
                type="past_due",
                scheduled_for=fire_at.isoformat(),
                notification_id=notification_id,
                scheduled_time=missed_time,
            ))
            logger.info(f"⏰ Scheduled past due reminder for {medication.name} (missed {missed_time})")
            return notification_id
        except Exception as e:
            self._fail(f"Failed to schedule past due reminder for {medication.name}: {e}",
                       medication.id, missed_time, cause=e)
            return None

    async def check_for_past_due_medications(self, force: bool = False) -> List[str]:
        """
        Schedule one missed-dose reminder per (medication, time, day)

        A time counts as covered when the number of taken doses today for
        that medication exceeds its position among today's passed times.
        Items whose course is not active today are skipped.
        Runs at most once per PAST_DUE_CHECK_INTERVAL_HOURS unless forced.

        Returns:
            Past-due notification ids scheduled by this sweep
        """
        now = self.clock.now()
        state_key = f"{PAST_DUE_CHECK_KEY}:{self.user_id}"

        if not force:
            try:
                last_check = await queries.get_app_state(state_key)
            except Exception as e:
                logger.warning(f"Could not read last past-due check: {e}")
                last_check = None
            if last_check:
                try:
                    elapsed = now - parse_iso_datetime(last_check, self.clock.tz)
                    if elapsed < timedelta(hours=PAST_DUE_CHECK_INTERVAL_HOURS):
                        return []
                except ValueError:
                    logger.warning(f"Ignoring malformed last past-due check: {last_check!r}")

        current = today(self.clock)
        medications = await self.medication_service.get_all()
        doses = await self.medication_service.get_todays_doses()
        records = await self._load_records()

        taken_counts: Dict[str, int] = {}
        for dose in doses:
            if dose.taken:
                taken_counts[dose.medication_id] = taken_counts.get(dose.medication_id, 0) + 1

        scheduled: List[str] = []
        for medication in medications:
            if not medication.reminder_enabled or not medication.times:
                continue
            if not is_active_on(medication, current, self.clock):
                continue
            try:
                parsed = []
                for label in medication.times:
                    at = parse_hhmm(label)
                    if at is not None:
                        parsed.append((at, label))
                parsed.sort()
                passed = [label for at, label in parsed if at_time_on(current, at, self.clock.tz) < now]
                for position, label in enumerate(passed):
                    if taken_counts.get(medication.id, 0) > position:
                        continue
                    if self._already_reminded(records, medication.id, label, current):
                        continue
                    notification_id = await self.schedule_past_due_reminder(medication, label)
                    if notification_id:
                        scheduled.append(notification_id)
            except Exception as e:
                self._fail(f"Past-due check failed for {medication.name}: {e}", medication.id, cause=e)

        try:
            await queries.set_app_state(state_key, now.isoformat())
        except Exception as e:
            logger.warning(f"Could not persist past-due check time: {e}")

        if scheduled:
            logger.info(f"Scheduled {len(scheduled)} past due reminders")
        return scheduled

    def _already_reminded(self, records: List[StoredNotification], medication_id: str,
                          label: str, day: date) -> bool:
        """A past-due record exists for this medication, time and day"""
        for record in records:
            if record.medication_id != medication_id or record.type != "past_due":
                continue
            if record.scheduled_time != label:
                continue
            try:
                # scheduled_for is the sweep time plus the delay
                swept_at = parse_iso_datetime(record.scheduled_for, self.clock.tz) - timedelta(
                    minutes=PAST_DUE_DELAY_MINUTES
                )
            except ValueError:
                continue
            if swept_at.date() == day:
                return True
        return False

    # ==========================================
    # Cancellation
    # ==========================================

    async def cancel_medication_reminders(self, medication_id: str) -> int:
        """Cancel every reminder of a medication, whatever its type"""
        cancelled = await self._cancel(medication_id)
        logger.info(f"🗑️ Cancelled {cancelled} notifications for medication: {medication_id}")
        return cancelled

    async def cancel_refill_reminders(self, medication_id: str) -> int:
        return await self._cancel(medication_id, types=["refill"])

    async def cancel_all_notifications(self) -> None:
        for notification_id in list(self._jobs):
            self._cancel_job(notification_id)
        try:
            await queries.delete_all_notifications(self.user_id)
            await queries.delete_app_state(f"{PAST_DUE_CHECK_KEY}:{self.user_id}")
        except Exception as e:
            logger.warning(f"Could not clear notification records: {e}")
        logger.info("🗑️ Cancelled all scheduled notifications")

    # ==========================================
    # Batch operations
    # ==========================================

    async def update_medication_reminders(self, medication: Medication) -> Dict[str, int]:
        """
        Replace all reminders of a medication after it was added or edited

        Returns:
            {'medication_reminders': int, 'refill_reminder': 0 or 1}
        """
        await self.cancel_medication_reminders(medication.id)

        medication_ids: List[str] = []
        refill_id: Optional[str] = None
        if medication.reminder_enabled:
            medication_ids = await self.schedule_medication_reminder(medication)
        if medication.refill_reminder:
            refill_id = await self.schedule_refill_reminder(medication)

        result = {
            "medication_reminders": len(medication_ids),
            "refill_reminder": 1 if refill_id else 0,
        }
        logger.info(f"✅ Updated reminders for {medication.name}: {result}")
        return result

    async def reschedule_all(self) -> Dict[str, int]:
        """
        Re-register the next occurrence of every reminder

        Timers that have not fired yet keep their fire time, so a pass just
        before a reminder is due does not skip it. Past-due timers and their
        records are left alone so the once-per-day guarantee survives a
        reschedule.
        """
        summary = {"medications": 0, "medication_reminders": 0, "refill_reminders": 0}
        for medication in await self.medication_service.get_all():
            try:
                if medication.reminder_enabled:
                    ids = await self.schedule_medication_reminder(medication, keep_pending=True)
                    summary["medication_reminders"] += len(ids)
                else:
                    await self._cancel(medication.id, types=["medication", "past_due"])

                if medication.refill_reminder and needs_refill(medication):
                    if await self.schedule_refill_reminder(medication, keep_pending=True):
                        summary["refill_reminders"] += 1
                else:
                    await self.cancel_refill_reminders(medication.id)
                summary["medications"] += 1
            except Exception as e:
                self._fail(f"Failed to reschedule {medication.name}: {e}", medication.id, cause=e)
        logger.info(f"Rescheduled reminders: {summary}")
        return summary

    async def refresh(self) -> Dict[str, Any]:
        """Periodic pass: reschedule, sweep for missed doses, prune records"""
        summary: Dict[str, Any] = await self.reschedule_all()
        summary["past_due_reminders"] = len(await self.check_for_past_due_medications())
        summary["cleaned_up"] = await self.cleanup_old_notifications()
        return summary

    # ==========================================
    # Inspection and maintenance
    # ==========================================

    async def get_scheduled_notifications(self) -> List[StoredNotification]:
        records = await self._load_records()
        logger.info(f"📱 Found {len(records)} tracked notifications")
        return records

    async def cleanup_old_notifications(self, days: int = NOTIFICATION_RETENTION_DAYS) -> int:
        """Delete tracking records scheduled more than `days` ago"""
        records = await self._load_records()
        now = self.clock.now()
        stale = []
        for record in records:
            try:
                scheduled_for = parse_iso_datetime(record.scheduled_for, self.clock.tz)
            except ValueError:
                stale.append(record.id)
                continue
            if now - scheduled_for > timedelta(days=days):
                stale.append(record.id)

        if not stale:
            return 0
        try:
            await queries.delete_notifications_by_id(self.user_id, stale)
        except Exception as e:
            logger.warning(f"Could not clean up notification records: {e}")
            return 0
        logger.info(f"🧹 Cleaned up notification tracking: {len(records)} -> {len(records) - len(stale)}")
        return len(stale)

    def send_test_notification(self, delay_seconds: int = 3) -> str:
        notification = ReminderNotification(
            notification_id=TEST_NOTIFICATION_ID,
            type="test",
            title="Test Notification 🧪",
            message="This is a test notification from your wellness companion!",
            fire_at=self.clock.now() + timedelta(seconds=delay_seconds),
        )
        self._register(notification)
        return TEST_NOTIFICATION_ID
