"""
Service Container - Dependency Injection Container

Holds the Clock and the service instances. Services are lazy-loaded on
first access; the reminder scheduler has an explicit lifecycle
(start() on app start, shutdown() on app end).
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from nomi.config import DEFAULT_TIMEZONE
from nomi.utils.datetime_helpers import Clock, SystemClock
from nomi.validators import validate_timezone

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties.
    The Clock (and the single device user) are injected.
    """

    # Infrastructure dependencies (injected)
    clock: Clock
    user_id: str = "local"
    scheduler: Optional[object] = None  # AsyncIOScheduler override (tests)

    # Services (lazy-loaded via properties)
    _medication_service: Optional[object] = field(default=None, init=False, repr=False)
    _mood_service: Optional[object] = field(default=None, init=False, repr=False)
    _mood_analytics: Optional[object] = field(default=None, init=False, repr=False)
    _reminder_scheduler: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def medication_service(self):
        """Get MedicationService instance (lazy-loaded)"""
        if self._medication_service is None:
            from nomi.services.medication_service import MedicationService
            self._medication_service = MedicationService(self.clock, self.user_id)
            logger.debug("MedicationService instantiated")
        return self._medication_service

    @property
    def mood_service(self):
        """Get MoodService instance (lazy-loaded)"""
        if self._mood_service is None:
            from nomi.services.mood_service import MoodService
            self._mood_service = MoodService(self.clock)
            logger.debug("MoodService instantiated")
        return self._mood_service

    @property
    def mood_analytics(self):
        """Get MoodAnalytics instance (lazy-loaded)"""
        if self._mood_analytics is None:
            from nomi.services.mood_analytics import MoodAnalytics
            self._mood_analytics = MoodAnalytics(self.mood_service, self.clock)
            logger.debug("MoodAnalytics instantiated")
        return self._mood_analytics

    @property
    def reminder_scheduler(self):
        """Get ReminderScheduler instance (lazy-loaded)"""
        if self._reminder_scheduler is None:
            from nomi.scheduler.reminder_scheduler import ReminderScheduler
            self._reminder_scheduler = ReminderScheduler(
                self.medication_service,
                scheduler=self.scheduler,
            )
            logger.debug("ReminderScheduler instantiated")
        return self._reminder_scheduler

    def shutdown(self) -> None:
        """Dispose of the scheduler if it was created"""
        if self._reminder_scheduler is not None:
            self._reminder_scheduler.shutdown()


# Global container instance (initialized by the API lifespan)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the global service container.

    Raises:
        RuntimeError: If container not initialized (call init_container first)
    """
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call init_container() before using services."
        )
    return _container


def init_container(
    clock: Optional[Clock] = None,
    timezone: str = DEFAULT_TIMEZONE,
    user_id: str = "local",
    scheduler: Optional[object] = None
) -> ServiceContainer:
    """
    Initialize the global service container.

    Args:
        clock: Clock to use (default: SystemClock in `timezone`)
        timezone: IANA timezone for the default clock
        user_id: Owner of medication records
        scheduler: Optional AsyncIOScheduler replacement

    Returns:
        ServiceContainer: The initialized container
    """
    global _container

    if clock is None:
        clock = SystemClock(validate_timezone(timezone))

    _container = ServiceContainer(clock=clock, user_id=user_id, scheduler=scheduler)
    logger.info("Service container initialized")
    return _container


def reset_container() -> None:
    """Shut down and forget the global container"""
    global _container

    if _container is not None:
        _container.shutdown()
    _container = None
