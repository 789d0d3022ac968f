"""
Service Layer Package

Business logic between the HTTP layer and the database queries.

- MedicationService: wellness items, dose history, today's progress, supply
- MoodService: mood type catalog and mood entry log
- MoodAnalytics: stats, streaks, insights, chat context
"""

from nomi.services.container import ServiceContainer, get_container, init_container, reset_container
from nomi.services.medication_service import MedicationService
from nomi.services.mood_service import MoodService
from nomi.services.mood_analytics import MoodAnalytics

__all__ = [
    "ServiceContainer",
    "get_container",
    "init_container",
    "reset_container",
    "MedicationService",
    "MoodService",
    "MoodAnalytics",
]
