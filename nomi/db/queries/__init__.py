"""
Database queries - Re-export all functions.

Module organization:
- users.py: User profiles
- moods.py: Mood type catalog and mood entries
- medications.py: Wellness items and dose history
- notifications.py: Scheduled reminder records, app state
"""

# User operations
from nomi.db.queries.users import (
    upsert_user,
    ensure_user,
    user_exists,
)

# Mood operations
from nomi.db.queries.moods import (
    get_mood_types,
    insert_mood_entry,
    upsert_mood_entry,
    update_mood_entry,
    get_mood_entries,
    get_mood_entries_for_date_range,
    get_mood_entry_for_date,
    delete_mood_entry,
    delete_mood_entries_for_user,
)

# Medication operations
from nomi.db.queries.medications import (
    get_medications,
    get_medication,
    insert_medication,
    update_medication,
    delete_all_medications,
    insert_dose,
    get_doses_between,
    get_dose_history,
)

# Notification operations
from nomi.db.queries.notifications import (
    save_notification,
    get_notifications,
    delete_notifications,
    delete_notifications_by_id,
    delete_all_notifications,
    get_app_state,
    set_app_state,
    delete_app_state,
)

__all__ = [
    # User
    "upsert_user",
    "ensure_user",
    "user_exists",
    # Mood
    "get_mood_types",
    "insert_mood_entry",
    "upsert_mood_entry",
    "update_mood_entry",
    "get_mood_entries",
    "get_mood_entries_for_date_range",
    "get_mood_entry_for_date",
    "delete_mood_entry",
    "delete_mood_entries_for_user",
    # Medication
    "get_medications",
    "get_medication",
    "insert_medication",
    "update_medication",
    "delete_all_medications",
    "insert_dose",
    "get_doses_between",
    "get_dose_history",
    # Notification
    "save_notification",
    "get_notifications",
    "delete_notifications",
    "delete_notifications_by_id",
    "delete_all_notifications",
    "get_app_state",
    "set_app_state",
    "delete_app_state",
]
