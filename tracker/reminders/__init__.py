"""Device-local storage and reminder preferences."""

from .store import LocalStore
from .preferences import (
    CreatineReminder,
    CustomReminder,
    load_creatine_reminder,
    save_creatine_reminder,
    list_custom_reminders,
    add_custom_reminder,
    toggle_custom_reminder,
    delete_custom_reminder,
    clear_cache,
)

__all__ = [
    "LocalStore",
    "CreatineReminder",
    "CustomReminder",
    "load_creatine_reminder",
    "save_creatine_reminder",
    "list_custom_reminders",
    "add_custom_reminder",
    "toggle_custom_reminder",
    "delete_custom_reminder",
    "clear_cache",
]
