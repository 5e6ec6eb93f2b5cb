"""Reminder preferences kept on the device.

Two documents live in local storage: the creatine reminder settings and the
list of custom reminders. Scheduling the actual notifications is left to the
presentation layer.
"""

import sqlite3
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Optional

from logger import logger
from .. import config
from ..helpers import utc_timestamp
from ..results import (
    ok, fail,
    REMINDER_TITLE_REQUIRED, REMINDER_NOT_FOUND, REMINDERS_SAVE_FAILED,
    INVALID_TIME, INVALID_FREQUENCY,
)
from .store import LocalStore


@dataclass
class CreatineReminder:
    """Daily creatine reminder settings."""
    enabled: bool = False
    time: str = "09:00"  # HH:MM, local
    dosage: str = config.DEFAULT_CREATINE_DOSAGE  # grams
    text: str = config.DEFAULT_CREATINE_TEXT


@dataclass
class CustomReminder:
    """User-defined reminder."""
    id: str
    title: str
    description: str = ""
    time: str = "09:00"
    frequency: str = "daily"
    enabled: bool = True
    created_at: str = field(default_factory=utc_timestamp)


def _from_dict(cls, data: dict):
    """Build a dataclass ignoring unknown keys from older app versions."""
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


def _valid_time(value: str) -> bool:
    try:
        datetime.strptime(value, "%H:%M")
    except (TypeError, ValueError):
        return False
    return True


# =============================================================================
# CREATINE
# =============================================================================

def load_creatine_reminder(store: LocalStore) -> CreatineReminder:
    data = store.get_json(config.CREATINE_REMINDER_KEY)
    if not isinstance(data, dict):
        return CreatineReminder()
    return _from_dict(CreatineReminder, data)


def save_creatine_reminder(store: LocalStore, reminder: CreatineReminder) -> dict:
    if not _valid_time(reminder.time):
        return fail(INVALID_TIME)

    try:
        store.set_json(config.CREATINE_REMINDER_KEY, asdict(reminder))
    except sqlite3.Error as e:
        logger.error(f"Error saving reminder settings: {e}")
        return fail(REMINDERS_SAVE_FAILED)

    logger.info(f"Saved creatine reminder (enabled={reminder.enabled}, time={reminder.time})")
    return ok(reminder)


# =============================================================================
# CUSTOM REMINDERS
# =============================================================================

def list_custom_reminders(store: LocalStore) -> list[CustomReminder]:
    data = store.get_json(config.CUSTOM_REMINDERS_KEY, default=[])
    if not isinstance(data, list):
        return []
    return [_from_dict(CustomReminder, item) for item in data if isinstance(item, dict)]


def _save_custom_reminders(store: LocalStore, reminders: list[CustomReminder]) -> Optional[dict]:
    try:
        store.set_json(config.CUSTOM_REMINDERS_KEY, [asdict(r) for r in reminders])
    except sqlite3.Error as e:
        logger.error(f"Error saving reminders: {e}")
        return fail(REMINDERS_SAVE_FAILED)
    return None


def add_custom_reminder(
    store: LocalStore,
    title: str,
    description: str = "",
    time: str = "09:00",
    frequency: str = "daily",
    enabled: bool = True,
) -> dict:
    title = (title or "").strip()
    if not title:
        return fail(REMINDER_TITLE_REQUIRED)
    if not _valid_time(time):
        return fail(INVALID_TIME)
    if frequency not in config.REMINDER_FREQUENCIES:
        return fail(INVALID_FREQUENCY)

    reminder = CustomReminder(
        id=uuid.uuid4().hex,
        title=title,
        description=(description or "").strip(),
        time=time,
        frequency=frequency,
        enabled=enabled,
    )
    reminders = list_custom_reminders(store) + [reminder]

    error = _save_custom_reminders(store, reminders)
    if error:
        return error

    logger.info(f"Added custom reminder {reminder.id}")
    return ok(reminder)


def toggle_custom_reminder(store: LocalStore, reminder_id: str) -> dict:
    reminders = list_custom_reminders(store)
    target = next((r for r in reminders if r.id == reminder_id), None)
    if target is None:
        return fail(REMINDER_NOT_FOUND)

    target.enabled = not target.enabled
    error = _save_custom_reminders(store, reminders)
    if error:
        return error
    return ok(target)


def delete_custom_reminder(store: LocalStore, reminder_id: str) -> dict:
    reminders = list_custom_reminders(store)
    remaining = [r for r in reminders if r.id != reminder_id]
    if len(remaining) == len(reminders):
        return fail(REMINDER_NOT_FOUND)

    error = _save_custom_reminders(store, remaining)
    if error:
        return error

    logger.info(f"Deleted custom reminder {reminder_id}")
    return ok(None)


def clear_cache(store: LocalStore) -> None:
    """Remove cached UI data; preferences and the session are kept."""
    for key in config.CACHE_KEYS:
        store.remove_item(key)
    logger.info("Local cache cleared")
