"""Date, parsing and progress helpers for the fitness tracker."""

import re
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

from config import TIMEZONE
from . import config
from .results import INVALID_REPS, INVALID_WEIGHT, EXERCISE_NAME_REQUIRED

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# =============================================================================
# DATES (device-local calendar)
# =============================================================================

def local_now() -> datetime:
    """Current time in the device's configured timezone."""
    return datetime.now(ZoneInfo(TIMEZONE))


def local_date_string(moment: Optional[datetime] = None) -> str:
    """Local calendar date as YYYY-MM-DD."""
    return (moment or local_now()).date().isoformat()


def weekday_short_name(day: date | str) -> str:
    """pt-PT short weekday name, e.g. 'seg.' for a Monday."""
    if isinstance(day, str):
        day = date.fromisoformat(day)
    return config.WEEKDAY_SHORT_NAMES[day.weekday()]


def trailing_window(today: date, days: int = config.WEEKLY_WINDOW_DAYS) -> tuple[str, str]:
    """Inclusive [today - days, today] range as date strings."""
    return (today - timedelta(days=days)).isoformat(), today.isoformat()


def week_bounds(today: date) -> tuple[date, date]:
    """Monday and Sunday of the week containing ``today``."""
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=6)


def utc_timestamp() -> str:
    return datetime.now(ZoneInfo("UTC")).isoformat()


# =============================================================================
# SET INPUT PARSING
# =============================================================================

def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_reps(value: Any) -> Optional[int]:
    """Parse a reps entry; blank means not entered."""
    if _is_blank(value):
        return None
    try:
        reps = int(str(value).strip())
    except ValueError:
        raise ValueError(INVALID_REPS)
    if reps <= 0:
        raise ValueError(INVALID_REPS)
    return reps


def parse_weight(value: Any) -> Optional[float]:
    """Parse a weight in kg, accepting a comma or a dot as decimal separator."""
    if _is_blank(value):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        weight = float(value)
    else:
        try:
            weight = float(str(value).strip().replace(",", "."))
        except ValueError:
            raise ValueError(INVALID_WEIGHT)
    if weight < 0:
        raise ValueError(INVALID_WEIGHT)
    return weight


def has_set_values(entry: dict) -> bool:
    """True when a set has reps or weight entered."""
    return not (_is_blank(entry.get("reps")) and _is_blank(entry.get("weight_kg")))


# =============================================================================
# PROGRESS & STATS
# =============================================================================

def calculate_water_progress(current_ml: float, goal_ml: float = config.DEFAULT_WATER_GOAL_ML) -> float:
    """Percentage of the daily goal reached, capped at 100."""
    if not goal_ml or goal_ml <= 0:
        return 0.0
    return min(current_ml / goal_ml * 100, 100.0)


def remaining_water(current_ml: float, goal_ml: float = config.DEFAULT_WATER_GOAL_ML) -> float:
    return max(goal_ml - current_ml, 0)


def water_progress_message(current_ml: float, goal_ml: float = config.DEFAULT_WATER_GOAL_ML) -> str:
    percentage = calculate_water_progress(current_ml, goal_ml)
    for threshold, message in config.WATER_PROGRESS_MESSAGES:
        if percentage >= threshold:
            return message
    return config.WATER_PROGRESS_MESSAGES[-1][1]


def _exercise_sets(exercise: dict) -> list[dict]:
    sets = exercise.get("detailed_sets")
    if sets is None:
        sets = exercise.get("sets")
    return sets if isinstance(sets, list) else []


def calculate_total_volume(exercises: Iterable[dict]) -> float:
    """Sum of reps x weight over every set that has both."""
    total = 0.0
    for exercise in exercises:
        for entry in _exercise_sets(exercise):
            if entry.get("reps") and entry.get("weight_kg"):
                total += entry["reps"] * float(entry["weight_kg"])
    return total


def workout_intensity(exercises: list[dict]) -> str:
    """Rough intensity label from average sets and reps per exercise."""
    if not exercises:
        return "Baixa"

    avg_sets = sum(ex.get("total_sets") or 0 for ex in exercises) / len(exercises)
    avg_reps = sum(ex.get("reps") or 0 for ex in exercises) / len(exercises)

    if avg_sets >= 4 and avg_reps >= 12:
        return "Alta"
    if avg_sets >= 3 and avg_reps >= 8:
        return "Média"
    return "Baixa"


def workout_duration(start: datetime, end: datetime) -> str:
    minutes = int((end - start).total_seconds() // 60)
    hours, rest = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {rest}min"
    return f"{minutes}min"


# =============================================================================
# VALIDATION
# =============================================================================

def validate_email(email: str) -> bool:
    return bool(email) and bool(_EMAIL_RE.match(email.strip()))


def validate_password(password: str) -> bool:
    return bool(password) and len(password) >= config.MIN_PASSWORD_LENGTH


def validate_exercise(exercise: dict) -> dict:
    """Field errors for an exercise form; empty dict when valid."""
    errors = {}
    if not (exercise.get("name") or "").strip():
        errors["name"] = EXERCISE_NAME_REQUIRED

    for position, entry in enumerate(exercise.get("sets") or [], start=1):
        try:
            parse_reps(entry.get("reps"))
        except ValueError as e:
            errors[f"sets.{position}.reps"] = str(e)
        try:
            parse_weight(entry.get("weight_kg"))
        except ValueError as e:
            errors[f"sets.{position}.weight_kg"] = str(e)

    return errors
