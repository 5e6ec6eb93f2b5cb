"""Fitness tracker domain configuration."""

from typing import Final

# Remote tables
PROFILES_TABLE: Final[str] = "profiles"
SETTINGS_TABLE: Final[str] = "user_settings"
WATER_LOGS_TABLE: Final[str] = "water_intake_logs"
WORKOUTS_TABLE: Final[str] = "workouts"
EXERCISES_TABLE: Final[str] = "exercises"
SETS_TABLE: Final[str] = "exercise_sets"

# Workout list/detail embed: workout -> exercises -> sets
WORKOUT_EMBED_COLUMNS: Final[str] = "*, exercises(*, exercise_sets(*))"

# PostgREST error code for ".single()" queries that matched no rows
NO_ROWS_CODE: Final[str] = "PGRST116"

DEFAULT_WATER_GOAL_ML: Final[int] = 2000
DEFAULT_WEEKLY_WORKOUT_GOAL: Final[int] = 3

DEFAULT_SETTINGS = {
    "water_goal_ml": DEFAULT_WATER_GOAL_ML,
    "weekly_workout_goal": DEFAULT_WEEKLY_WORKOUT_GOAL,
    "notifications_enabled": True,
    "water_reminders_enabled": True,
    "workout_reminders_enabled": True,
    "dark_mode_enabled": False,
}

SETTINGS_EXPORT_VERSION: Final[str] = "1.0.0"

# Trailing window for weekly water totals: [today - 7 days, today]
WEEKLY_WINDOW_DAYS: Final[int] = 7

EXERCISE_TYPES: Final[tuple[str, ...]] = ("strength", "cardio", "flexibility")
DEFAULT_EXERCISE_TYPE: Final[str] = "strength"

# pt-PT short weekday names, Monday first (matches date.weekday())
WEEKDAY_SHORT_NAMES: Final[list[str]] = ["seg.", "ter.", "qua.", "qui.", "sex.", "sáb.", "dom."]

# Water progress messages, highest threshold first
WATER_PROGRESS_MESSAGES: Final[list[tuple[int, str]]] = [
    (100, "Parabéns! Meta atingida! 🎉"),
    (75, "Quase lá! Continue assim! 💪"),
    (50, "No bom caminho! 👍"),
    (25, "Vamos beber mais água! 💧"),
    (0, "Hora de começar a hidratar! 🚰"),
]

# Local storage keys
SESSION_STORAGE_KEY: Final[str] = "supabase.auth.token"
CREATINE_REMINDER_KEY: Final[str] = "creatine_reminder_settings"
CUSTOM_REMINDERS_KEY: Final[str] = "custom_reminders"
CACHE_KEYS: Final[list[str]] = ["app_cache", "workout_cache", "water_cache"]

REMINDER_FREQUENCIES: Final[tuple[str, ...]] = ("daily", "weekly", "custom")
DEFAULT_CREATINE_DOSAGE: Final[str] = "5"
DEFAULT_CREATINE_TEXT: Final[str] = "Hora de tomar creatina!"

# Refresh the session this many seconds before it actually expires
SESSION_EXPIRY_MARGIN_SECONDS: Final[int] = 60

MIN_PASSWORD_LENGTH: Final[int] = 6
