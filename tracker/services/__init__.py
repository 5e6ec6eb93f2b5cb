"""Tracker data services."""

from .postgrest import SupabaseStore, StoreError
from .auth_service import AuthService, AuthError, Session, User
from .identity import CurrentIdentity
from .settings_service import SettingsService
from .water_service import WaterIntakeService, group_daily_totals
from .workout_service import WorkoutService
from .profile_service import ProfileService

__all__ = [
    "SupabaseStore",
    "StoreError",
    "AuthService",
    "AuthError",
    "Session",
    "User",
    "CurrentIdentity",
    "SettingsService",
    "WaterIntakeService",
    "group_daily_totals",
    "WorkoutService",
    "ProfileService",
]
