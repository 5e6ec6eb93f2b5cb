"""User settings service: lazy creation, single-field updates and reset."""

from typing import Any, Callable, Optional

from logger import logger
from .. import config
from ..helpers import utc_timestamp
from ..results import (
    ok, fail, from_exception, not_authenticated,
    UNKNOWN_SETTING, SETTINGS_FAILED,
)
from ..state import LoadState, RequestFence
from .identity import CurrentIdentity
from .postgrest import StoreError, SupabaseStore, eq

SettingsListener = Callable[[dict], Any]


class SettingsService:
    """One ``user_settings`` row per user, created with defaults on first read."""

    def __init__(
        self,
        store: SupabaseStore,
        identity: CurrentIdentity,
        on_change: Optional[SettingsListener] = None,
    ):
        self.store = store
        self.identity = identity
        self.settings: dict = dict(config.DEFAULT_SETTINGS)
        self.state = LoadState.UNINITIALIZED
        self.error: Optional[dict] = None
        self._fence = RequestFence("settings")
        self._listeners: list[SettingsListener] = [on_change] if on_change else []
        identity.subscribe(self._on_identity_changed)

    def add_listener(self, listener: SettingsListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        snapshot = dict(self.settings)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Settings listener failed: {e}")

    def _on_identity_changed(self, previous: Optional[str], current: Optional[str]) -> None:
        if previous is None or previous == current:
            return
        self._fence.invalidate()
        self.settings = dict(config.DEFAULT_SETTINGS)
        self.state = LoadState.UNINITIALIZED
        self.error = None

    @property
    def water_goal_ml(self) -> int:
        return self.settings.get("water_goal_ml") or config.DEFAULT_WATER_GOAL_ML

    @property
    def weekly_workout_goal(self) -> int:
        return self.settings.get("weekly_workout_goal") or config.DEFAULT_WEEKLY_WORKOUT_GOAL

    async def load(self) -> dict:
        """Fetch the user's settings, inserting a default row when none exists.

        Returns:
            dict with the settings row as ``data``
        """
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()

        token = self._fence.issue()
        self.state = LoadState.LOADING
        self.error = None

        try:
            try:
                row = await self.store.select(
                    config.SETTINGS_TABLE,
                    filters=[eq("user_id", user_id)],
                    single=True,
                )
            except StoreError as e:
                if e.code != config.NO_ROWS_CODE:
                    raise
                logger.info(f"No settings found for {user_id}, creating defaults")
                row = await self.store.insert(
                    config.SETTINGS_TABLE,
                    {"user_id": user_id, **config.DEFAULT_SETTINGS},
                    single=True,
                )
        except Exception as e:
            logger.error(f"Failed to load settings: {e}")
            result = from_exception(e, SETTINGS_FAILED)
            if self._fence.is_current(token):
                self.state = LoadState.ERRORED
                self.error = result["error"]
            return result

        if self._fence.is_current(token):
            self.settings = {**config.DEFAULT_SETTINGS, **(row or {})}
            self.state = LoadState.READY
            self._notify()
        else:
            logger.debug("Discarding stale settings response")

        return ok(row)

    async def update_one(self, key: str, value: Any) -> dict:
        """Patch a single setting; memory is only updated after the write succeeds."""
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()
        if key not in config.DEFAULT_SETTINGS:
            return fail(UNKNOWN_SETTING, key=key)

        try:
            await self.store.update(
                config.SETTINGS_TABLE,
                {key: value, "updated_at": utc_timestamp()},
                filters=[eq("user_id", user_id)],
            )
        except Exception as e:
            logger.error(f"Failed to update setting {key}: {e}")
            result = from_exception(e, SETTINGS_FAILED)
            self.error = result["error"]
            return result

        self.settings = {**self.settings, key: value}
        logger.info(f"Updated setting {key}")
        self._notify()
        return ok(dict(self.settings))

    async def reset_to_defaults(self) -> dict:
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()

        defaults = {**config.DEFAULT_SETTINGS, "updated_at": utc_timestamp()}
        try:
            await self.store.update(
                config.SETTINGS_TABLE,
                defaults,
                filters=[eq("user_id", user_id)],
            )
        except Exception as e:
            logger.error(f"Failed to reset settings: {e}")
            result = from_exception(e, SETTINGS_FAILED)
            self.error = result["error"]
            return result

        self.settings = {**defaults, "user_id": user_id}
        logger.info("Settings reset to defaults")
        self._notify()
        return ok(dict(self.settings))

    def export_settings(self) -> dict:
        return {
            "settings": dict(self.settings),
            "exported_at": utc_timestamp(),
            "version": config.SETTINGS_EXPORT_VERSION,
        }
