"""Tests for user settings."""

import pytest

from tracker import config
from tracker.results import NOT_AUTHENTICATED, UNKNOWN_SETTING
from tracker.services.auth_service import SIGNED_IN, SIGNED_OUT
from tracker.services.postgrest import StoreError
from tracker.services.settings_service import SettingsService
from tracker.state import LoadState

from conftest import USER_ID, OTHER_USER_ID, make_session


class TestLoad:
    """Test lazy creation and loading."""

    @pytest.mark.asyncio
    async def test_first_load_creates_default_row(self, store, identity):
        service = SettingsService(store, identity)

        result = await service.load()

        assert result["error"] is None
        rows = store.rows("user_settings", user_id=USER_ID)
        assert len(rows) == 1
        assert rows[0]["water_goal_ml"] == 2000
        assert service.water_goal_ml == 2000
        assert service.state == LoadState.READY

    @pytest.mark.asyncio
    async def test_second_load_does_not_insert_again(self, store, identity):
        service = SettingsService(store, identity)

        await service.load()
        await service.load()

        assert len(store.rows("user_settings", user_id=USER_ID)) == 1
        assert store.writes() == [("insert", "user_settings")]

    @pytest.mark.asyncio
    async def test_existing_row_is_used(self, store, identity):
        store.seed("user_settings", user_id=USER_ID, water_goal_ml=3000, weekly_workout_goal=5)
        service = SettingsService(store, identity)

        await service.load()

        assert service.water_goal_ml == 3000
        assert service.weekly_workout_goal == 5
        assert service.settings["dark_mode_enabled"] is False
        assert store.writes() == []

    @pytest.mark.asyncio
    async def test_other_errors_are_not_treated_as_missing(self, store, identity):
        store.fail_on("select", "user_settings", StoreError("permission denied", code="42501"))
        service = SettingsService(store, identity)

        result = await service.load()

        assert result["error"]["code"] == "42501"
        assert service.state == LoadState.ERRORED
        assert store.writes() == []

    @pytest.mark.asyncio
    async def test_load_notifies_listener(self, store, identity):
        seen = []
        service = SettingsService(store, identity, on_change=seen.append)

        await service.load()

        assert seen[-1]["water_goal_ml"] == 2000


class TestUpdate:
    """Test single-field updates and reset."""

    @pytest.mark.asyncio
    async def test_update_one_writes_and_updates_memory(self, store, identity):
        service = SettingsService(store, identity)
        await service.load()

        result = await service.update_one("water_goal_ml", 2500)

        assert result["error"] is None
        assert service.water_goal_ml == 2500
        row = store.rows("user_settings", user_id=USER_ID)[0]
        assert row["water_goal_ml"] == 2500
        assert row["updated_at"]

    @pytest.mark.asyncio
    async def test_failed_update_keeps_memory(self, store, identity):
        service = SettingsService(store, identity)
        await service.load()
        store.fail_on("update", "user_settings")

        result = await service.update_one("water_goal_ml", 2500)

        assert result["error"]["message"] == "boom"
        assert service.water_goal_ml == 2000

    @pytest.mark.asyncio
    async def test_unknown_key(self, store, identity):
        service = SettingsService(store, identity)

        result = await service.update_one("favourite_colour", "blue")

        assert result["error"]["message"] == UNKNOWN_SETTING
        assert result["error"]["key"] == "favourite_colour"
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_reset_to_defaults(self, store, identity):
        store.seed("user_settings", user_id=USER_ID, water_goal_ml=3500, dark_mode_enabled=True)
        service = SettingsService(store, identity)
        await service.load()

        result = await service.reset_to_defaults()

        assert result["error"] is None
        row = store.rows("user_settings", user_id=USER_ID)[0]
        for key, value in config.DEFAULT_SETTINGS.items():
            assert row[key] == value
        assert service.water_goal_ml == 2000

    @pytest.mark.asyncio
    async def test_unauthenticated_makes_zero_writes(self, store, anonymous):
        service = SettingsService(store, anonymous)

        results = [
            await service.load(),
            await service.update_one("water_goal_ml", 2500),
            await service.reset_to_defaults(),
        ]

        assert all(r["error"]["message"] == NOT_AUTHENTICATED for r in results)
        assert store.calls == []


class TestExportAndLogout:

    @pytest.mark.asyncio
    async def test_export(self, store, identity):
        service = SettingsService(store, identity)
        await service.load()

        exported = service.export_settings()

        assert exported["version"] == "1.0.0"
        assert exported["settings"]["water_goal_ml"] == 2000
        assert exported["exported_at"]

    @pytest.mark.asyncio
    async def test_logout_resets_to_defaults(self, store, identity):
        store.seed("user_settings", user_id=USER_ID, water_goal_ml=3500)
        service = SettingsService(store, identity)
        await service.load()

        identity._on_session_changed(SIGNED_OUT, None)

        assert service.settings == config.DEFAULT_SETTINGS
        assert service.state == LoadState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_switching_user_resets_then_loads_their_row(self, store, identity):
        store.seed("user_settings", user_id=USER_ID, water_goal_ml=3500)
        store.seed("user_settings", user_id=OTHER_USER_ID, water_goal_ml=1500)
        service = SettingsService(store, identity)
        await service.load()

        identity._on_session_changed(SIGNED_IN, make_session(OTHER_USER_ID))

        assert service.settings == config.DEFAULT_SETTINGS
        assert service.state == LoadState.UNINITIALIZED

        await service.load()

        assert service.water_goal_ml == 1500
