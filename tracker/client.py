"""Wiring for the tracker services.

One FitnessClient per process: it owns the auth session, the identity cell
and one instance of each data service, all sharing the same store client.
"""

from typing import Optional

from logger import logger
from .reminders.store import LocalStore
from .results import ok
from .services.auth_service import AuthService
from .services.identity import CurrentIdentity
from .services.postgrest import SupabaseStore
from .services.profile_service import ProfileService
from .services.settings_service import SettingsService
from .services.water_service import WaterIntakeService
from .services.workout_service import WorkoutService


class FitnessClient:
    """Entry point used by the presentation layer.

    Usage:
        client = FitnessClient()
        await client.start()
        if not client.identity.is_authenticated:
            await client.sign_in(email, password)
        await client.water.add_log(250)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        local_store: Optional[LocalStore] = None,
    ):
        self.local_store = local_store or LocalStore()
        self.auth = AuthService(url=url, api_key=api_key, storage=self.local_store)
        self.store = SupabaseStore(
            url=url,
            api_key=api_key,
            access_token=self.auth.get_access_token,
            on_unauthorized=self.auth.refresh_session,
        )
        self.identity = CurrentIdentity()
        self.settings = SettingsService(self.store, self.identity)
        self.water = WaterIntakeService(self.store, self.identity, settings=self.settings)
        self.workouts = WorkoutService(self.store, self.identity)
        self.profile = ProfileService(self.store, self.identity)

    async def start(self) -> dict:
        """Resolve the stored session and load data if someone is signed in."""
        await self.identity.bind(self.auth)
        if self.identity.error:
            logger.warning(f"Starting signed out: {self.identity.error.get('message')}")
        if not self.identity.is_authenticated:
            return ok(None)
        return await self.load_all()

    async def load_all(self) -> dict:
        """Load settings, water aggregates and workouts for the current user."""
        results = [
            await self.water.load(),
            await self.workouts.list_workouts(),
            await self.profile.load(),
        ]
        error = next((r["error"] for r in results if r["error"]), None)
        return {"data": None, "error": error}

    async def sign_in(self, email: str, password: str) -> dict:
        result = await self.auth.sign_in(email, password)
        if result["error"] is None:
            await self.load_all()
        return result

    async def sign_up(self, email: str, password: str, metadata: Optional[dict] = None) -> dict:
        result = await self.auth.sign_up(email, password, metadata)
        if result["error"] is None and result["data"]["session"] is not None:
            await self.load_all()
        return result

    async def sign_out(self) -> dict:
        return await self.auth.sign_out()

    def close(self) -> None:
        self.identity.close()
        self.local_store.close()
