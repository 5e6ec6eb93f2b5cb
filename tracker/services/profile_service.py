"""Profile service for the ``profiles`` table."""

from typing import Optional

from logger import logger
from .. import config
from ..helpers import utc_timestamp
from ..results import ok, from_exception, not_authenticated, PROFILE_FAILED
from .identity import CurrentIdentity
from .postgrest import StoreError, SupabaseStore, eq


class ProfileService:
    """Load and upsert the current user's profile row."""

    def __init__(self, store: SupabaseStore, identity: CurrentIdentity):
        self.store = store
        self.identity = identity
        self.profile: Optional[dict] = None
        identity.subscribe(self._on_identity_changed)

    def _on_identity_changed(self, previous: Optional[str], current: Optional[str]) -> None:
        if previous is not None and previous != current:
            self.profile = None

    async def load(self) -> dict:
        """Profile row, or a placeholder built from the auth user when none exists yet."""
        user = self.identity.user
        if user is None:
            return not_authenticated()

        try:
            profile = await self.store.select(
                config.PROFILES_TABLE,
                filters=[eq("id", user.id)],
                single=True,
            )
        except StoreError as e:
            if e.code != config.NO_ROWS_CODE:
                logger.error(f"Error loading profile: {e}")
                return from_exception(e, PROFILE_FAILED)
            profile = {"id": user.id, "full_name": user.email, "email": user.email}

        self.profile = profile
        return ok(profile)

    async def update(self, updates: dict) -> dict:
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()

        row = {**updates, "id": user_id, "updated_at": utc_timestamp()}
        try:
            saved = await self.store.upsert(config.PROFILES_TABLE, row, on_conflict="id")
        except Exception as e:
            logger.error(f"Update profile error: {e}")
            return from_exception(e, PROFILE_FAILED)

        self.profile = {**(self.profile or {}), **(saved[0] if saved else row)}
        logger.info(f"Updated profile fields: {sorted(updates)}")
        return ok(self.profile)
