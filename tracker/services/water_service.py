"""Water intake service: logging, deletion and daily/weekly aggregation.

Totals are always derived by re-querying the store after a write rather than
patching local state from the inserted row.
"""

import math
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from logger import logger
from .. import config
from ..helpers import (
    local_now,
    local_date_string,
    trailing_window,
    utc_timestamp,
    weekday_short_name,
    calculate_water_progress,
    remaining_water,
    water_progress_message,
)
from ..results import (
    ok, fail, from_exception, not_authenticated,
    INVALID_AMOUNT, MISSING_ID, WATER_LOG_FAILED, WATER_LOAD_FAILED,
)
from ..state import LoadState, RequestFence
from .identity import CurrentIdentity
from .postgrest import SupabaseStore, eq, gte, lte
from .settings_service import SettingsService


def group_daily_totals(rows: Iterable[dict], today: str) -> list[dict]:
    """Group raw log rows by date and sum ``amount_ml`` per date.

    Only dates present in ``rows`` appear in the output; days without logs
    are not filled in.

    Returns:
        Entries sorted ascending by date:
        ``{date, amount, day_name, is_today, logs_count}``
    """
    totals: dict[str, dict] = {}
    for row in rows:
        day = row.get("date")
        if not day:
            continue
        entry = totals.setdefault(day, {"amount": 0, "logs_count": 0})
        entry["amount"] += row.get("amount_ml") or 0
        entry["logs_count"] += 1

    return [
        {
            "date": day,
            "amount": entry["amount"],
            "day_name": weekday_short_name(day),
            "is_today": day == today,
            "logs_count": entry["logs_count"],
        }
        for day, entry in sorted(totals.items())
    ]


def _is_valid_amount(amount: Any) -> bool:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return False
    return math.isfinite(amount) and amount > 0


class WaterIntakeService:
    """Today's total, trailing-week totals and the daily goal for the current user."""

    def __init__(
        self,
        store: SupabaseStore,
        identity: CurrentIdentity,
        settings: Optional[SettingsService] = None,
        on_goal_change: Optional[Callable[[int], Any]] = None,
        now: Callable[[], datetime] = local_now,
    ):
        self.store = store
        self.identity = identity
        self.settings = settings
        self.on_goal_change = on_goal_change
        self._now = now

        self.today_total: float = 0
        self.weekly: list[dict] = []
        self.daily_goal: int = config.DEFAULT_WATER_GOAL_ML

        # Each aggregate tracks its own load state; see `state` / `error`
        self.today_state = LoadState.UNINITIALIZED
        self.weekly_state = LoadState.UNINITIALIZED
        self.today_error: Optional[dict] = None
        self.weekly_error: Optional[dict] = None
        self.goal_error: Optional[dict] = None

        self._today_fence = RequestFence("water_today")
        self._weekly_fence = RequestFence("water_weekly")

        identity.subscribe(self._on_identity_changed)
        if settings is not None:
            settings.add_listener(self._on_settings_changed)

    @property
    def state(self) -> LoadState:
        """Combined state of both aggregates. Errored wins, then loading, then ready."""
        states = (self.today_state, self.weekly_state)
        for candidate in (LoadState.ERRORED, LoadState.LOADING, LoadState.READY):
            if candidate in states:
                return candidate
        return LoadState.UNINITIALIZED

    @property
    def error(self) -> Optional[dict]:
        return self.today_error or self.weekly_error or self.goal_error

    def _on_identity_changed(self, previous: Optional[str], current: Optional[str]) -> None:
        if previous is None or previous == current:
            return

        # Logout or a switch to another user: nothing cached belongs to `current`
        self._today_fence.invalidate()
        self._weekly_fence.invalidate()
        self.today_total = 0
        self.weekly = []
        self.daily_goal = config.DEFAULT_WATER_GOAL_ML
        self.today_state = LoadState.UNINITIALIZED
        self.weekly_state = LoadState.UNINITIALIZED
        self.today_error = None
        self.weekly_error = None
        self.goal_error = None

    def _on_settings_changed(self, settings: dict) -> None:
        self.update_water_goal(settings.get("water_goal_ml"))

    def today(self) -> str:
        """Local calendar date for 'now'."""
        return local_date_string(self._now())

    # =========================================================================
    # AGGREGATES
    # =========================================================================

    async def fetch_today_total(self) -> dict:
        """Sum of today's logged amounts (0 when nothing was logged)."""
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()

        token = self._today_fence.issue()
        self.today_state = LoadState.LOADING
        today = self.today()

        try:
            rows = await self.store.select(
                config.WATER_LOGS_TABLE,
                columns="amount_ml",
                filters=[eq("user_id", user_id), eq("date", today)],
            )
        except Exception as e:
            logger.error(f"Failed to fetch today's water intake: {e}")
            result = from_exception(e, WATER_LOAD_FAILED)
            # today_total keeps the last value that was actually read
            if self._today_fence.is_current(token):
                self.today_state = LoadState.ERRORED
                self.today_error = result["error"]
            return result

        total = sum(row.get("amount_ml") or 0 for row in rows or [])
        logger.info(f"Today's water intake for {today}: {total}ml ({len(rows or [])} logs)")

        if self._today_fence.is_current(token):
            self.today_total = total
            self.today_state = LoadState.READY
            self.today_error = None
        return ok(total)

    async def fetch_weekly_totals(self) -> dict:
        """Per-date totals for the inclusive window [today - 7 days, today]."""
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()

        token = self._weekly_fence.issue()
        self.weekly_state = LoadState.LOADING
        now = self._now()
        start, end = trailing_window(now.date())

        try:
            rows = await self.store.select(
                config.WATER_LOGS_TABLE,
                columns="date, amount_ml",
                filters=[eq("user_id", user_id), gte("date", start), lte("date", end)],
            )
        except Exception as e:
            logger.error(f"Failed to fetch weekly water intake: {e}")
            result = from_exception(e, WATER_LOAD_FAILED)
            if self._weekly_fence.is_current(token):
                self.weekly_state = LoadState.ERRORED
                self.weekly_error = result["error"]
            return result

        weekly = group_daily_totals(rows or [], today=local_date_string(now))
        logger.info(f"Weekly water intake {start}..{end}: {len(weekly)} day(s) with logs")

        if self._weekly_fence.is_current(token):
            self.weekly = weekly
            self.weekly_state = LoadState.READY
            self.weekly_error = None
        return ok(weekly)

    async def get_today_logs(self) -> dict:
        """Today's individual log rows, newest first."""
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()

        try:
            rows = await self.store.select(
                config.WATER_LOGS_TABLE,
                filters=[eq("user_id", user_id), eq("date", self.today())],
                order="logged_at",
                ascending=False,
            )
        except Exception as e:
            logger.error(f"Failed to fetch today's water logs: {e}")
            return from_exception(e, WATER_LOAD_FAILED, data=[])

        return ok(rows or [])

    async def _refresh_aggregates(self) -> None:
        await self.fetch_today_total()
        await self.fetch_weekly_totals()

    # =========================================================================
    # WRITES
    # =========================================================================

    async def add_log(self, amount_ml: float) -> dict:
        """Log ``amount_ml`` against today's local date."""
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()
        if not _is_valid_amount(amount_ml):
            logger.warning(f"Rejected water amount: {amount_ml!r}")
            return fail(INVALID_AMOUNT)

        payload = {
            "user_id": user_id,
            "date": self.today(),
            "amount_ml": amount_ml,
            "logged_at": utc_timestamp(),
        }

        try:
            row = await self.store.insert(config.WATER_LOGS_TABLE, payload, single=True)
        except Exception as e:
            logger.error(f"Failed to insert water: {e}")
            return from_exception(e, WATER_LOG_FAILED)

        logger.info(f"Logged water: {amount_ml}ml on {payload['date']}")
        await self._refresh_aggregates()
        return ok(row)

    async def delete_log(self, log_id: Any) -> dict:
        """Delete one of the current user's log rows."""
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()
        if not log_id:
            return fail(MISSING_ID)

        try:
            await self.store.delete(
                config.WATER_LOGS_TABLE,
                filters=[eq("id", log_id), eq("user_id", user_id)],
            )
        except Exception as e:
            logger.error(f"Failed to delete water log {log_id}: {e}")
            return from_exception(e, WATER_LOG_FAILED)

        logger.info(f"Deleted water log: {log_id}")
        await self._refresh_aggregates()
        return ok(None)

    # =========================================================================
    # GOAL & PROGRESS
    # =========================================================================

    async def fetch_daily_goal(self) -> dict:
        """Read the water goal from user settings (creating them if needed)."""
        if self.settings is None:
            return ok(self.daily_goal)

        result = await self.settings.load()
        if result["error"]:
            self.goal_error = result["error"]
            return result

        self.goal_error = None
        self.update_water_goal(self.settings.water_goal_ml)
        return ok(self.daily_goal)

    def update_water_goal(self, goal: Optional[int]) -> None:
        """Apply a goal change coming from elsewhere (e.g. the settings screen)."""
        if not goal or goal == self.daily_goal:
            return
        self.daily_goal = goal
        logger.info(f"Water goal changed: {goal}ml")
        if self.on_goal_change is not None:
            self.on_goal_change(goal)

    def progress(self) -> dict:
        return {
            "today_ml": self.today_total,
            "goal_ml": self.daily_goal,
            "percentage": calculate_water_progress(self.today_total, self.daily_goal),
            "remaining_ml": remaining_water(self.today_total, self.daily_goal),
            "message": water_progress_message(self.today_total, self.daily_goal),
        }

    async def load(self) -> dict:
        """Initial load: today's total, goal and weekly totals."""
        if not self.identity.user_id:
            return not_authenticated()

        results = [
            await self.fetch_today_total(),
            await self.fetch_daily_goal(),
            await self.fetch_weekly_totals(),
        ]
        error = next((r["error"] for r in results if r["error"]), None)
        data = {
            "today_total": self.today_total,
            "daily_goal": self.daily_goal,
            "weekly": self.weekly,
        }
        return {"data": data, "error": error}
