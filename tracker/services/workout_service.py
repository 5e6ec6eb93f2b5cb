"""Workout service: workouts with their exercises and sets.

Writes touch several tables one request at a time (the REST API has no
multi-statement transactions), so every multi-row flow carries a compensating
step:

- create: a failure after the workout row exists deletes that workout; the
  store's cascade removes any exercises/sets already written.
- edit_exercise: sets are replaced wholesale (delete all, insert fresh batch)
  and the exercise row is patched last. If the insert or the patch fails
  after the delete, the previous sets are put back.

If the compensating step itself fails the error says so
(``partial_workout_id`` / ``sets_lost``) and nothing else is attempted.
Concurrent edits of the same exercise are not serialised.
"""

from datetime import datetime
from typing import Any, Callable, Optional

from logger import logger
from .. import config
from ..helpers import (
    local_now,
    local_date_string,
    week_bounds,
    has_set_values,
    parse_reps,
    parse_weight,
    calculate_total_volume,
    workout_intensity,
)
from ..results import (
    ok, fail, from_exception, not_authenticated,
    MISSING_ID,
    WORKOUT_NOT_FOUND,
    EXERCISE_NOT_FOUND,
    WORKOUT_NAME_REQUIRED,
    EXERCISE_NAME_REQUIRED,
    INVALID_EXERCISE_TYPE,
    CREATE_WORKOUT_FAILED,
    DELETE_WORKOUT_FAILED,
    LOAD_WORKOUT_FAILED,
    UPDATE_EXERCISE_FAILED,
    DELETE_EXERCISE_FAILED,
)
from ..state import LoadState, RequestFence
from .identity import CurrentIdentity
from .postgrest import SupabaseStore, eq

SET_FIELDS = ("id", "set_number", "reps", "weight_kg", "notes")


# =============================================================================
# RESULT SHAPING
# =============================================================================

def _sorted_sets(exercise: dict) -> list[dict]:
    return sorted(exercise.get(config.SETS_TABLE) or [], key=lambda s: s.get("set_number") or 0)


def _sorted_exercises(workout: dict) -> list[dict]:
    return sorted(
        workout.get(config.EXERCISES_TABLE) or [],
        key=lambda e: (e.get("created_at") or "", str(e.get("id") or "")),
    )


def shape_exercise_summary(exercise: dict) -> dict:
    """List-view exercise: ``detailed_sets`` plus the first set's reps/weight.

    ``total_sets`` is taken from the actual set rows, not the stored column.
    """
    sets = _sorted_sets(exercise)
    first = sets[0] if sets else {}
    shaped = {k: v for k, v in exercise.items() if k != config.SETS_TABLE}
    shaped["detailed_sets"] = sets
    shaped["reps"] = first.get("reps")
    shaped["weight_kg"] = first.get("weight_kg")
    shaped["total_sets"] = len(sets)
    return shaped


def shape_exercise_detail(exercise: dict) -> dict:
    """Detail-view exercise: ``sets`` as ``{id, set_number, reps, weight_kg, notes}``."""
    sets = [{field: entry.get(field) for field in SET_FIELDS} for entry in _sorted_sets(exercise)]
    shaped = {k: v for k, v in exercise.items() if k != config.SETS_TABLE}
    shaped["sets"] = sets
    shaped["total_sets"] = len(sets)
    return shaped


def shape_workout(workout: dict, detail: bool = False) -> dict:
    shape = shape_exercise_detail if detail else shape_exercise_summary
    shaped = {k: v for k, v in workout.items() if k != config.EXERCISES_TABLE}
    shaped["exercises"] = [shape(ex) for ex in _sorted_exercises(workout)]
    return shaped


def build_set_rows(sets: list[dict], renumber: bool = False) -> list[dict]:
    """Turn set input into store rows.

    With ``renumber`` sets without reps or weight are dropped and the rest are
    numbered 1..n. Otherwise each set keeps its explicit ``set_number`` or its
    1-based position.

    Raises:
        ValueError: reps or weight could not be parsed
    """
    if renumber:
        sets = [entry for entry in sets if has_set_values(entry)]

    rows = []
    for position, entry in enumerate(sets, start=1):
        number = position if renumber else (entry.get("set_number") or position)
        rows.append({
            "set_number": number,
            "reps": parse_reps(entry.get("reps")),
            "weight_kg": parse_weight(entry.get("weight_kg")),
            "notes": entry.get("notes") or None,
        })
    return rows


def _exercise_fields(exercise: dict) -> dict:
    """Validated scalar exercise fields.

    Raises:
        ValueError: missing name or unknown type
    """
    name = (exercise.get("name") or "").strip()
    if not name:
        raise ValueError(EXERCISE_NAME_REQUIRED)

    exercise_type = exercise.get("type") or config.DEFAULT_EXERCISE_TYPE
    if exercise_type not in config.EXERCISE_TYPES:
        raise ValueError(INVALID_EXERCISE_TYPE)

    return {"name": name, "type": exercise_type, "notes": exercise.get("notes") or None}


class WorkoutService:
    """Workouts for the current user, cached as ``workouts`` after each list."""

    def __init__(
        self,
        store: SupabaseStore,
        identity: CurrentIdentity,
        now: Callable[[], datetime] = local_now,
    ):
        self.store = store
        self.identity = identity
        self._now = now

        self.workouts: list[dict] = []
        self.state = LoadState.UNINITIALIZED
        self.error: Optional[dict] = None
        self._fence = RequestFence("workouts")

        identity.subscribe(self._on_identity_changed)

    def _on_identity_changed(self, previous: Optional[str], current: Optional[str]) -> None:
        if previous is None or previous == current:
            return

        # Logged out or switched user: drop the cached list and any in-flight result
        self._fence.invalidate()
        self.workouts = []
        self.state = LoadState.UNINITIALIZED
        self.error = None

    # =========================================================================
    # READS
    # =========================================================================

    async def list_workouts(self) -> dict:
        """All workouts with exercises and sets, newest date first."""
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()

        token = self._fence.issue()
        self.state = LoadState.LOADING

        try:
            rows = await self.store.select(
                config.WORKOUTS_TABLE,
                columns=config.WORKOUT_EMBED_COLUMNS,
                filters=[eq("user_id", user_id)],
                order="date",
                ascending=False,
            )
        except Exception as e:
            logger.error(f"Failed to load workouts: {e}")
            result = from_exception(e, LOAD_WORKOUT_FAILED, data=[])
            if self._fence.is_current(token):
                self.state = LoadState.ERRORED
                self.error = result["error"]
            return result

        workouts = [shape_workout(row) for row in rows or []]
        logger.info(f"Loaded {len(workouts)} workouts")

        if self._fence.is_current(token):
            self.workouts = workouts
            self.state = LoadState.READY
            self.error = None
        else:
            logger.debug("Discarding stale workout list response")
        return ok(workouts)

    async def get_by_id(self, workout_id: Any) -> dict:
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()
        if not workout_id:
            return fail(MISSING_ID)

        try:
            rows = await self.store.select(
                config.WORKOUTS_TABLE,
                columns=config.WORKOUT_EMBED_COLUMNS,
                filters=[eq("id", workout_id), eq("user_id", user_id)],
            )
        except Exception as e:
            logger.error(f"Failed to get workout {workout_id}: {e}")
            return from_exception(e, LOAD_WORKOUT_FAILED)

        if not rows:
            return fail(WORKOUT_NOT_FOUND)
        return ok(shape_workout(rows[0], detail=True))

    async def get_exercise(self, exercise_id: Any) -> dict:
        if not self.identity.user_id:
            return not_authenticated()
        if not exercise_id:
            return fail(MISSING_ID)

        try:
            rows = await self.store.select(
                config.EXERCISES_TABLE,
                columns=f"*, {config.SETS_TABLE}(*)",
                filters=[eq("id", exercise_id)],
            )
        except Exception as e:
            logger.error(f"Failed to get exercise {exercise_id}: {e}")
            return from_exception(e, LOAD_WORKOUT_FAILED)

        if not rows:
            return fail(EXERCISE_NOT_FOUND)
        return ok(shape_exercise_detail(rows[0]))

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create(self, workout_fields: dict, exercises: Optional[list[dict]] = None) -> dict:
        """Create a workout, then each exercise and its sets, in input order.

        At most one workout row is created per call. On failure the partial
        workout is deleted and the error returned; the list is re-fetched either way.
        """
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()

        name = (workout_fields.get("name") or "").strip()
        if not name:
            return fail(WORKOUT_NAME_REQUIRED)

        try:
            prepared = [
                (_exercise_fields(exercise), build_set_rows(exercise.get("sets") or []))
                for exercise in exercises or []
            ]
        except ValueError as e:
            return fail(str(e))

        workout_row = {
            **workout_fields,
            "user_id": user_id,
            "name": name,
            "notes": workout_fields.get("notes") or None,
            "date": workout_fields.get("date") or local_date_string(self._now()),
        }

        workout = None
        try:
            workout = await self.store.insert(config.WORKOUTS_TABLE, workout_row, single=True)
            for fields, set_rows in prepared:
                exercise = await self.store.insert(
                    config.EXERCISES_TABLE,
                    {**fields, "workout_id": workout["id"], "total_sets": len(set_rows)},
                    single=True,
                )
                if set_rows:
                    await self.store.insert(
                        config.SETS_TABLE,
                        [{**row, "exercise_id": exercise["id"]} for row in set_rows],
                    )
        except Exception as e:
            logger.error(f"Error creating workout: {e}")
            result = from_exception(e, CREATE_WORKOUT_FAILED)
            if workout is not None and not await self._discard_workout(workout["id"], user_id):
                result["error"]["partial_workout_id"] = workout["id"]
            await self.list_workouts()
            return result

        logger.info(f"Created workout {workout['id']} with {len(prepared)} exercises")
        await self.list_workouts()
        return ok(workout)

    async def _discard_workout(self, workout_id: Any, user_id: str) -> bool:
        """Compensating delete for a partially created workout."""
        try:
            await self.store.delete(
                config.WORKOUTS_TABLE,
                filters=[eq("id", workout_id), eq("user_id", user_id)],
            )
        except Exception as e:
            logger.error(f"Cleanup of partial workout {workout_id} failed: {e}")
            return False
        logger.warning(f"Removed partially created workout {workout_id}")
        return True

    async def delete_workout(self, workout_id: Any) -> dict:
        """Delete a workout; exercises and sets go with it through the store's cascade."""
        user_id = self.identity.user_id
        if not user_id:
            return not_authenticated()
        if not workout_id:
            return fail(MISSING_ID)

        try:
            await self.store.delete(
                config.WORKOUTS_TABLE,
                filters=[eq("id", workout_id), eq("user_id", user_id)],
            )
        except Exception as e:
            logger.error(f"Error deleting workout {workout_id}: {e}")
            return from_exception(e, DELETE_WORKOUT_FAILED)

        logger.info(f"Deleted workout {workout_id}")
        await self.list_workouts()
        return ok(None)

    async def edit_exercise(self, exercise_id: Any, fields: dict, sets: list[dict]) -> dict:
        """Update an exercise and replace all of its sets.

        Sets with neither reps nor weight are dropped; the rest are renumbered
        from 1. Existing set ids are not preserved. The exercise row itself
        (name, type, notes, total_sets) is only patched once the new sets are
        stored, so a failed edit leaves it as it was.
        """
        if not self.identity.user_id:
            return not_authenticated()
        if not exercise_id:
            return fail(MISSING_ID)

        try:
            patch = _exercise_fields(fields)
            set_rows = build_set_rows(sets or [], renumber=True)
        except ValueError as e:
            return fail(str(e))
        patch["total_sets"] = len(set_rows)

        try:
            existing = await self.store.select(
                config.EXERCISES_TABLE, columns="id", filters=[eq("id", exercise_id)]
            )
            if not existing:
                return fail(EXERCISE_NOT_FOUND)

            previous = await self.store.select(
                config.SETS_TABLE,
                filters=[eq("exercise_id", exercise_id)],
                order="set_number",
            )
            await self.store.delete(config.SETS_TABLE, filters=[eq("exercise_id", exercise_id)])
        except Exception as e:
            logger.error(f"Error updating exercise {exercise_id}: {e}")
            return from_exception(e, UPDATE_EXERCISE_FAILED)

        inserted = []
        try:
            if set_rows:
                inserted = await self.store.insert(
                    config.SETS_TABLE,
                    [{**row, "exercise_id": exercise_id} for row in set_rows],
                )
            updated = await self.store.update(
                config.EXERCISES_TABLE, patch, filters=[eq("id", exercise_id)]
            )
        except Exception as e:
            logger.error(f"Error saving exercise {exercise_id}: {e}")
            result = from_exception(e, UPDATE_EXERCISE_FAILED)
            if not await self._restore_sets(exercise_id, previous or []):
                result["error"]["sets_lost"] = True
            await self.list_workouts()
            return result

        if not updated:
            # Removed by someone else between the existence check and the patch
            await self.list_workouts()
            return fail(EXERCISE_NOT_FOUND)

        logger.info(f"Updated exercise {exercise_id} with {len(set_rows)} sets")
        await self.list_workouts()
        exercise = {**updated[0], "sets": [{f: row.get(f) for f in SET_FIELDS} for row in inserted or []]}
        return ok(exercise)

    async def _restore_sets(self, exercise_id: Any, previous: list[dict]) -> bool:
        """Swap whatever sets a failed edit left behind for the previous ones (with new ids)."""
        try:
            await self.store.delete(config.SETS_TABLE, filters=[eq("exercise_id", exercise_id)])
            if previous:
                await self.store.insert(
                    config.SETS_TABLE,
                    [
                        {
                            "exercise_id": exercise_id,
                            "set_number": row.get("set_number"),
                            "reps": row.get("reps"),
                            "weight_kg": row.get("weight_kg"),
                            "notes": row.get("notes"),
                        }
                        for row in previous
                    ],
                )
        except Exception as e:
            logger.error(f"Restoring sets for exercise {exercise_id} failed: {e}")
            return False
        logger.warning(f"Restored {len(previous)} previous sets for exercise {exercise_id}")
        return True

    async def delete_exercise(self, exercise_id: Any) -> dict:
        if not self.identity.user_id:
            return not_authenticated()
        if not exercise_id:
            return fail(MISSING_ID)

        try:
            await self.store.delete(config.EXERCISES_TABLE, filters=[eq("id", exercise_id)])
        except Exception as e:
            logger.error(f"Error deleting exercise {exercise_id}: {e}")
            return from_exception(e, DELETE_EXERCISE_FAILED)

        logger.info(f"Deleted exercise {exercise_id}")
        await self.list_workouts()
        return ok(None)

    # =========================================================================
    # STATS
    # =========================================================================

    def weekly_count(self) -> int:
        """Cached workouts dated in the current Monday-Sunday week."""
        monday, sunday = week_bounds(self._now().date())
        start, end = monday.isoformat(), sunday.isoformat()
        return sum(1 for w in self.workouts if start <= (w.get("date") or "")[:10] <= end)

    @staticmethod
    def summary(workout: dict) -> dict:
        exercises = workout.get("exercises") or []
        return {
            "exercises": len(exercises),
            "sets": sum(ex.get("total_sets") or 0 for ex in exercises),
            "volume_kg": calculate_total_volume(exercises),
            "intensity": workout_intensity(exercises),
        }
