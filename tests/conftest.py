"""Pytest configuration and fixtures."""

import copy
import itertools
import os
import sys
import tempfile
from collections import defaultdict
from datetime import datetime
from unittest.mock import AsyncMock, patch
from zoneinfo import ZoneInfo

import pytest

# Keep test logs out of the working tree
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "fitness-tracker-test-logs"))

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tracker.services.auth_service import Session, User, SIGNED_IN  # noqa: E402
from tracker.services.identity import CurrentIdentity  # noqa: E402
from tracker.services.postgrest import StoreError  # noqa: E402

USER_ID = "user-1"
OTHER_USER_ID = "user-2"

# Monday 19 October 2026, midday in Lisbon
FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=ZoneInfo("Europe/Lisbon"))

WRITE_METHODS = ("insert", "update", "delete", "upsert")

# parent table -> (child table, foreign key column)
CHILDREN = {
    "workouts": ("exercises", "workout_id"),
    "exercises": ("exercise_sets", "exercise_id"),
}


def _matches(row: dict, filters) -> bool:
    for column, operator, value in filters or []:
        current = row.get(column)
        if operator == "eq" and current != value:
            return False
        if operator == "neq" and current == value:
            return False
        if operator == "in" and current not in value:
            return False
        if operator == "is" and current is not value:
            return False
        if operator in ("gt", "gte", "lt", "lte"):
            if current is None:
                return False
            if operator == "gt" and not current > value:
                return False
            if operator == "gte" and not current >= value:
                return False
            if operator == "lt" and not current < value:
                return False
            if operator == "lte" and not current <= value:
                return False
    return True


class FakeStore:
    """In-memory stand-in for SupabaseStore.

    Honours filters, embeds children when the column list names them,
    cascades deletes from workouts to exercises to sets, records every call
    and can be told to fail a given (method, table) call.
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)
        self._failures: dict[tuple[str, str], list] = {}

    # -- test helpers ---------------------------------------------------------

    def seed(self, table: str, **row) -> dict:
        row.setdefault("id", next(self._ids))
        self.tables[table].append(row)
        return row

    def rows(self, table: str, **equals) -> list[dict]:
        return [r for r in self.tables[table] if all(r.get(k) == v for k, v in equals.items())]

    def writes(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] in WRITE_METHODS]

    def fail_on(
        self, method: str, table: str, error: StoreError = None, skip: int = 0, times: int = 1
    ) -> None:
        """Make ``times`` consecutive ``method`` calls on ``table`` raise, after skipping ``skip``."""
        self._failures[(method, table)] = [skip, error or StoreError("boom", code="500"), times]

    # -- internals ------------------------------------------------------------

    def _record(self, method: str, table: str) -> None:
        self.calls.append((method, table))
        entry = self._failures.get((method, table))
        if entry is None:
            return
        if entry[0] > 0:
            entry[0] -= 1
            return
        entry[2] -= 1
        if entry[2] <= 0:
            del self._failures[(method, table)]
        raise entry[1]

    def _embed(self, table: str, row: dict, columns: str) -> dict:
        child = CHILDREN.get(table)
        if child and f"{child[0]}(" in columns:
            child_table, fk = child
            row[child_table] = [
                self._embed(child_table, copy.deepcopy(c), columns)
                for c in self.tables[child_table]
                if c.get(fk) == row["id"]
            ]
        return row

    def _cascade(self, table: str, deleted: list[dict]) -> None:
        child = CHILDREN.get(table)
        if not child or not deleted:
            return
        child_table, fk = child
        ids = {row["id"] for row in deleted}
        removed = [c for c in self.tables[child_table] if c.get(fk) in ids]
        self.tables[child_table] = [c for c in self.tables[child_table] if c.get(fk) not in ids]
        self._cascade(child_table, removed)

    # -- store interface ------------------------------------------------------

    async def select(self, table, columns="*", filters=None, order=None, ascending=True,
                     single=False, limit=None):
        self._record("select", table)
        rows = [
            self._embed(table, copy.deepcopy(r), columns)
            for r in self.tables[table]
            if _matches(r, filters)
        ]
        if order:
            rows.sort(key=lambda r: (r.get(order) is None, r.get(order)), reverse=not ascending)
        if limit is not None:
            rows = rows[:limit]
        if single:
            if len(rows) != 1:
                raise StoreError(
                    "JSON object requested, multiple (or no) rows returned",
                    code="PGRST116",
                    status=406,
                )
            return rows[0]
        return rows

    async def insert(self, table, rows, single=False):
        self._record("insert", table)
        payload = rows if isinstance(rows, list) else [rows]
        inserted = []
        for row in payload:
            row = copy.deepcopy(row)
            row.setdefault("id", next(self._ids))
            row.setdefault("created_at", f"2026-10-19T10:00:00.{row['id']:06d}")
            self.tables[table].append(row)
            inserted.append(copy.deepcopy(row))
        return inserted[0] if single else inserted

    async def update(self, table, patch, filters):
        self._record("update", table)
        updated = []
        for row in self.tables[table]:
            if _matches(row, filters):
                row.update(copy.deepcopy(patch))
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table, filters):
        self._record("delete", table)
        deleted = [r for r in self.tables[table] if _matches(r, filters)]
        self.tables[table] = [r for r in self.tables[table] if not _matches(r, filters)]
        self._cascade(table, deleted)
        return deleted

    async def upsert(self, table, rows, on_conflict=None):
        self._record("upsert", table)
        key = on_conflict or "id"
        payload = rows if isinstance(rows, list) else [rows]
        saved = []
        for row in payload:
            existing = next((r for r in self.tables[table] if r.get(key) == row.get(key)), None)
            if existing is not None:
                existing.update(copy.deepcopy(row))
                saved.append(copy.deepcopy(existing))
            else:
                self.tables[table].append(copy.deepcopy(row))
                saved.append(copy.deepcopy(row))
        return saved


class FakeAuth:
    """Identity provider double: a settable session plus change listeners."""

    def __init__(self, session=None, error=None):
        self.session = session
        self.error = error
        self.listeners = []

    async def get_session(self):
        if isinstance(self.error, Exception):
            raise self.error
        return {"data": self.session, "error": self.error}

    def on_session_changed(self, callback):
        self.listeners.append(callback)
        return lambda: self.listeners.remove(callback)

    def emit(self, event, session):
        self.session = session
        for callback in list(self.listeners):
            callback(event, session)


def make_session(user_id: str = USER_ID, email: str = "ana@example.com", expires_at=None) -> Session:
    return Session(
        access_token=f"access-{user_id}",
        refresh_token=f"refresh-{user_id}",
        user=User(id=user_id, email=email),
        expires_at=expires_at,
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def identity():
    """Identity signed in as USER_ID."""
    cell = CurrentIdentity()
    cell._on_session_changed(SIGNED_IN, make_session())
    return cell


@pytest.fixture
def anonymous():
    """Identity with nobody signed in."""
    return CurrentIdentity()


@pytest.fixture
def fixed_now():
    return lambda: FIXED_NOW


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx client."""
    with patch('httpx.AsyncClient') as mock:
        client = AsyncMock()
        mock.return_value.__aenter__.return_value = client
        yield client
