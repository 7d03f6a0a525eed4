import os
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

os.environ.setdefault("LEADERBOARD_BACKEND", "memory")
os.environ.setdefault("SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("SUPABASE_KEY", "test-key")

from fastapi.testclient import TestClient  # noqa: E402

from portfolio.core.limiter import limiter  # noqa: E402
from portfolio.database.supabase_client import get_service_supabase, get_supabase  # noqa: E402
from portfolio.main import app  # noqa: E402
from portfolio.modules.leaderboard.service import get_score_store  # noqa: E402
from portfolio.modules.leaderboard.storage import MemoryScoreStore  # noqa: E402

# child table, foreign key column, parent table
CASCADES = [
    ("tasks", "group_id", "task_groups"),
    ("task_completions", "task_id", "tasks"),
]


class FakeQuery:
    """Just enough of the postgrest query builder for the services under test."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.action = "select"
        self.payload = None
        self.filters = []
        self.order_by = None
        self.row_limit = None

    def select(self, *columns):
        self.action = "select"
        return self

    def insert(self, rows):
        self.action = "insert"
        self.payload = rows
        return self

    def update(self, values):
        self.action = "update"
        self.payload = values
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row[column] >= value)
        return self

    def lte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row[column] <= value)
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        if self.db.fail:
            raise ConnectionError("database unavailable")
        rows = self.db.tables.setdefault(self.table, [])

        if self.action == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for values in new_rows:
                timestamp = self.db.next_timestamp()
                row = {"id": str(uuid.uuid4()), "created_at": timestamp, "updated_at": timestamp, **values}
                rows.append(row)
                inserted.append(dict(row))
            return SimpleNamespace(data=inserted)

        if self.action == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self.payload)
                    updated.append(dict(row))
            return SimpleNamespace(data=updated)

        if self.action == "delete":
            deleted = [row for row in rows if self._matches(row)]
            self.db.tables[self.table] = [row for row in rows if not self._matches(row)]
            self.db.cascade(self.table, [row["id"] for row in deleted])
            return SimpleNamespace(data=deleted)

        selected = [dict(row) for row in rows if self._matches(row)]
        if self.order_by:
            column, desc = self.order_by
            selected.sort(key=lambda row: str(row.get(column)), reverse=desc)
        if self.row_limit is not None:
            selected = selected[: self.row_limit]
        return SimpleNamespace(data=selected)


class FakeSupabase:
    """In-memory stand-in for the supabase Client with ON DELETE CASCADE."""

    def __init__(self):
        self.tables = {"task_groups": [], "tasks": [], "task_completions": []}
        self.fail = False
        self._clock = datetime.now(timezone.utc)

    def next_timestamp(self) -> str:
        self._clock += timedelta(milliseconds=1)
        return self._clock.isoformat(timespec="microseconds")

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def cascade(self, parent: str, ids):
        for child, column, parent_table in CASCADES:
            if parent_table != parent or not ids:
                continue
            doomed = [row["id"] for row in self.tables[child] if row[column] in ids]
            self.tables[child] = [row for row in self.tables[child] if row[column] not in ids]
            self.cascade(child, doomed)


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def score_store():
    return MemoryScoreStore()


@pytest.fixture
def client(fake_supabase, score_store):
    app.dependency_overrides[get_supabase] = lambda: fake_supabase
    app.dependency_overrides[get_service_supabase] = lambda: fake_supabase
    app.dependency_overrides[get_score_store] = lambda: score_store
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


def group_payload(**overrides):
    payload = {
        "name": "Morning routine",
        "color": "#4f46e5",
        "duration": 30,
        "start_date": "2025-03-01",
        "tasks": [{"text": "Stretch"}, {"text": "Read 10 pages", "type": "habit"}],
    }
    payload.update(overrides)
    return payload
