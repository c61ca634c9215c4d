"""Tests for the state storage backends."""
import json
from datetime import datetime, timezone
import pytest
from issue_label_watcher.domain.models import PersistedState
from issue_label_watcher.infrastructure.json_file_state_storage import JsonFileStateStorage
from issue_label_watcher.infrastructure.postgres_state_storage import RUN_LOCK_KEY, PostgresStateStorage


def _state():
    state = PersistedState(last_run_time=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    state.seen_issues("o/n").update({"1", "2"})
    return state


class FakeCursor:
    def __init__(self, conn):
        self._conn = conn

    def execute(self, sql, params=None):
        self._conn.executed.append((" ".join(sql.split()), params))
        if self._conn.fail_on and self._conn.fail_on in sql:
            raise RuntimeError("database unavailable")

    def fetchone(self):
        return self._conn.rows.pop(0) if self._conn.rows else None

    def close(self):
        pass


class FakeConnection:
    def __init__(self, rows=None, fail_on=None):
        self.rows = list(rows or [])
        self.fail_on = fail_on
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.autocommit = True

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True


def test_json_file_missing_is_empty(tmp_path):
    """Test that a missing file loads as a first run."""
    state = JsonFileStateStorage(str(tmp_path / "state.json")).load()

    assert state.last_run_time is None
    assert state.total_issues == 0


def test_json_file_save_and_load(tmp_path):
    """Test the state survives a save and a reload, leaving no temporary files."""
    path = tmp_path / "nested" / "state.json"
    storage = JsonFileStateStorage(str(path))

    storage.save(_state())
    loaded = storage.load()

    assert loaded.last_run_time == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert loaded.issues_by_repo == {"o/n": {"1", "2"}}
    assert json.loads(path.read_text())["repos"] == [{"fullName": "o/n", "issueNumbers": ["1", "2"]}]
    assert [p.name for p in path.parent.iterdir()] == ["state.json"]


def test_postgres_load_empty():
    """Test that no stored row loads as an empty state."""
    conn = FakeConnection(rows=[None])
    storage = PostgresStateStorage("", connection=conn)

    state = storage.load()

    assert state.last_run_time is None
    assert conn.executed == [("SELECT content FROM watcher_state WHERE name = %s", ("state",))]
    assert conn.autocommit is False


def test_postgres_load_document():
    """Test loading a JSONB document, which the driver returns already decoded."""
    conn = FakeConnection(rows=[(_state().to_document(),)])

    state = PostgresStateStorage("", connection=conn).load()

    assert state.issues_by_repo == {"o/n": {"1", "2"}}


def test_postgres_save_upserts():
    """Test saving writes the serialized document with an UPSERT."""
    conn = FakeConnection()
    storage = PostgresStateStorage("", state_name="nightly", connection=conn)

    storage.save(_state())

    sql, params = conn.executed[0]
    assert sql.startswith("INSERT INTO watcher_state (name, content, updated_at)")
    assert "ON CONFLICT (name) DO UPDATE SET" in sql
    assert params[0] == "nightly"
    assert json.loads(params[1])["lastRunTime"] == "2024-01-02T03:04:05Z"
    assert conn.commits == 1


def test_postgres_save_rolls_back_on_error():
    """Test a failed save is rolled back and re-raised."""
    conn = FakeConnection(fail_on="INSERT")
    storage = PostgresStateStorage("", connection=conn)

    with pytest.raises(RuntimeError):
        storage.save(_state())

    assert conn.rollbacks == 1
    assert conn.commits == 0


def test_postgres_run_lock():
    """Test the advisory lock round trip."""
    conn = FakeConnection(rows=[(False,)])
    storage = PostgresStateStorage("", connection=conn)

    assert storage.acquire_run_lock() is False
    storage.release_run_lock()
    storage.close()

    assert conn.executed == [
        ("SELECT pg_try_advisory_lock(%s)", (RUN_LOCK_KEY,)),
        ("SELECT pg_advisory_unlock(%s)", (RUN_LOCK_KEY,)),
    ]
    assert conn.closed
