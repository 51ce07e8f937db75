"""
tests/test_adapters.py -- Database adapter tests.

The SQLite adapter runs against a real file. The remote adapter gets a
MagicMock in place of its requests.Session, so the tests assert on the
pipeline request body and feed canned pipeline responses back.
"""

from __future__ import annotations

import base64
from unittest.mock import MagicMock

import pytest
import requests

from auth.adapters import (
    RemoteAdapter,
    RemoteAdapterConfig,
    SqliteAdapter,
    SqliteAdapterConfig,
    create_database_adapter,
)
from auth.adapters.remote import decode_value, encode_value, pipeline_url, split_statements
from auth.errors import StorageError


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def test_factory_dispatches_on_config_type(tmp_path) -> None:
    sqlite = create_database_adapter(SqliteAdapterConfig(path=str(tmp_path / "a.db")))
    assert isinstance(sqlite, SqliteAdapter)
    sqlite.close()
    remote = create_database_adapter(RemoteAdapterConfig(url="libsql://db.example.io", auth_token="t"))
    assert isinstance(remote, RemoteAdapter)
    remote.close()


def test_factory_rejects_unknown_config() -> None:
    with pytest.raises(ValueError):
        create_database_adapter(object())


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


@pytest.fixture
def sqlite_adapter(tmp_path):
    adapter = SqliteAdapter(SqliteAdapterConfig(path=str(tmp_path / "t.db")))
    adapter.execute(
        "CREATE TABLE items (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT UNIQUE);"
        "CREATE INDEX idx_items_name ON items(name)"
    )
    yield adapter
    adapter.close()


class TestSqliteAdapter:
    def test_run_reports_insert_id_and_changes(self, sqlite_adapter) -> None:
        first = sqlite_adapter.run("INSERT INTO items (name) VALUES (:name)", {"name": "a"})
        second = sqlite_adapter.run("INSERT INTO items (name) VALUES (:name)", {"name": "b"})
        assert (first.last_insert_id, first.rows_changed) == (1, 1)
        assert second.last_insert_id == 2

        deleted = sqlite_adapter.run("DELETE FROM items")
        assert deleted.rows_changed == 2

    def test_query_one_and_all(self, sqlite_adapter) -> None:
        sqlite_adapter.run("INSERT INTO items (name) VALUES ('a')")
        sqlite_adapter.run("INSERT INTO items (name) VALUES ('b')")
        assert sqlite_adapter.query_one("SELECT name FROM items WHERE id = :id", {"id": 2}) == {"name": "b"}
        assert sqlite_adapter.query_one("SELECT name FROM items WHERE id = 99") is None
        assert sqlite_adapter.query_all("SELECT id, name FROM items ORDER BY id") == [
            {"id": 1, "name": "a"},
            {"id": 2, "name": "b"},
        ]

    def test_foreign_keys_are_enforced(self, sqlite_adapter) -> None:
        sqlite_adapter.execute(
            "CREATE TABLE children (id INTEGER PRIMARY KEY, item_id INTEGER NOT NULL, "
            "FOREIGN KEY (item_id) REFERENCES items(id) ON DELETE CASCADE)"
        )
        sqlite_adapter.run("INSERT INTO items (name) VALUES ('a')")
        sqlite_adapter.run("INSERT INTO children (item_id) VALUES (1)")
        sqlite_adapter.run("DELETE FROM items WHERE id = 1")
        assert sqlite_adapter.query_all("SELECT * FROM children") == []

    def test_constraint_errors_propagate(self, sqlite_adapter) -> None:
        from sqlalchemy.exc import IntegrityError

        sqlite_adapter.run("INSERT INTO items (name) VALUES ('a')")
        with pytest.raises(IntegrityError):
            sqlite_adapter.run("INSERT INTO items (name) VALUES ('a')")


# ---------------------------------------------------------------------------
# Remote (libSQL HTTP pipeline)
# ---------------------------------------------------------------------------


def _ok(result: dict) -> MagicMock:
    resp = MagicMock()
    resp.json.return_value = {"results": [{"type": "ok", "response": {"type": "execute", "result": result}}]}
    return resp


def _remote(session: MagicMock) -> RemoteAdapter:
    return RemoteAdapter(RemoteAdapterConfig(url="libsql://db.example.io/", auth_token="secret"), session=session)


class TestRemoteHelpers:
    def test_pipeline_url(self) -> None:
        assert pipeline_url("libsql://db.example.io") == "https://db.example.io/v2/pipeline"
        assert pipeline_url("https://db.example.io/") == "https://db.example.io/v2/pipeline"

    def test_split_statements_drops_blanks(self) -> None:
        assert split_statements("CREATE TABLE a (x);\n\n CREATE INDEX i ON a(x);  ") == [
            "CREATE TABLE a (x)",
            "CREATE INDEX i ON a(x)",
        ]

    @pytest.mark.parametrize(
        "value,encoded",
        [
            (None, {"type": "null"}),
            (True, {"type": "integer", "value": "1"}),
            (42, {"type": "integer", "value": "42"}),
            (1.5, {"type": "float", "value": 1.5}),
            ("abc", {"type": "text", "value": "abc"}),
            (b"\x00\x01", {"type": "blob", "base64": base64.b64encode(b"\x00\x01").decode()}),
        ],
    )
    def test_encode_value(self, value, encoded) -> None:
        assert encode_value(value) == encoded

    def test_decode_value(self) -> None:
        assert decode_value({"type": "integer", "value": "9007199254740993"}) == 9007199254740993
        assert decode_value({"type": "null"}) is None
        assert decode_value({"type": "text", "value": "x"}) == "x"


class TestRemoteAdapter:
    def test_sends_bearer_token_and_named_args(self) -> None:
        session = MagicMock()
        session.post.return_value = _ok({"cols": [], "rows": [], "affected_row_count": 0})
        adapter = _remote(session)

        adapter.query_all("SELECT * FROM users WHERE id = :id", {"id": 3})

        session.headers.update.assert_called_once_with({"Authorization": "Bearer secret"})
        url = session.post.call_args.args[0]
        body = session.post.call_args.kwargs["json"]
        assert url == "https://db.example.io/v2/pipeline"
        assert body["requests"][0] == {
            "type": "execute",
            "stmt": {
                "sql": "SELECT * FROM users WHERE id = :id",
                "named_args": [{"name": ":id", "value": {"type": "integer", "value": "3"}}],
            },
        }
        assert body["requests"][1] == {"type": "close"}

    def test_rows_become_dicts(self) -> None:
        session = MagicMock()
        session.post.return_value = _ok(
            {
                "cols": [{"name": "id"}, {"name": "email"}],
                "rows": [[{"type": "integer", "value": "1"}, {"type": "text", "value": "a@example.com"}]],
            }
        )
        adapter = _remote(session)
        assert adapter.query_one("SELECT id, email FROM users") == {"id": 1, "email": "a@example.com"}

    def test_query_one_empty(self) -> None:
        session = MagicMock()
        session.post.return_value = _ok({"cols": [{"name": "id"}], "rows": []})
        assert _remote(session).query_one("SELECT id FROM users") is None

    def test_run_reads_rowid_and_count(self) -> None:
        session = MagicMock()
        session.post.return_value = _ok({"cols": [], "rows": [], "affected_row_count": 1, "last_insert_rowid": "17"})
        result = _remote(session).run("INSERT INTO users (email) VALUES (:email)", {"email": "a@example.com"})
        assert result.last_insert_id == 17
        assert result.rows_changed == 1

    def test_execute_splits_script(self) -> None:
        session = MagicMock()
        session.post.return_value = _ok({"cols": [], "rows": []})
        _remote(session).execute("CREATE TABLE a (x); CREATE TABLE b (y);")
        sent = [c.kwargs["json"]["requests"][0]["stmt"]["sql"] for c in session.post.call_args_list]
        assert sent == ["CREATE TABLE a (x)", "CREATE TABLE b (y)"]

    def test_error_result_raises_storage_error(self) -> None:
        session = MagicMock()
        resp = MagicMock()
        resp.json.return_value = {
            "results": [{"type": "error", "error": {"message": "UNIQUE constraint failed: users.email"}}]
        }
        session.post.return_value = resp
        with pytest.raises(StorageError, match="UNIQUE constraint failed"):
            _remote(session).run("INSERT INTO users (email) VALUES ('a')")

    def test_http_failure_propagates(self) -> None:
        session = MagicMock()
        resp = MagicMock()
        resp.raise_for_status.side_effect = requests.HTTPError("401 Unauthorized")
        session.post.return_value = resp
        with pytest.raises(requests.HTTPError):
            _remote(session).query_all("SELECT 1")

    def test_close_closes_session(self) -> None:
        session = MagicMock()
        _remote(session).close()
        session.close.assert_called_once()
