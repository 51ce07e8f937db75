"""
auth/adapters/sqlite.py -- Embedded SQLite backend on a SQLAlchemy engine.

Every call checks a connection out of the engine pool and returns it
immediately. Writes run inside engine.begin() so they commit on success and
roll back on error; reads use engine.connect().

":memory:" is served from a StaticPool so every thread (FastAPI runs sync
routes in a worker pool) sees the same in-memory database instead of a fresh
blank one per connection.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from auth.adapters.base import DatabaseAdapter, Params, RunResult, SqliteAdapterConfig


def _set_pragmas(dbapi_conn, connection_record) -> None:
    """WAL for concurrent readers; foreign_keys so ON DELETE CASCADE fires.

    Both are per-connection settings in SQLite, so they are applied on every
    new pooled connection rather than once per database.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


class SqliteAdapter(DatabaseAdapter):
    def __init__(self, config: SqliteAdapterConfig) -> None:
        connect_args = {"check_same_thread": False}
        if config.path == ":memory:":
            self.engine: Engine = create_engine("sqlite://", connect_args=connect_args, poolclass=StaticPool)
        else:
            self.engine = create_engine(f"sqlite:///{config.path}", connect_args=connect_args)
        event.listen(self.engine, "connect", _set_pragmas)

    def execute(self, sql: str) -> None:
        # text() executes exactly one statement; schema scripts carry several,
        # so hand them to the sqlite3 driver's script runner.
        raw = self.engine.raw_connection()
        try:
            raw.driver_connection.executescript(sql)
        finally:
            raw.close()

    def query_one(self, sql: str, params: Params = None) -> dict[str, Any] | None:
        with self.engine.connect() as conn:
            row = conn.execute(text(sql), dict(params or {})).mappings().fetchone()
        return dict(row) if row is not None else None

    def query_all(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        with self.engine.connect() as conn:
            rows = conn.execute(text(sql), dict(params or {})).mappings().fetchall()
        return [dict(r) for r in rows]

    def run(self, sql: str, params: Params = None) -> RunResult:
        with self.engine.begin() as conn:
            result = conn.execute(text(sql), dict(params or {}))
            return RunResult(last_insert_id=result.lastrowid or 0, rows_changed=result.rowcount)

    def close(self) -> None:
        self.engine.dispose()
