"""
auth/adapters/base.py -- Backend-neutral database adapter contract.

The manager talks to the database only through this interface, so it never
branches on which backend is in use. Both implementations accept the same
SQLite-dialect SQL with named (:name) parameters and return rows as plain
dicts keyed by column name.

Errors from the underlying engine propagate unchanged; callers never catch
adapter-specific exception types.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

Params = Optional[Mapping[str, Any]]


@dataclass(frozen=True)
class RunResult:
    last_insert_id: int
    rows_changed: int


@dataclass(frozen=True)
class SqliteAdapterConfig:
    path: str


@dataclass(frozen=True)
class RemoteAdapterConfig:
    url: str
    auth_token: str


class DatabaseAdapter(ABC):
    @abstractmethod
    def execute(self, sql: str) -> None:
        """Run a schema script. May contain several ;-separated statements."""

    @abstractmethod
    def query_one(self, sql: str, params: Params = None) -> dict[str, Any] | None:
        """Return the first row, or None when the query yields nothing."""

    @abstractmethod
    def query_all(self, sql: str, params: Params = None) -> list[dict[str, Any]]: ...

    @abstractmethod
    def run(self, sql: str, params: Params = None) -> RunResult:
        """Execute an INSERT/UPDATE/DELETE and report what it did."""

    @abstractmethod
    def close(self) -> None: ...
