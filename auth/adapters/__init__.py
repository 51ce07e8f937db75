"""
auth/adapters/ -- Interchangeable database backends for the auth manager.

  sqlite -- embedded SQLite file via SQLAlchemy (default)
  remote -- libSQL/Turso over its HTTP pipeline API
"""

from __future__ import annotations

from auth.adapters.base import DatabaseAdapter, RemoteAdapterConfig, RunResult, SqliteAdapterConfig
from auth.adapters.remote import RemoteAdapter
from auth.adapters.sqlite import SqliteAdapter

AdapterConfig = SqliteAdapterConfig | RemoteAdapterConfig

__all__ = [
    "AdapterConfig",
    "DatabaseAdapter",
    "RemoteAdapter",
    "RemoteAdapterConfig",
    "RunResult",
    "SqliteAdapter",
    "SqliteAdapterConfig",
    "create_database_adapter",
]


def create_database_adapter(config: AdapterConfig) -> DatabaseAdapter:
    """Build the adapter matching the config type."""
    if isinstance(config, SqliteAdapterConfig):
        return SqliteAdapter(config)
    if isinstance(config, RemoteAdapterConfig):
        return RemoteAdapter(config)
    raise ValueError(f"Unknown adapter config: {type(config).__name__}")
