"""
auth/adapters/remote.py -- libSQL/Turso backend over the HTTP pipeline API.

Each statement is one POST to {url}/v2/pipeline carrying an "execute" request
followed by "close", authenticated with a Bearer token. Values travel as
typed JSON objects:

  {"type": "null"}
  {"type": "integer", "value": "42"}      (string-encoded to keep 64-bit precision)
  {"type": "float",   "value": 1.5}
  {"type": "text",    "value": "abc"}
  {"type": "blob",    "base64": "..."}

The pipeline endpoint runs one statement per execute request, so schema
scripts are split on ";" before sending.

HTTP-level failures surface as requests exceptions; an "error" result inside
a 200 response raises StorageError with the server's message.
"""

from __future__ import annotations

import base64
import logging
from typing import Any

import requests

from auth.adapters.base import DatabaseAdapter, Params, RemoteAdapterConfig, RunResult
from auth.errors import StorageError

logger = logging.getLogger("static_admin.auth.db")

_TIMEOUT = 10


def pipeline_url(url: str) -> str:
    """Normalize a libsql:// or https:// database URL to its pipeline endpoint."""
    if url.startswith("libsql://"):
        url = "https://" + url[len("libsql://") :]
    return url.rstrip("/") + "/v2/pipeline"


def split_statements(sql: str) -> list[str]:
    return [s.strip() for s in sql.split(";") if s.strip()]


def encode_value(value: Any) -> dict[str, Any]:
    if value is None:
        return {"type": "null"}
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {"type": "integer", "value": "1" if value else "0"}
    if isinstance(value, int):
        return {"type": "integer", "value": str(value)}
    if isinstance(value, float):
        return {"type": "float", "value": value}
    if isinstance(value, (bytes, bytearray)):
        return {"type": "blob", "base64": base64.b64encode(bytes(value)).decode("ascii")}
    return {"type": "text", "value": str(value)}


def decode_value(value: dict[str, Any]) -> Any:
    kind = value.get("type")
    if kind == "integer":
        return int(value["value"])
    if kind == "float":
        return float(value["value"])
    if kind == "text":
        return value["value"]
    if kind == "blob":
        return base64.b64decode(value["base64"])
    return None


class RemoteAdapter(DatabaseAdapter):
    def __init__(self, config: RemoteAdapterConfig, session: requests.Session | None = None) -> None:
        self._url = pipeline_url(config.url)
        self._session = session or requests.Session()
        self._session.max_redirects = 3
        self._session.headers.update({"Authorization": f"Bearer {config.auth_token}"})

    def _send(self, sql: str, params: Params) -> dict[str, Any]:
        stmt: dict[str, Any] = {"sql": sql}
        if params:
            stmt["named_args"] = [{"name": f":{k}", "value": encode_value(v)} for k, v in params.items()]
        body = {"requests": [{"type": "execute", "stmt": stmt}, {"type": "close"}]}

        resp = self._session.post(self._url, json=body, timeout=_TIMEOUT)
        resp.raise_for_status()
        results = resp.json().get("results") or []
        first = results[0] if results else {}
        if first.get("type") != "ok":
            message = (first.get("error") or {}).get("message", "no result returned")
            logger.warning("Remote database rejected statement: %s", message)
            raise StorageError(f"Remote database error: {message}")
        return first["response"]["result"]

    @staticmethod
    def _rows(result: dict[str, Any]) -> list[dict[str, Any]]:
        cols = [c.get("name") for c in result.get("cols", [])]
        return [dict(zip(cols, (decode_value(v) for v in row))) for row in result.get("rows", [])]

    def execute(self, sql: str) -> None:
        for statement in split_statements(sql):
            self._send(statement, None)

    def query_one(self, sql: str, params: Params = None) -> dict[str, Any] | None:
        rows = self._rows(self._send(sql, params))
        return rows[0] if rows else None

    def query_all(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        return self._rows(self._send(sql, params))

    def run(self, sql: str, params: Params = None) -> RunResult:
        result = self._send(sql, params)
        last_id = result.get("last_insert_rowid")
        return RunResult(
            last_insert_id=int(last_id) if last_id is not None else 0,
            rows_changed=int(result.get("affected_row_count") or 0),
        )

    def close(self) -> None:
        self._session.close()
