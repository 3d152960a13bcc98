from __future__ import annotations

import json
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine


@dataclass
class FakeGateway:
    """Shared state of the fake upstream / management / push server."""

    base_url: str = ""
    # /v1/models, per bearer key
    models_by_key: dict[str, list[str]] = field(default_factory=dict)
    models_status: int = 200
    models_raw_body: str | None = None
    # POST .../v1/chat/completions, per model
    completion_status: dict[str, int] = field(default_factory=dict)
    completion_delay_seconds: float = 0.0
    # management API (onehub)
    channels: dict[int, dict[str, Any]] = field(default_factory=dict)
    get_channel_status: int = 200
    put_channel_status: int = 200
    put_bodies: list[dict[str, Any]] = field(default_factory=list)
    # uptime pushes: GET /push/<name>
    push_status: int = 200
    requests: list[tuple[str, str, str, Any]] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def record(self, method: str, path: str, auth: str, body: Any) -> None:
        with self.lock:
            self.requests.append((method, path, auth, body))

    def paths(self, method: str | None = None) -> list[str]:
        with self.lock:
            return [p for m, p, _a, _b in self.requests if method is None or m == method]

    def completion_models(self) -> list[str]:
        with self.lock:
            return [b["model"] for m, p, _a, b in self.requests if m == "POST" and p.endswith("/completions")]


class _GatewayHandler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    @property
    def state(self) -> FakeGateway:
        return self.server.state  # type: ignore[attr-defined]

    def _auth_key(self) -> str:
        auth = self.headers.get("Authorization") or ""
        return auth[len("Bearer "):] if auth.startswith("Bearer ") else ""

    def _send(self, status: int, body: str, content_type: str = "application/json") -> None:
        raw = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)

    def _send_json(self, status: int, obj: Any) -> None:
        self._send(status, json.dumps(obj))

    def _read_json(self) -> Any:
        n = int(self.headers.get("Content-Length") or "0")
        raw = self.rfile.read(n) if n > 0 else b"{}"
        return json.loads(raw.decode("utf-8"))

    def do_GET(self) -> None:  # noqa: N802
        state = self.state
        state.record("GET", self.path, self._auth_key(), None)

        if self.path == "/v1/models":
            if state.models_raw_body is not None:
                self._send(state.models_status, state.models_raw_body)
                return
            models = state.models_by_key.get(self._auth_key(), [])
            self._send_json(state.models_status, {"object": "list", "data": [{"id": m} for m in models]})
            return

        if self.path.startswith("/api/channel/"):
            channel_id = int(self.path.rsplit("/", 1)[-1])
            channel = state.channels.get(channel_id)
            if channel is None:
                self._send_json(200, {"data": {}, "message": "channel not found", "success": False})
                return
            self._send_json(state.get_channel_status, {"data": channel, "message": "", "success": True})
            return

        if self.path.startswith("/push/"):
            self._send(state.push_status, "ok", "text/plain")
            return

        self._send(404, "not found", "text/plain")

    def do_POST(self) -> None:  # noqa: N802
        state = self.state
        payload = self._read_json()
        state.record("POST", self.path, self._auth_key(), payload)
        if not self.path.endswith("/v1/chat/completions"):
            self._send(404, "not found", "text/plain")
            return
        if state.completion_delay_seconds:
            time.sleep(state.completion_delay_seconds)
        model = payload.get("model")
        status = state.completion_status.get(model, 500)
        if status == 200:
            self._send_json(200, {"choices": [{"message": {"role": "assistant", "content": "Hi!"}}]})
        else:
            self._send_json(status, {"error": {"message": f"model {model} unavailable"}})

    def do_PUT(self) -> None:  # noqa: N802
        state = self.state
        payload = self._read_json()
        state.record("PUT", self.path, self._auth_key(), payload)
        if self.path != "/api/channel/":
            self._send(404, "not found", "text/plain")
            return
        with state.lock:
            state.put_bodies.append(payload)
        if state.put_channel_status == 200:
            state.channels[int(payload["id"])] = payload
        self._send_json(state.put_channel_status, {"data": payload, "message": "", "success": True})


@pytest.fixture
def gateway() -> FakeGateway:
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _GatewayHandler)
    httpd.daemon_threads = True
    host, port = httpd.server_address
    state = FakeGateway(base_url=f"http://{host}:{port}")
    httpd.state = state  # type: ignore[attr-defined]
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    try:
        yield state
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


@pytest.fixture
def unused_base_url() -> str:
    """A base URL nothing listens on (connection refused)."""
    import socket

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return f"http://127.0.0.1:{port}"


GATEWAY_SCHEMA = """
CREATE TABLE channels (
    id INTEGER PRIMARY KEY,
    type INTEGER NOT NULL DEFAULT 0,
    name TEXT NOT NULL DEFAULT '',
    base_url TEXT,
    key TEXT NOT NULL DEFAULT '',
    status INTEGER NOT NULL DEFAULT 1,
    model_mapping TEXT,
    models TEXT NOT NULL DEFAULT ''
);
CREATE TABLE abilities (
    "group" TEXT NOT NULL DEFAULT 'default',
    model TEXT NOT NULL,
    channel_id INTEGER NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY ("group", model, channel_id)
);
"""


class GatewayDatabase:
    """Synchronous helper for arranging and inspecting the gateway SQLite file."""

    def __init__(self, path: Path):
        self.path = path
        self.url = f"sqlite+aiosqlite:///{path}"

    def execute(self, sql: str, params: tuple = ()) -> None:
        conn = sqlite3.connect(self.path)
        try:
            conn.execute(sql, params)
            conn.commit()
        finally:
            conn.close()

    def query(self, sql: str, params: tuple = ()) -> list[tuple]:
        conn = sqlite3.connect(self.path)
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def add_channel(
        self,
        channel_id: int,
        *,
        name: str = "",
        kind: int = 1,
        base_url: str | None = "",
        key: str = "sk-test",
        status: int = 1,
        model_mapping: str | None = None,
        models: str = "",
    ) -> None:
        self.execute(
            "INSERT INTO channels (id, type, name, base_url, key, status, model_mapping, models) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (channel_id, kind, name or f"channel-{channel_id}", base_url, key, status, model_mapping, models),
        )

    def add_ability(self, channel_id: int, model: str, enabled: int = 0) -> None:
        self.execute(
            "INSERT INTO abilities (model, channel_id, enabled) VALUES (?, ?, ?)",
            (model, channel_id, enabled),
        )

    def channel_models(self, channel_id: int) -> str | None:
        rows = self.query("SELECT models FROM channels WHERE id = ?", (channel_id,))
        return rows[0][0] if rows else None

    def abilities(self, channel_id: int) -> dict[str, int]:
        rows = self.query("SELECT model, enabled FROM abilities WHERE channel_id = ?", (channel_id,))
        return {model: enabled for model, enabled in rows}

    def channel_names(self) -> list[str]:
        return [r[0] for r in self.query("SELECT name FROM channels ORDER BY id")]


@pytest.fixture
def gateway_db(tmp_path: Path) -> GatewayDatabase:
    path = tmp_path / "one-api.db"
    conn = sqlite3.connect(path)
    try:
        conn.executescript(GATEWAY_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return GatewayDatabase(path)


@pytest_asyncio.fixture
async def engine(gateway_db: GatewayDatabase):
    eng = create_async_engine(gateway_db.url)
    try:
        yield eng
    finally:
        await eng.dispose()
