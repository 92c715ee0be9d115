from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

from .models import AdminState
from .settings import settings


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (Docker creates one when a bind-mounted
    file does not exist yet) the DB file is placed inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "tsr.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS admin (
              id INTEGER PRIMARY KEY CHECK (id = 1),
              host TEXT,
              certificate_type TEXT NOT NULL DEFAULT 'none',
              lets_encrypt_email TEXT,
              enable_docker_cleanup INTEGER NOT NULL DEFAULT 0,
              updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              service_name TEXT,
              version TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def log_event(level: str, message: str, service_name: str | None = None, version: str | None = None) -> None:
    init_db()
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, service_name, version, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level.upper(), service_name, version, message),
        )


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    init_db()
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]


def get_admin() -> AdminState:
    init_db()
    with connect() as conn:
        row = conn.execute("SELECT * FROM admin WHERE id=1").fetchone()
    if not row:
        return AdminState()
    return AdminState(
        host=row["host"],
        certificate_type=row["certificate_type"],
        lets_encrypt_email=row["lets_encrypt_email"],
        enable_docker_cleanup=bool(row["enable_docker_cleanup"]),
    )


_UNSET: Any = object()


def update_admin(
    host: str | None = _UNSET,
    certificate_type: str = _UNSET,
    lets_encrypt_email: str | None = _UNSET,
    enable_docker_cleanup: bool = _UNSET,
) -> AdminState:
    """Update only the fields passed; returns the stored record."""
    cur = get_admin()
    new = AdminState(
        host=cur.host if host is _UNSET else host,
        certificate_type=cur.certificate_type if certificate_type is _UNSET else certificate_type,
        lets_encrypt_email=cur.lets_encrypt_email if lets_encrypt_email is _UNSET else lets_encrypt_email,
        enable_docker_cleanup=cur.enable_docker_cleanup if enable_docker_cleanup is _UNSET else enable_docker_cleanup,
    )
    with connect() as conn:
        conn.execute(
            """
            INSERT INTO admin (id, host, certificate_type, lets_encrypt_email, enable_docker_cleanup, updated_at)
            VALUES (1, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              host=excluded.host,
              certificate_type=excluded.certificate_type,
              lets_encrypt_email=excluded.lets_encrypt_email,
              enable_docker_cleanup=excluded.enable_docker_cleanup,
              updated_at=excluded.updated_at
            """,
            (new.host, new.certificate_type, new.lets_encrypt_email, int(new.enable_docker_cleanup), utc_now()),
        )
    return new
