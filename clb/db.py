from __future__ import annotations

import os
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from .settings import settings


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    A bind-mounted path that did not exist on the host shows up as a
    directory inside the container; in that case the DB file goes inside it.
    """
    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "clb.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS services (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              name TEXT NOT NULL UNIQUE,
              created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS instances (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              service_id INTEGER NOT NULL,
              instance_id TEXT NOT NULL,
              host TEXT NOT NULL,
              port INTEGER NOT NULL,
              label TEXT NOT NULL,
              weight INTEGER NOT NULL DEFAULT 1,
              lease_duration_s INTEGER NOT NULL,
              last_renewal REAL NOT NULL, -- epoch seconds
              created_at TEXT NOT NULL,
              UNIQUE(service_id, instance_id),
              FOREIGN KEY(service_id) REFERENCES services(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              service_name TEXT,
              instance_id TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_instances_service_id ON instances(service_id);
            """
        )


def log_event(level: str, message: str, service_name: str | None = None, instance_id: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, service_name, instance_id, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level.upper(), service_name, instance_id, message),
        )


@dataclass(frozen=True)
class ServiceRow:
    id: int
    name: str
    created_at: str


@dataclass(frozen=True)
class InstanceRow:
    id: int
    service_id: int
    instance_id: str
    host: str
    port: int
    label: str
    weight: int
    lease_duration_s: int
    last_renewal: float
    created_at: str

    def expired(self, now: float) -> bool:
        return now - self.last_renewal > self.lease_duration_s


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


def get_or_create_service(name: str) -> ServiceRow:
    with connect() as conn:
        cur = conn.execute("SELECT * FROM services WHERE name=?", (name,))
        row = cur.fetchone()
        if row:
            return ServiceRow(**dict(row))
        conn.execute("INSERT INTO services (name, created_at) VALUES (?, ?)", (name, utc_now()))
        cur = conn.execute("SELECT * FROM services WHERE name=?", (name,))
        return ServiceRow(**dict(cur.fetchone()))


def register_instance(
    service_name: str,
    instance_id: str,
    host: str,
    port: int,
    label: str,
    weight: int,
    lease_duration_s: int,
    now: float | None = None,
) -> InstanceRow:
    """Insert or refresh an instance; registering again also renews its lease."""
    svc = get_or_create_service(service_name)
    now = time.time() if now is None else now
    with connect() as conn:
        conn.execute(
            """
            INSERT INTO instances (service_id, instance_id, host, port, label, weight, lease_duration_s, last_renewal, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(service_id, instance_id) DO UPDATE SET
              host=excluded.host,
              port=excluded.port,
              label=excluded.label,
              weight=excluded.weight,
              lease_duration_s=excluded.lease_duration_s,
              last_renewal=excluded.last_renewal
            """,
            (svc.id, instance_id, host, port, label, weight, lease_duration_s, now, utc_now()),
        )
        cur = conn.execute("SELECT * FROM instances WHERE service_id=? AND instance_id=?", (svc.id, instance_id))
        return InstanceRow(**dict(cur.fetchone()))


def renew_lease(service_name: str, instance_id: str, now: float | None = None) -> bool:
    now = time.time() if now is None else now
    with connect() as conn:
        cur = conn.execute(
            """
            UPDATE instances SET last_renewal=?
            WHERE instance_id=? AND service_id=(SELECT id FROM services WHERE name=?)
            """,
            (now, instance_id, service_name),
        )
        return cur.rowcount > 0


def deregister_instance(service_name: str, instance_id: str) -> bool:
    with connect() as conn:
        cur = conn.execute(
            """
            DELETE FROM instances
            WHERE instance_id=? AND service_id=(SELECT id FROM services WHERE name=?)
            """,
            (instance_id, service_name),
        )
        return cur.rowcount > 0


def list_services() -> list[ServiceRow]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM services ORDER BY name").fetchall()
        return _rows_to_dataclass(rows, ServiceRow)


def list_instances(service_name: str | None = None) -> list[InstanceRow]:
    with connect() as conn:
        if service_name:
            cur = conn.execute(
                """
                SELECT i.* FROM instances i
                JOIN services s ON s.id = i.service_id
                WHERE s.name=?
                ORDER BY i.id
                """,
                (service_name,),
            )
        else:
            cur = conn.execute("SELECT * FROM instances ORDER BY id")
        return _rows_to_dataclass(cur.fetchall(), InstanceRow)


def list_live_instances(service_name: str, now: float | None = None) -> list[InstanceRow]:
    now = time.time() if now is None else now
    return [i for i in list_instances(service_name) if not i.expired(now)]


def evict_expired(now: float | None = None) -> int:
    """Delete instances whose lease ran out. Returns how many were evicted."""
    now = time.time() if now is None else now
    names = {s.id: s.name for s in list_services()}
    evicted = 0
    for inst in list_instances():
        if not inst.expired(now):
            continue
        with connect() as conn:
            conn.execute("DELETE FROM instances WHERE id=?", (inst.id,))
        evicted += 1
        log_event(
            "WARN",
            f"Lease expired after {inst.lease_duration_s}s without renewal; evicted",
            service_name=names.get(inst.service_id),
            instance_id=inst.instance_id,
        )
    return evicted


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
