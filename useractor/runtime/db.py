from __future__ import annotations

"""
runtime/db.py

Actor substrate: versioned instance state + lookup-key index in SQLite.

Contract:
- Tables are created non-destructively (CREATE TABLE IF NOT EXISTS).
- One row per instance; `version` starts at 0 and only moves through commit_state().
- Lookup keys are unique per (class_id, key_name, key_value). The UNIQUE index is the
  single serialization point for "one instance per email".
- Only create_instance() and commit_state() write instance data; each is all-or-nothing.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


class DuplicateInstance(Exception):
    pass


class DuplicateLookupKey(Exception):
    def __init__(self, key_name: str) -> None:
        super().__init__(f"Lookup key '{key_name}' is already taken")
        self.key_name = key_name


class StaleVersion(Exception):
    def __init__(self, current: Optional[int]) -> None:
        super().__init__(f"State version is stale (current={current})")
        self.current = current


# ----------------------------
# Time helpers
# ----------------------------

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ----------------------------
# Connection + schema
# ----------------------------

def connect(db_path: str) -> sqlite3.Connection:
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.execute("PRAGMA foreign_keys = ON")
    conn.row_factory = sqlite3.Row
    ensure_schema(conn)
    return conn


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create actor tables if missing (non-destructive)."""
    cur = conn.cursor()

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS instances (
            class_id TEXT NOT NULL,
            instance_id TEXT NOT NULL,
            state_json TEXT NOT NULL,
            version INTEGER NOT NULL DEFAULT 0 CHECK (version >= 0),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (class_id, instance_id)
        )
        """
    )

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS lookup_keys (
            class_id TEXT NOT NULL,
            key_name TEXT NOT NULL,
            key_value TEXT NOT NULL,
            instance_id TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY (class_id, instance_id) REFERENCES instances (class_id, instance_id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_lookup_keys_class_name_value
        ON lookup_keys (class_id, key_name, key_value)
        """
    )
    cur.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_lookup_keys_instance_name
        ON lookup_keys (class_id, instance_id, key_name)
        """
    )

    conn.commit()


# ----------------------------
# Reads
# ----------------------------

def load_instance(conn: sqlite3.Connection, class_id: str, instance_id: str) -> Optional[Tuple[Dict[str, Any], int]]:
    row = conn.execute(
        """
        SELECT state_json, version
        FROM instances
        WHERE class_id = ? AND instance_id = ?
        LIMIT 1
        """,
        (class_id, instance_id),
    ).fetchone()
    if not row:
        return None
    return json.loads(row["state_json"]), int(row["version"])


def current_version(conn: sqlite3.Connection, class_id: str, instance_id: str) -> Optional[int]:
    row = conn.execute(
        "SELECT version FROM instances WHERE class_id = ? AND instance_id = ? LIMIT 1",
        (class_id, instance_id),
    ).fetchone()
    return int(row["version"]) if row else None


def resolve_lookup_key(conn: sqlite3.Connection, class_id: str, key_name: str, key_value: str) -> Optional[str]:
    row = conn.execute(
        """
        SELECT instance_id
        FROM lookup_keys
        WHERE class_id = ? AND key_name = ? AND key_value = ?
        LIMIT 1
        """,
        (class_id, key_name, key_value),
    ).fetchone()
    return str(row["instance_id"]) if row else None


# ----------------------------
# Writes
# ----------------------------

def _put_lookup_keys(
    conn: sqlite3.Connection,
    class_id: str,
    instance_id: str,
    lookup_keys: Dict[str, Optional[str]],
    now: str,
) -> None:
    for key_name, key_value in lookup_keys.items():
        if key_value is None:
            conn.execute(
                "DELETE FROM lookup_keys WHERE class_id = ? AND instance_id = ? AND key_name = ?",
                (class_id, instance_id, key_name),
            )
            continue
        owner = resolve_lookup_key(conn, class_id, key_name, key_value)
        if owner is not None and owner != instance_id:
            raise DuplicateLookupKey(key_name)
        conn.execute(
            "DELETE FROM lookup_keys WHERE class_id = ? AND instance_id = ? AND key_name = ?",
            (class_id, instance_id, key_name),
        )
        try:
            conn.execute(
                """
                INSERT INTO lookup_keys (class_id, key_name, key_value, instance_id, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (class_id, key_name, key_value, instance_id, now),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateLookupKey(key_name) from exc


def create_instance(
    conn: sqlite3.Connection,
    *,
    class_id: str,
    instance_id: str,
    state: Dict[str, Any],
    lookup_keys: Optional[Dict[str, str]] = None,
) -> int:
    """
    Insert a new instance at version 0 together with its lookup keys, atomically.
    """
    now = utc_now_iso()
    with conn:
        try:
            conn.execute(
                """
                INSERT INTO instances (class_id, instance_id, state_json, version, created_at, updated_at)
                VALUES (?, ?, ?, 0, ?, ?)
                """,
                (class_id, instance_id, json.dumps(state, ensure_ascii=False), now, now),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateInstance(instance_id) from exc
        _put_lookup_keys(conn, class_id, instance_id, lookup_keys or {}, now)
    return 0


def commit_state(
    conn: sqlite3.Connection,
    *,
    class_id: str,
    instance_id: str,
    state: Dict[str, Any],
    expected_version: int,
    lookup_keys: Optional[Dict[str, Optional[str]]] = None,
) -> int:
    """
    Compare-and-swap write: replaces the whole state iff the stored version still equals
    `expected_version`, and bumps it by exactly 1. Returns the new version.
    """
    now = utc_now_iso()
    with conn:
        cur = conn.execute(
            """
            UPDATE instances
            SET state_json = ?, version = version + 1, updated_at = ?
            WHERE class_id = ? AND instance_id = ? AND version = ?
            """,
            (json.dumps(state, ensure_ascii=False), now, class_id, instance_id, int(expected_version)),
        )
        if not cur.rowcount:
            raise StaleVersion(current_version(conn, class_id, instance_id))
        _put_lookup_keys(conn, class_id, instance_id, lookup_keys or {}, now)
    return int(expected_version) + 1

