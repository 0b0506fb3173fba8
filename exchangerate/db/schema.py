"""SQLite schema for the durable response cache.

Tables:
  - exchange_rate_cache: one row per cache key holding the serialized payload,
    its cached_at / expires_at RFC 3339 timestamps and a response_type tag
    ('typed' for latest-rates tables, 'raw' for opaque JSON payloads).
"""

from __future__ import annotations
import sqlite3
from typing import Sequence

CACHE_SCHEMA_VERSION = 1

CACHE_TABLE = "exchange_rate_cache"

EXCHANGE_RATE_CACHE_DDL = f"""
CREATE TABLE IF NOT EXISTS {CACHE_TABLE} (
    key TEXT PRIMARY KEY,
    response TEXT NOT NULL,
    cached_at TEXT NOT NULL, -- RFC 3339 UTC
    expires_at TEXT NOT NULL, -- RFC 3339 UTC
    response_type TEXT NOT NULL CHECK (response_type IN ('typed','raw'))
);
"""

DDL_ORDER: Sequence[str] = (EXCHANGE_RATE_CACHE_DDL,)


def init_cache_db(conn: sqlite3.Connection) -> int:
    """Create cache tables idempotently and return the schema version.

    A database written by a newer schema is rejected rather than silently
    reinterpreted.
    """
    cur = conn.cursor()
    cur.execute("PRAGMA user_version")
    version = int(cur.fetchone()[0])
    if version > CACHE_SCHEMA_VERSION:
        raise sqlite3.DatabaseError(
            f"cache schema version {version} is newer than supported {CACHE_SCHEMA_VERSION}"
        )
    for ddl in DDL_ORDER:
        cur.execute(ddl)
    if version < CACHE_SCHEMA_VERSION:
        cur.execute(f"PRAGMA user_version = {CACHE_SCHEMA_VERSION}")
    conn.commit()
    return CACHE_SCHEMA_VERSION
