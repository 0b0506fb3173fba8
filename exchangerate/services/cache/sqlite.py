from __future__ import annotations

"""SQLite-backed cache that survives process restarts.

All access goes through one connection serialized by a mutex; SQLite is not
assumed to tolerate concurrent writers. Expired rows are reported as expired
and left in place until invalidated, cleared or overwritten.
"""
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from exchangerate.core.logging import get_logger
from exchangerate.db.schema import CACHE_TABLE, init_cache_db

from .base import (
    RESPONSE_TYPES,
    CacheBackend,
    CacheBackendError,
    CacheSerializationError,
    Clock,
    StoredRow,
    as_utc,
    utc_now,
)

logger = get_logger("cache")

DEFAULT_LOCK_TIMEOUT = 5.0


def _format_ts(dt: datetime) -> str:
    return as_utc(dt).isoformat()


def _parse_ts(value: str) -> datetime:
    try:
        return as_utc(datetime.fromisoformat(value))
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"invalid timestamp {value!r}") from e


class SqliteCache(CacheBackend):
    backend_id = "sqlite"

    def __init__(
        self,
        db_path: Path | str,
        clock: Clock = utc_now,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ):
        super().__init__(clock)
        self.db_path = db_path
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout
        self._conn: Optional[sqlite3.Connection] = None
        try:
            if str(db_path) != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
            init_cache_db(self._conn)
        except (sqlite3.Error, OSError) as e:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            raise CacheBackendError(f"Failed to open SQLite cache at {db_path}: {e}") from e
        logger.debug("opened sqlite cache at %s", db_path)

    # ------------------------------------------------------------------
    # Connection helpers
    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise CacheBackendError("timed out waiting for sqlite cache lock")
        try:
            if self._conn is None:
                raise CacheBackendError("sqlite cache is closed")
            try:
                yield self._conn
            except sqlite3.Error as e:
                try:
                    self._conn.rollback()
                except sqlite3.Error:
                    logger.warning("rollback failed after: %s", e)
                raise CacheBackendError(str(e)) from e
        finally:
            self._lock.release()

    # ------------------------------------------------------------------
    # Storage primitives
    def _load(self, key: str) -> Optional[StoredRow]:
        with self._connect() as conn:
            cur = conn.execute(
                f"SELECT response, cached_at, expires_at, response_type FROM {CACHE_TABLE} WHERE key = ?",
                (key,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        response, cached_at, expires_at, response_type = row
        if response_type not in RESPONSE_TYPES:
            raise CacheSerializationError(f"unknown response_type {response_type!r}")
        return StoredRow(
            payload=response,
            cached_at=_parse_ts(cached_at),
            expires_at=_parse_ts(expires_at),
            response_type=response_type,
        )

    def _store(self, key: str, row: StoredRow) -> None:
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO {CACHE_TABLE} (key, response, cached_at, expires_at, response_type)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    response = excluded.response,
                    cached_at = excluded.cached_at,
                    expires_at = excluded.expires_at,
                    response_type = excluded.response_type
                """,
                (
                    key,
                    row.payload,
                    _format_ts(row.cached_at),
                    _format_ts(row.expires_at),
                    row.response_type,
                ),
            )
            conn.commit()

    def invalidate(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute(f"DELETE FROM {CACHE_TABLE} WHERE key = ?", (key,))
            conn.commit()

    def clear_all(self) -> None:
        with self._connect() as conn:
            conn.execute(f"DELETE FROM {CACHE_TABLE}")
            conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
