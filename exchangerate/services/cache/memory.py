from __future__ import annotations

"""Process-local cache backend.

Payloads, expiry times and entry metadata sit in parallel dicts guarded by a
single reader/writer lock. Expired entries are detected at read time and stay
in memory until overwritten, invalidated or cleared.
"""
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, Optional, Tuple

from .base import CacheBackend, CacheBackendError, Clock, StoredRow, utc_now

DEFAULT_LOCK_TIMEOUT = 5.0


class ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self, timeout: Optional[float] = None) -> Iterator[None]:
        with self._cond:
            ok = self._cond.wait_for(
                lambda: not self._writer and self._writers_waiting == 0, timeout
            )
            if not ok:
                raise CacheBackendError("timed out waiting for cache read lock")
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self, timeout: Optional[float] = None) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                ok = self._cond.wait_for(
                    lambda: not self._writer and self._readers == 0, timeout
                )
            finally:
                self._writers_waiting -= 1
            if not ok:
                # readers held back by this writer may proceed
                self._cond.notify_all()
                raise CacheBackendError("timed out waiting for cache write lock")
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class InMemoryCache(CacheBackend):
    """Default backend; fast, no external dependency, lost on process exit."""

    backend_id = "memory"

    def __init__(
        self, clock: Clock = utc_now, lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    ):
        super().__init__(clock)
        self._lock = ReadWriteLock()
        self._lock_timeout = lock_timeout
        self._payloads: Dict[str, str] = {}
        self._expiry: Dict[str, datetime] = {}
        # key -> (cached_at, response_type)
        self._meta: Dict[str, Tuple[datetime, str]] = {}

    def _load(self, key: str) -> Optional[StoredRow]:
        with self._lock.read(self._lock_timeout):
            payload = self._payloads.get(key)
            expires_at = self._expiry.get(key)
            meta = self._meta.get(key)
        if payload is None or expires_at is None or meta is None:
            return None
        cached_at, response_type = meta
        return StoredRow(
            payload=payload,
            cached_at=cached_at,
            expires_at=expires_at,
            response_type=response_type,
        )

    def _store(self, key: str, row: StoredRow) -> None:
        with self._lock.write(self._lock_timeout):
            self._payloads[key] = row.payload
            self._expiry[key] = row.expires_at
            self._meta[key] = (row.cached_at, row.response_type)

    def invalidate(self, key: str) -> None:
        with self._lock.write(self._lock_timeout):
            self._payloads.pop(key, None)
            self._expiry.pop(key, None)
            self._meta.pop(key, None)

    def clear_all(self) -> None:
        with self._lock.write(self._lock_timeout):
            self._payloads.clear()
            self._expiry.clear()
            self._meta.clear()
