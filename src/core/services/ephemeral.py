"""
Ephemeral key-value records with explicit expiry.

Dedup markers, cart snapshots and cached aggregate results all live
here as ``(value, expires_at)`` pairs.

Key behaviors:
- Every read compares ``expires_at`` with the caller's clock
- Expired-but-present records read as absent
- A record whose expiry companion is missing is an orphan; only the
  cleanup job deletes orphans
- Physical removal is the cleanup job's concern, not the reader's
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

NAMESPACE = "insights:"
DEDUPE_PREFIX = f"{NAMESPACE}dedupe:"
CART_PREFIX = f"{NAMESPACE}cart:"
CACHE_PREFIX = f"{NAMESPACE}cache:"


# --- Record ---


@dataclass(frozen=True)
class EphemeralRecord:
    """Stored value with its expiry."""

    key: str
    value: Any
    expires_at: datetime | None

    def is_live(self, now: datetime) -> bool:
        """Orphans (no expiry) and expired records are not live."""
        return self.expires_at is not None and now < self.expires_at


# --- Port ---


class EphemeralStorePort(Protocol):
    """TTL key-value store interface."""

    def get(self, key: str, now: datetime) -> Any | None:
        """Return the value if the record is live, else None."""
        ...

    def put(self, key: str, value: Any, ttl_seconds: int, now: datetime) -> None:
        """Insert or replace a record."""
        ...

    def delete(self, key: str) -> bool:
        """Delete a record. Returns True if something was removed."""
        ...

    def purge_expired(self, now: datetime, prefix: str = NAMESPACE, limit: int = 1000) -> int:
        """Physically remove expired records under prefix."""
        ...

    def purge_orphans(self, prefix: str = NAMESPACE, limit: int = 1000) -> int:
        """Remove records that have no expiry companion."""
        ...

    def clear_prefix(self, prefix: str = NAMESPACE) -> int:
        """Remove every record under prefix."""
        ...


# --- In-Memory Store ---


class InMemoryEphemeralStore:
    """In-memory ephemeral store for testing/dev."""

    def __init__(self) -> None:
        self._records: dict[str, EphemeralRecord] = {}
        self._lock = threading.Lock()

    def get(self, key: str, now: datetime) -> Any | None:
        """Return value if live. Expired entries are left for cleanup."""
        record = self._records.get(key)
        if record is None or not record.is_live(now):
            return None
        return record.value

    def put(self, key: str, value: Any, ttl_seconds: int, now: datetime) -> None:
        """Insert or replace a record."""
        expires_at = now + timedelta(seconds=ttl_seconds)
        with self._lock:
            self._records[key] = EphemeralRecord(key=key, value=value, expires_at=expires_at)

    def put_orphan(self, key: str, value: Any) -> None:
        """Insert a record without expiry (simulates a lost companion)."""
        with self._lock:
            self._records[key] = EphemeralRecord(key=key, value=value, expires_at=None)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def purge_expired(self, now: datetime, prefix: str = NAMESPACE, limit: int = 1000) -> int:
        with self._lock:
            expired = [
                k
                for k, r in self._records.items()
                if k.startswith(prefix) and r.expires_at is not None and now >= r.expires_at
            ][:limit]
            for key in expired:
                del self._records[key]
        return len(expired)

    def purge_orphans(self, prefix: str = NAMESPACE, limit: int = 1000) -> int:
        with self._lock:
            orphans = [
                k for k, r in self._records.items() if k.startswith(prefix) and r.expires_at is None
            ][:limit]
            for key in orphans:
                del self._records[key]
        return len(orphans)

    def clear_prefix(self, prefix: str = NAMESPACE) -> int:
        with self._lock:
            keys = [k for k in self._records if k.startswith(prefix)]
            for key in keys:
                del self._records[key]
        return len(keys)

    def raw(self, key: str) -> EphemeralRecord | None:
        """Return the stored record regardless of expiry (for testing)."""
        return self._records.get(key)

    def __len__(self) -> int:
        return len(self._records)
