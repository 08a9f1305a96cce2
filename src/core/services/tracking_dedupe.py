"""
Dedup windows for tracking events.

Suppresses repeat increments for the same visitor, entity and event
kind inside a bounded window. Markers live in the ephemeral store.

Key behaviors:
- Product views: 30 minute window per (visitor, entity)
- Checkout opened: 1 hour window per visitor
- Keys hash the visitor id so raw identifiers never hit storage
- Best-effort: two simultaneous first events may both pass
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from src.core.services.ephemeral import (
    CART_PREFIX,
    DEDUPE_PREFIX,
    EphemeralStorePort,
    InMemoryEphemeralStore,
)

# --- Enums ---


class DedupeKind(str, Enum):
    """Event kinds that carry a dedup window."""

    VIEW = "view"
    CHECKOUT = "checkout"


# --- Configuration ---


@dataclass(frozen=True)
class DedupeConfig:
    """Dedup window lengths."""

    enabled: bool = True
    view_window_seconds: int = 30 * 60
    checkout_window_seconds: int = 60 * 60
    cart_snapshot_ttl_seconds: int = 7 * 24 * 60 * 60

    def window_for(self, kind: DedupeKind) -> int:
        if kind == DedupeKind.VIEW:
            return self.view_window_seconds
        return self.checkout_window_seconds


DEFAULT_CONFIG = DedupeConfig()


# --- Key Generation ---


def visitor_digest(visitor_id: str) -> str:
    """Stable digest of a visitor id."""
    return hashlib.md5(visitor_id.encode(), usedforsecurity=False).hexdigest()


def generate_dedupe_key(
    kind: DedupeKind,
    visitor_id: str,
    entity_id: str | None = None,
) -> str:
    """Build the ephemeral key for a dedup marker."""
    parts = [kind.value]
    if entity_id is not None:
        parts.append(str(entity_id))
    parts.append(visitor_digest(visitor_id))
    return DEDUPE_PREFIX + ":".join(parts)


def cart_snapshot_key(visitor_id: str) -> str:
    """Ephemeral key of a visitor's cart snapshot."""
    return CART_PREFIX + visitor_digest(visitor_id)


# --- Dedupe Service ---


class DedupeService:
    """Check and record dedup markers."""

    def __init__(
        self,
        store: EphemeralStorePort | None = None,
        config: DedupeConfig | None = None,
    ) -> None:
        self._store = store or InMemoryEphemeralStore()
        self._config = config or DEFAULT_CONFIG

    @property
    def config(self) -> DedupeConfig:
        return self._config

    def is_duplicate(
        self,
        kind: DedupeKind,
        visitor_id: str,
        now: datetime,
        entity_id: str | None = None,
    ) -> bool:
        """True if a live marker exists for this visitor/entity/kind."""
        if not self._config.enabled:
            return False
        key = generate_dedupe_key(kind, visitor_id, entity_id)
        return self._store.get(key, now) is not None

    def record(
        self,
        kind: DedupeKind,
        visitor_id: str,
        now: datetime,
        entity_id: str | None = None,
    ) -> str:
        """Create the marker and return its key."""
        key = generate_dedupe_key(kind, visitor_id, entity_id)
        if self._config.enabled:
            self._store.put(key, True, self._config.window_for(kind), now)
        return key


def create_dedupe_service(
    store: EphemeralStorePort | None = None,
    config: DedupeConfig | None = None,
) -> DedupeService:
    """Create a DedupeService."""
    return DedupeService(store=store, config=config)
