"""
Retention component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class CleanupState(str, Enum):
    """Cleanup job state."""

    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class RetentionConfig:
    """Bounds for one cleanup run."""

    retention_days: int = 30
    page_size: int = 100
    keys_per_entity: int = 100
    max_deletions: int = 1000
    purge_ephemeral: bool = True


@dataclass(frozen=True)
class PageFailure:
    """A page of entities that could not be processed."""

    offset: int
    message: str


@dataclass(frozen=True)
class CleanupResult:
    """Outcome of one cleanup run."""

    started_at: datetime
    cutoff: date
    deleted_buckets: int = 0
    purged_expired: int = 0
    purged_orphans: int = 0
    pages_scanned: int = 0
    cap_reached: bool = False
    skipped: bool = False
    failures: list[PageFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class RunCleanupInput:
    """Request to run cleanup once."""

    now_utc: datetime | None = None
