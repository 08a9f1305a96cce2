"""
Retention component - Daily bucket and ephemeral record cleanup.

Invariants:
- I1: Lifetime counters are never deleted
- I2: Buckets dated on or after the cutoff are never deleted
- I3: A run deletes at most ``max_deletions`` buckets
- I4: A failing page does not abort the run
"""

from __future__ import annotations

from ._impl import RetentionService
from .models import CleanupResult, RunCleanupInput


def run_cleanup(inp: RunCleanupInput, *, service: RetentionService) -> CleanupResult:
    """
    Run one cleanup pass.

    Args:
        inp: Optional override of the current time.
        service: Configured retention service.

    Returns:
        CleanupResult with deletion and purge counts.
    """
    return service.run_cleanup(inp.now_utc)
