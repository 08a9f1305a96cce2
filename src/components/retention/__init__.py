"""
Retention component - Bounded cleanup of aged metric buckets.
"""

from ._impl import RetentionService, compute_cutoff, create_retention_service
from .component import run_cleanup
from .models import (
    CleanupResult,
    CleanupState,
    PageFailure,
    RetentionConfig,
    RunCleanupInput,
)

__all__ = [
    "run_cleanup",
    "CleanupResult",
    "CleanupState",
    "PageFailure",
    "RetentionConfig",
    "RunCleanupInput",
    "RetentionService",
    "compute_cutoff",
    "create_retention_service",
]
