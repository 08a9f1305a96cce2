"""
Tracking component - Lifecycle event ingestion.

Turns storefront lifecycle events into counter increments after bot,
identity and dedup gating.

Invariants:
- I1: Bot and system traffic never increments a counter
- I2: A view counts once per visitor per entity per dedup window
- I3: A checkout counts once per visitor per dedup window
- I4: Order lines are processed independently
- I5: Tracking failures never surface to the end user
"""

from __future__ import annotations

from src.core.services.tracking_identity import RequestContext

from ._impl import TrackingDispatcher
from .models import TrackingError, TrackOutput, TrafficEvent


def run_track(
    event: TrafficEvent,
    *,
    dispatcher: TrackingDispatcher,
    ctx: RequestContext | None = None,
) -> TrackOutput:
    """
    Dispatch one lifecycle event.

    Args:
        event: Any traffic event variant.
        dispatcher: Configured tracking dispatcher.
        ctx: Request context; absent context is treated as a bare request.

    Returns:
        TrackOutput describing whether the event was accepted, the
        increments applied and any non-fatal errors.
    """
    return dispatcher.handle(event, ctx)


def run_track_disabled(reason: str) -> TrackOutput:
    """Output returned by adapters when tracking was never wired."""
    return TrackOutput(
        accepted=False,
        errors=[TrackingError(code="config_missing", message=reason)],
        success=False,
    )
