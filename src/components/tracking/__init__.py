"""
Tracking component - Storefront lifecycle event ingestion.
"""

from ._impl import (
    DefaultTimePort,
    TrackingConfig,
    TrackingDispatcher,
    TrackingRuntime,
    create_tracking_dispatcher,
)
from .component import run_track, run_track_disabled
from .models import (
    AddedToCart,
    CartLine,
    CartSnapshot,
    CartUpdated,
    CheckoutOpened,
    Increment,
    OrderCompleted,
    OrderLine,
    ProductViewed,
    SkipReason,
    TrackingError,
    TrackOutput,
    TrafficEvent,
)
from .ports import CommercePort, NotifierPort, TimePort

__all__ = [
    # Entry points
    "run_track",
    "run_track_disabled",
    # Events
    "AddedToCart",
    "CartUpdated",
    "CheckoutOpened",
    "OrderCompleted",
    "ProductViewed",
    "TrafficEvent",
    # Models
    "CartLine",
    "CartSnapshot",
    "Increment",
    "OrderLine",
    "SkipReason",
    "TrackOutput",
    "TrackingError",
    # Implementation
    "DefaultTimePort",
    "TrackingConfig",
    "TrackingDispatcher",
    "TrackingRuntime",
    "create_tracking_dispatcher",
    # Ports
    "CommercePort",
    "NotifierPort",
    "TimePort",
]
