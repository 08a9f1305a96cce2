"""
Tracking component input/output models.

Lifecycle events are transient: only their effect on counters and the
ephemeral store persists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from src.components.metrics import MetricKey, MetricValue
from src.core.services.tracking_identity import VisitorCookie, VisitorIdentity

# --- Line Items ---


@dataclass(frozen=True)
class CartLine:
    """One line of a storefront cart."""

    entity_id: str
    quantity: int = 1
    price: Decimal = Decimal("0")


@dataclass(frozen=True)
class OrderLine:
    """One line of a completed order."""

    entity_id: str
    quantity: int
    line_total: Decimal


@dataclass(frozen=True)
class CartSnapshot:
    """Latest cart contents of a visitor."""

    visitor_id: str
    items: tuple[CartLine, ...]
    total: Decimal
    timestamp: datetime

    def to_record(self) -> dict[str, Any]:
        """JSON-safe form for the ephemeral store."""
        return {
            "visitor_id": self.visitor_id,
            "items": [
                {"product_id": i.entity_id, "quantity": i.quantity, "price": str(i.price)}
                for i in self.items
            ],
            "total": str(self.total),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> CartSnapshot:
        return cls(
            visitor_id=record["visitor_id"],
            items=tuple(
                CartLine(
                    entity_id=i["product_id"],
                    quantity=int(i["quantity"]),
                    price=Decimal(i["price"]),
                )
                for i in record["items"]
            ),
            total=Decimal(record["total"]),
            timestamp=datetime.fromisoformat(record["timestamp"]),
        )


# --- Events ---


@dataclass(frozen=True)
class ProductViewed:
    """A catalog detail page rendered."""

    entity_id: str
    visitor: VisitorIdentity | None = None
    referrer: str | None = None


@dataclass(frozen=True)
class CheckoutOpened:
    """The checkout page rendered."""

    cart_items: tuple[CartLine, ...]
    visitor: VisitorIdentity | None = None


@dataclass(frozen=True)
class AddedToCart:
    """An item was added to the cart."""

    entity_id: str
    quantity: int = 1
    visitor: VisitorIdentity | None = None
    variation: dict[str, str] = field(default_factory=dict)
    cart_item_key: str | None = None


@dataclass(frozen=True)
class OrderCompleted:
    """An order reached a paid state. Server-side and trusted."""

    order_id: str
    line_items: tuple[OrderLine, ...]


@dataclass(frozen=True)
class CartUpdated:
    """Cart contents changed."""

    items: tuple[CartLine, ...]
    total: Decimal
    visitor: VisitorIdentity | None = None


TrafficEvent = ProductViewed | CheckoutOpened | AddedToCart | OrderCompleted | CartUpdated


# --- Outcomes ---


class SkipReason(str, Enum):
    """Why an event did not qualify for tracking."""

    BOT = "bot"
    SYSTEM = "system"
    ADMIN = "admin"
    DUPLICATE = "duplicate"
    EMPTY_CART = "empty_cart"
    ORDER_RECEIVED_PAGE = "order_received_page"
    INVALID_EVENT = "invalid_event"
    DISABLED = "disabled"


@dataclass(frozen=True)
class TrackingError:
    """Tracking failure surfaced to the adapter, never to end users."""

    code: str  # partial_failure | storage_unavailable | config_missing | internal_error
    message: str
    entity_id: str | None = None


@dataclass(frozen=True)
class Increment:
    """A counter increment that was applied."""

    key: MetricKey
    delta: MetricValue
    value: MetricValue


@dataclass(frozen=True)
class TrackOutput:
    """Result of dispatching one event."""

    accepted: bool
    skip_reason: SkipReason | None = None
    visitor: VisitorIdentity | None = None
    cookie: VisitorCookie | None = None
    increments: tuple[Increment, ...] = ()
    errors: list[TrackingError] = field(default_factory=list)
    success: bool = True

    def value_of(self, key: MetricKey) -> MetricValue | None:
        """Value written for key during this dispatch, if any."""
        for inc in self.increments:
            if inc.key == key:
                return inc.value
        return None
