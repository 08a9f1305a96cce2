"""
Tracking API Routes.

Storefront-facing endpoints that turn lifecycle hooks into tracking
events. Tracking outcomes never change the response status: the
storefront always gets ``{"ok": true, "accepted": ...}``.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

from src.api.deps import get_dispatcher, get_request_context, get_tracker
from src.app_shell.tracker import InsightsTracker
from src.components.metrics import (
    LIFETIME,
    GetCounterInput,
    GetRangeInput,
    run_get_counter,
    run_get_range,
)
from src.components.tracking import (
    AddedToCart,
    CartLine,
    CartUpdated,
    CheckoutOpened,
    OrderCompleted,
    OrderLine,
    ProductViewed,
    TrackingDispatcher,
    TrackOutput,
    TrafficEvent,
    run_track,
)
from src.core.services.tracking_identity import RequestContext

logger = logging.getLogger(__name__)

router = APIRouter()

# "|" separates the parts of a stored counter key
ENTITY_ID_PATTERN = r"^[^|]+$"


# --- Request/Response Models ---


class CartItemRequest(BaseModel):
    """One cart line."""

    product_id: str = Field(
        ..., min_length=1, pattern=ENTITY_ID_PATTERN, description="Catalog entity id"
    )
    quantity: int = Field(1, ge=1, description="Units in the cart")
    price: Decimal = Field(Decimal("0"), ge=0, description="Unit price")

    def to_line(self) -> CartLine:
        return CartLine(entity_id=self.product_id, quantity=self.quantity, price=self.price)


class ProductViewRequest(BaseModel):
    """Product detail page rendered."""

    product_id: str = Field(
        ..., min_length=1, pattern=ENTITY_ID_PATTERN, description="Catalog entity id"
    )
    referrer: str | None = Field(None, description="Referrer URL, defaults to the Referer header")


class CheckoutRequest(BaseModel):
    """Checkout page rendered."""

    items: list[CartItemRequest] = Field(default_factory=list, description="Cart contents")


class AddToCartRequest(BaseModel):
    """Item added to the cart."""

    product_id: str = Field(
        ..., min_length=1, pattern=ENTITY_ID_PATTERN, description="Catalog entity id"
    )
    quantity: int = Field(1, ge=1, description="Units added")
    variation: dict[str, str] = Field(default_factory=dict, description="Variation attributes")
    cart_item_key: str | None = Field(None, description="Storefront cart line key")


class OrderLineRequest(BaseModel):
    """One line of a paid order."""

    product_id: str = Field(..., min_length=1, description="Catalog entity id")
    quantity: int = Field(1, ge=0, description="Units ordered")
    line_total: Decimal = Field(..., ge=0, description="Line total price")


class OrderCompletedRequest(BaseModel):
    """Order reached a paid state."""

    order_id: str = Field(..., min_length=1, description="Order identifier")
    line_items: list[OrderLineRequest] = Field(default_factory=list, description="Order lines")


class CartRequest(BaseModel):
    """Cart contents changed."""

    items: list[CartItemRequest] = Field(default_factory=list, description="Cart contents")
    total: Decimal = Field(Decimal("0"), ge=0, description="Cart total")


class TrackResponse(BaseModel):
    """Tracking acknowledgement."""

    ok: bool = True
    accepted: bool


class NoticesResponse(BaseModel):
    """Admin-visible notices."""

    enabled: bool
    notices: list[str]


class CounterResponse(BaseModel):
    """Counter read."""

    entity_id: str
    metric: str
    bucket: str
    value: str


class RangeResponse(BaseModel):
    """Daily range read."""

    entity_id: str
    metric: str
    start: date
    end: date
    total: str
    by_day: dict[str, str]
    cached: bool


# --- Helpers ---


def _respond(output: TrackOutput, response: Response) -> TrackResponse:
    """Apply the visitor cookie and acknowledge."""
    cookie = output.cookie
    if cookie is not None:
        response.set_cookie(
            key=cookie.name,
            value=cookie.value,
            max_age=cookie.max_age_seconds,
            path=cookie.path,
            secure=cookie.secure,
            httponly=cookie.http_only,
            samesite=cookie.same_site,  # type: ignore[arg-type]
        )
    if output.errors:
        logger.warning(
            "Tracking completed with errors: %s",
            ", ".join(f"{e.code}:{e.entity_id}" for e in output.errors),
        )
    return TrackResponse(accepted=output.accepted)


def _track(
    event: TrafficEvent,
    ctx: RequestContext | None,
    dispatcher: TrackingDispatcher,
    response: Response,
) -> TrackResponse:
    output = run_track(event, dispatcher=dispatcher, ctx=ctx)
    if output.skip_reason is not None:
        logger.debug("%s skipped: %s", type(event).__name__, output.skip_reason.value)
    return _respond(output, response)


# --- Routes ---


@router.post("/product-view", response_model=TrackResponse)
def track_product_view(
    body: ProductViewRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    dispatcher: TrackingDispatcher = Depends(get_dispatcher),
) -> TrackResponse:
    """Count a product view."""
    event = ProductViewed(entity_id=body.product_id, referrer=body.referrer)
    return _track(event, ctx, dispatcher, response)


@router.post("/checkout", response_model=TrackResponse)
def track_checkout(
    body: CheckoutRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    dispatcher: TrackingDispatcher = Depends(get_dispatcher),
) -> TrackResponse:
    """Count a checkout for every cart line."""
    event = CheckoutOpened(cart_items=tuple(i.to_line() for i in body.items))
    return _track(event, ctx, dispatcher, response)


@router.post("/add-to-cart", response_model=TrackResponse)
def track_add_to_cart(
    body: AddToCartRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    dispatcher: TrackingDispatcher = Depends(get_dispatcher),
) -> TrackResponse:
    """Count an add-to-cart."""
    event = AddedToCart(
        entity_id=body.product_id,
        quantity=body.quantity,
        variation=body.variation,
        cart_item_key=body.cart_item_key,
    )
    return _track(event, ctx, dispatcher, response)


@router.post("/order-completed", response_model=TrackResponse)
def track_order_completed(
    body: OrderCompletedRequest,
    response: Response,
    dispatcher: TrackingDispatcher = Depends(get_dispatcher),
) -> TrackResponse:
    """
    Accumulate donations and revenue for a paid order.

    Server-side event: no request gating applies.
    """
    event = OrderCompleted(
        order_id=body.order_id,
        line_items=tuple(
            OrderLine(entity_id=li.product_id, quantity=li.quantity, line_total=li.line_total)
            for li in body.line_items
        ),
    )
    return _track(event, None, dispatcher, response)


@router.post("/cart", response_model=TrackResponse)
def track_cart(
    body: CartRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    dispatcher: TrackingDispatcher = Depends(get_dispatcher),
) -> TrackResponse:
    """Replace the visitor's cart snapshot."""
    event = CartUpdated(items=tuple(i.to_line() for i in body.items), total=body.total)
    return _track(event, ctx, dispatcher, response)


@router.get("/notices", response_model=NoticesResponse)
def get_notices(tracker: InsightsTracker = Depends(get_tracker)) -> NoticesResponse:
    """Admin notices (e.g. tracking disabled for a missing dependency)."""
    return NoticesResponse(enabled=tracker.runtime.enabled, notices=list(tracker.notices))


@router.post("/cache/clear")
def clear_cache(
    ctx: RequestContext = Depends(get_request_context),
    tracker: InsightsTracker = Depends(get_tracker),
) -> dict[str, int]:
    """Drop all ephemeral tracker records (admin only)."""
    if not ctx.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return {"cleared": tracker.clear_all_cache()}


@router.get("/metrics/{entity_id}/{metric_name}", response_model=CounterResponse)
def get_counter(
    entity_id: str,
    metric_name: str,
    day: date | None = Query(None, description="Daily bucket; lifetime when omitted"),
    tracker: InsightsTracker = Depends(get_tracker),
) -> CounterResponse:
    """Read one counter."""
    out = run_get_counter(
        GetCounterInput(entity_id=entity_id, metric_name=metric_name, bucket=day or LIFETIME),
        store=tracker.metrics,
    )
    if not out.success or out.key is None:
        raise HTTPException(status_code=400, detail=[e.message for e in out.errors])
    return CounterResponse(
        entity_id=entity_id,
        metric=metric_name,
        bucket=out.key.bucket_label,
        value=str(out.value),
    )


@router.get("/metrics/{entity_id}/{metric_name}/range", response_model=RangeResponse)
def get_counter_range(
    entity_id: str,
    metric_name: str,
    start: date = Query(..., description="First day, inclusive"),
    end: date = Query(..., description="Last day, inclusive"),
    tracker: InsightsTracker = Depends(get_tracker),
) -> RangeResponse:
    """Sum daily buckets over a date range."""
    out = run_get_range(
        GetRangeInput(entity_id=entity_id, metric_name=metric_name, start=start, end=end),
        store=tracker.metrics,
        query=tracker.query,
    )
    if not out.success:
        raise HTTPException(status_code=400, detail=[e.message for e in out.errors])
    return RangeResponse(
        entity_id=entity_id,
        metric=metric_name,
        start=start,
        end=end,
        total=str(out.total),
        by_day={d.isoformat(): str(v) for d, v in out.by_day},
        cached=out.cached,
    )
