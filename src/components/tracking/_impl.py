"""
TrackingDispatcher - lifecycle event ingestion.

Routes each storefront lifecycle event through the bot filter, the
visitor resolver and the dedup windows, then issues counter increments.

Key behaviors:
- Views: lifetime + daily ``views``, 30 min dedup, ``source:<tag>`` daily
- Checkout: lifetime + daily ``checkouts`` per cart line, 1 h dedup
- Add to cart: lifetime + daily ``add_to_cart``, no dedup
- Orders: lifetime + daily ``donations`` and ``revenue`` per line,
  no gating, one bad line never blocks the others
- Cart updates: replace the visitor's snapshot, 7 day TTL
- Never raises: failures come back as ``TrackOutput.errors``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from zoneinfo import ZoneInfo

from src.components.metrics import (
    ADD_TO_CART,
    CHECKOUTS,
    DONATIONS,
    REVENUE,
    VIEWS,
    MetricKey,
    MetricsStorePort,
    MetricValue,
    StorageUnavailableError,
    is_valid_entity_id,
)
from src.core.services.ephemeral import EphemeralStorePort
from src.core.services.notifications import (
    ENTITY_ADDED_TO_CART,
    ENTITY_VIEWED,
    ORDER_TRACKED,
)
from src.core.services.tracking_attrib import AttributionService, source_metric_name
from src.core.services.tracking_dedupe import (
    DedupeConfig,
    DedupeKind,
    DedupeService,
    cart_snapshot_key,
)
from src.core.services.tracking_filter import BotFilter
from src.core.services.tracking_identity import (
    RequestContext,
    VisitorCookie,
    VisitorIdentity,
    VisitorKind,
    VisitorResolver,
)

from .models import (
    AddedToCart,
    CartSnapshot,
    CartUpdated,
    CheckoutOpened,
    Increment,
    OrderCompleted,
    ProductViewed,
    SkipReason,
    TrackingError,
    TrackOutput,
    TrafficEvent,
)
from .ports import CommercePort, NotifierPort, TimePort

logger = logging.getLogger(__name__)


# --- Configuration ---


@dataclass(frozen=True)
class TrackingConfig:
    """Tracking dispatcher configuration."""

    enabled: bool = True
    site_url: str | None = None
    timezone: str = "UTC"
    dedupe: DedupeConfig = field(default_factory=DedupeConfig)


DEFAULT_CONFIG = TrackingConfig()


# --- Runtime State ---


class TrackingRuntime:
    """
    Process-wide tracking switch.

    Disabled when a required dependency (the commerce subsystem) is
    missing. The notice is recorded once and there is no automatic retry.
    """

    def __init__(self) -> None:
        self._disabled_reason: str | None = None
        self._notices: list[str] = []

    @property
    def enabled(self) -> bool:
        return self._disabled_reason is None

    @property
    def disabled_reason(self) -> str | None:
        return self._disabled_reason

    @property
    def notices(self) -> tuple[str, ...]:
        """Admin-visible notices."""
        return tuple(self._notices)

    def disable(self, reason: str) -> None:
        if self._disabled_reason is not None:
            return
        self._disabled_reason = reason
        self._notices.append(reason)
        logger.warning("Tracking disabled: %s", reason)

    def check_dependencies(self, commerce: CommercePort | None) -> bool:
        """Disable tracking when the commerce subsystem is absent."""
        available = False
        if commerce is not None:
            try:
                available = commerce.is_available()
            except Exception:
                logger.exception("Commerce availability probe failed")
        if not available:
            self.disable("Storefront Insights requires the commerce subsystem to be active.")
        return available


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)


# --- Dispatcher ---


class TrackingDispatcher:
    """
    Lifecycle event dispatcher.

    One method per event variant, plus ``handle`` over the union.
    """

    def __init__(
        self,
        store: MetricsStorePort,
        ephemeral: EphemeralStorePort,
        notifier: NotifierPort | None = None,
        time_port: TimePort | None = None,
        config: TrackingConfig | None = None,
        runtime: TrackingRuntime | None = None,
        bot_filter: BotFilter | None = None,
        resolver: VisitorResolver | None = None,
    ) -> None:
        self._store = store
        self._ephemeral = ephemeral
        self._notifier = notifier
        self._time = time_port or DefaultTimePort()
        self._config = config or DEFAULT_CONFIG
        self._runtime = runtime or TrackingRuntime()
        self._bot_filter = bot_filter or BotFilter()
        self._resolver = resolver or VisitorResolver()
        self._dedupe = DedupeService(store=ephemeral, config=self._config.dedupe)
        self._attribution = AttributionService(site_url=self._config.site_url)
        self._tz = ZoneInfo(self._config.timezone)

    @property
    def runtime(self) -> TrackingRuntime:
        return self._runtime

    def today(self) -> date:
        """Current calendar date in the store's timezone."""
        return self._time.now_utc().astimezone(self._tz).date()

    # --- Entry point ---

    def handle(self, event: TrafficEvent, ctx: RequestContext | None = None) -> TrackOutput:
        """Dispatch any event variant. Never raises."""
        try:
            if isinstance(event, ProductViewed):
                return self.track_product_viewed(event, ctx)
            if isinstance(event, CheckoutOpened):
                return self.track_checkout_opened(event, ctx)
            if isinstance(event, AddedToCart):
                return self.track_added_to_cart(event, ctx)
            if isinstance(event, OrderCompleted):
                return self.track_order_completed(event)
            if isinstance(event, CartUpdated):
                return self.track_cart_updated(event, ctx)
        except Exception as e:
            logger.exception("Tracking failed for %s", type(event).__name__)
            return TrackOutput(
                accepted=False,
                errors=[TrackingError(code="internal_error", message=str(e))],
                success=False,
            )

        return TrackOutput(accepted=False, skip_reason=SkipReason.INVALID_EVENT)

    # --- Variants ---

    def track_product_viewed(
        self,
        event: ProductViewed,
        ctx: RequestContext | None = None,
    ) -> TrackOutput:
        """Count a product view once per visitor per window."""
        ctx = ctx or RequestContext()
        gate = self._gate(ctx)
        if gate is not None:
            return gate
        if not is_valid_entity_id(event.entity_id):
            return TrackOutput(accepted=False, skip_reason=SkipReason.INVALID_EVENT)

        visitor, cookie = self._resolve(event.visitor, ctx)
        skip = self._skip_untrackable(visitor)
        if skip is not None:
            return TrackOutput(accepted=False, skip_reason=skip, visitor=visitor, cookie=cookie)

        now = self._time.now_utc()
        entity_id = str(event.entity_id)
        if self._dedupe.is_duplicate(DedupeKind.VIEW, visitor.value, now, entity_id):
            return TrackOutput(
                accepted=False,
                skip_reason=SkipReason.DUPLICATE,
                visitor=visitor,
                cookie=cookie,
            )

        today = self.today()
        increments: list[Increment] = []
        errors: list[TrackingError] = []
        self._bump(MetricKey.lifetime(entity_id, VIEWS), 1, increments, errors)
        self._bump(MetricKey.daily(entity_id, VIEWS, today), 1, increments, errors)

        self._dedupe.record(DedupeKind.VIEW, visitor.value, now, entity_id)

        source = self._attribution.attribute(event.referrer or ctx.referrer)
        self._bump(
            MetricKey.daily(entity_id, source_metric_name(source), today),
            1,
            increments,
            errors,
        )

        self._notify(ENTITY_VIEWED, entity_id=entity_id, visitor=visitor.value)
        logger.debug("View tracked for %s (source=%s)", entity_id, source)

        return self._output(visitor, cookie, increments, errors)

    def track_checkout_opened(
        self,
        event: CheckoutOpened,
        ctx: RequestContext | None = None,
    ) -> TrackOutput:
        """Count a checkout per cart line, once per visitor per window."""
        ctx = ctx or RequestContext()
        gate = self._gate(ctx)
        if gate is not None:
            return gate
        if not event.cart_items:
            return TrackOutput(accepted=False, skip_reason=SkipReason.EMPTY_CART)
        if ctx.is_order_received_page:
            return TrackOutput(accepted=False, skip_reason=SkipReason.ORDER_RECEIVED_PAGE)

        visitor, cookie = self._resolve(event.visitor, ctx)
        if visitor.kind == VisitorKind.SYSTEM:
            return TrackOutput(accepted=False, skip_reason=SkipReason.SYSTEM, visitor=visitor)

        now = self._time.now_utc()
        if self._dedupe.is_duplicate(DedupeKind.CHECKOUT, visitor.value, now):
            return TrackOutput(
                accepted=False,
                skip_reason=SkipReason.DUPLICATE,
                visitor=visitor,
                cookie=cookie,
            )

        today = self.today()
        increments: list[Increment] = []
        errors: list[TrackingError] = []
        counted = 0
        for line in event.cart_items:
            try:
                entity_id = str(line.entity_id)
                keys = [
                    MetricKey.lifetime(entity_id, CHECKOUTS),
                    MetricKey.daily(entity_id, CHECKOUTS, today),
                ]
            except ValueError as e:
                logger.error("Checkout: skipping line %r: %s", line, e)
                errors.append(
                    TrackingError(
                        code="partial_failure",
                        message=str(e),
                        entity_id=str(line.entity_id),
                    )
                )
                continue

            for key in keys:
                self._bump(key, 1, increments, errors)
            counted += 1

        if counted == 0:
            return TrackOutput(
                accepted=False,
                skip_reason=SkipReason.INVALID_EVENT,
                visitor=visitor,
                cookie=cookie,
                errors=errors,
                success=False,
            )

        self._dedupe.record(DedupeKind.CHECKOUT, visitor.value, now)
        logger.debug("Checkout tracked for visitor %s", visitor.value)

        return self._output(visitor, cookie, increments, errors)

    def track_added_to_cart(
        self,
        event: AddedToCart,
        ctx: RequestContext | None = None,
    ) -> TrackOutput:
        """Count every add-to-cart. Repeats are legitimate signal."""
        ctx = ctx or RequestContext()
        gate = self._gate(ctx)
        if gate is not None:
            return gate
        if not is_valid_entity_id(event.entity_id):
            return TrackOutput(accepted=False, skip_reason=SkipReason.INVALID_EVENT)

        visitor, cookie = self._resolve(event.visitor, ctx)
        if visitor.kind == VisitorKind.SYSTEM:
            return TrackOutput(accepted=False, skip_reason=SkipReason.SYSTEM, visitor=visitor)

        entity_id = str(event.entity_id)
        today = self.today()
        increments: list[Increment] = []
        errors: list[TrackingError] = []
        self._bump(MetricKey.lifetime(entity_id, ADD_TO_CART), 1, increments, errors)
        self._bump(MetricKey.daily(entity_id, ADD_TO_CART, today), 1, increments, errors)

        self._notify(ENTITY_ADDED_TO_CART, entity_id=entity_id, quantity=event.quantity)

        return self._output(visitor, cookie, increments, errors)

    def track_order_completed(self, event: OrderCompleted) -> TrackOutput:
        """Accumulate donations and revenue per order line."""
        if not self._enabled():
            return TrackOutput(accepted=False, skip_reason=SkipReason.DISABLED)

        today = self.today()
        increments: list[Increment] = []
        errors: list[TrackingError] = []
        revenue = Decimal("0")

        for line in event.line_items:
            try:
                entity_id = str(line.entity_id)
                line_total = Decimal(str(line.line_total))
                if not line_total.is_finite() or line_total < 0:
                    raise ValueError(f"Invalid line total {line.line_total}")
                keys = [
                    (MetricKey.lifetime(entity_id, DONATIONS), 1),
                    (MetricKey.daily(entity_id, DONATIONS, today), 1),
                    (MetricKey.lifetime(entity_id, REVENUE), line_total),
                    (MetricKey.daily(entity_id, REVENUE, today), line_total),
                ]
            except (ValueError, InvalidOperation) as e:
                logger.error("Order %s: skipping line %r: %s", event.order_id, line, e)
                errors.append(
                    TrackingError(
                        code="partial_failure",
                        message=str(e),
                        entity_id=str(line.entity_id),
                    )
                )
                continue

            for key, delta in keys:
                self._bump(key, delta, increments, errors)
            revenue += line_total

        logger.info("Order tracked: #%s", event.order_id)
        self._notify(
            ORDER_TRACKED,
            order_id=event.order_id,
            line_count=len(event.line_items),
            revenue=str(revenue),
        )

        return self._output(None, None, increments, errors)

    def track_cart_updated(
        self,
        event: CartUpdated,
        ctx: RequestContext | None = None,
    ) -> TrackOutput:
        """Replace the visitor's cart snapshot."""
        ctx = ctx or RequestContext()
        gate = self._gate(ctx)
        if gate is not None:
            return gate
        if not event.items:
            return TrackOutput(accepted=False, skip_reason=SkipReason.EMPTY_CART)

        visitor, cookie = self._resolve(event.visitor, ctx)
        skip = self._skip_untrackable(visitor)
        if skip is not None:
            return TrackOutput(accepted=False, skip_reason=skip, visitor=visitor, cookie=cookie)

        now = self._time.now_utc()
        snapshot = CartSnapshot(
            visitor_id=visitor.value,
            items=tuple(event.items),
            total=Decimal(str(event.total)),
            timestamp=now,
        )
        errors: list[TrackingError] = []
        try:
            self._ephemeral.put(
                cart_snapshot_key(visitor.value),
                snapshot.to_record(),
                self._config.dedupe.cart_snapshot_ttl_seconds,
                now,
            )
        except StorageUnavailableError as e:
            logger.error("Cart snapshot write failed: %s", e)
            errors.append(TrackingError(code="storage_unavailable", message=str(e)))

        return self._output(visitor, cookie, (), errors)

    def get_cart_snapshot(self, visitor_id: str) -> CartSnapshot | None:
        """Latest live snapshot for a visitor."""
        record = self._ephemeral.get(cart_snapshot_key(visitor_id), self._time.now_utc())
        return CartSnapshot.from_record(record) if record else None

    # --- Helpers ---

    def _enabled(self) -> bool:
        return self._config.enabled and self._runtime.enabled

    def _gate(self, ctx: RequestContext) -> TrackOutput | None:
        """Common rejection for request-bound events."""
        if not self._enabled():
            return TrackOutput(accepted=False, skip_reason=SkipReason.DISABLED)
        if self._bot_filter.is_bot(ctx):
            return TrackOutput(accepted=False, skip_reason=SkipReason.BOT)
        return None

    def _resolve(
        self,
        visitor: VisitorIdentity | None,
        ctx: RequestContext,
    ) -> tuple[VisitorIdentity, VisitorCookie | None]:
        if visitor is not None:
            return visitor, None
        resolution = self._resolver.resolve(ctx)
        return resolution.identity, resolution.cookie

    @staticmethod
    def _skip_untrackable(visitor: VisitorIdentity) -> SkipReason | None:
        # Admins that reach here resolved as ADMIN, i.e. admin tracking is off
        if visitor.kind == VisitorKind.SYSTEM:
            return SkipReason.SYSTEM
        if visitor.kind == VisitorKind.ADMIN:
            return SkipReason.ADMIN
        return None

    def _bump(
        self,
        key: MetricKey,
        delta: MetricValue,
        increments: list[Increment],
        errors: list[TrackingError],
    ) -> None:
        """Increment one key; storage failures drop the increment."""
        try:
            value = self._store.increment(key, delta)
        except StorageUnavailableError as e:
            logger.error("Counter write failed for %s: %s", key.serialize(), e)
            errors.append(
                TrackingError(
                    code="storage_unavailable",
                    message=str(e),
                    entity_id=key.entity_id,
                )
            )
            return
        increments.append(Increment(key=key, delta=delta, value=value))

    def _notify(self, name: str, **payload: object) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.publish(name, **payload)
        except Exception:
            logger.exception("Notification %s failed", name)

    @staticmethod
    def _output(
        visitor: VisitorIdentity | None,
        cookie: VisitorCookie | None,
        increments: list[Increment] | tuple[Increment, ...],
        errors: list[TrackingError],
    ) -> TrackOutput:
        return TrackOutput(
            accepted=True,
            visitor=visitor,
            cookie=cookie,
            increments=tuple(increments),
            errors=errors,
            success=len(errors) == 0,
        )


# --- Factory ---


def create_tracking_dispatcher(
    store: MetricsStorePort,
    ephemeral: EphemeralStorePort,
    notifier: NotifierPort | None = None,
    time_port: TimePort | None = None,
    config: TrackingConfig | None = None,
    runtime: TrackingRuntime | None = None,
    bot_filter: BotFilter | None = None,
    resolver: VisitorResolver | None = None,
) -> TrackingDispatcher:
    """Create a TrackingDispatcher."""
    return TrackingDispatcher(
        store=store,
        ephemeral=ephemeral,
        notifier=notifier,
        time_port=time_port,
        config=config,
        runtime=runtime,
        bot_filter=bot_filter,
        resolver=resolver,
    )
