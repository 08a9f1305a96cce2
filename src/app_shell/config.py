"""
Translate validated rules into component configuration.
"""

import logging

from src.components.retention import RetentionConfig
from src.components.tracking import TrackingConfig
from src.core.services.tracking_dedupe import DedupeConfig
from src.core.services.tracking_filter import BotFilterConfig
from src.core.services.tracking_identity import IdentityConfig
from src.rules.models import Rules

PACKAGE_LOGGER = "src"


def configure_logging(rules: Rules) -> None:
    """Apply the configured level to the package loggers."""
    level = getattr(logging, rules.logging.level)
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)


def build_tracking_config(rules: Rules) -> TrackingConfig:
    return TrackingConfig(
        enabled=rules.tracking.enabled,
        site_url=rules.store.site_url,
        timezone=rules.store.timezone,
        dedupe=build_dedupe_config(rules),
    )


def build_dedupe_config(rules: Rules) -> DedupeConfig:
    d = rules.dedupe
    return DedupeConfig(
        enabled=d.enabled,
        view_window_seconds=d.view_window_minutes * 60,
        checkout_window_seconds=d.checkout_window_minutes * 60,
        cart_snapshot_ttl_seconds=d.cart_snapshot_days * 24 * 60 * 60,
    )


def build_identity_config(rules: Rules) -> IdentityConfig:
    return IdentityConfig(
        cookie_name=rules.visitor_cookie.name,
        cookie_lifetime_days=rules.visitor_cookie.lifetime_days,
        track_admins=rules.tracking.track_admins,
    )


def build_bot_config(rules: Rules) -> BotFilterConfig:
    base = BotFilterConfig()
    extra = tuple(p.lower() for p in rules.bots.extra_patterns if p.strip())
    return BotFilterConfig(
        bot_patterns=base.bot_patterns + extra,
        real_browser_patterns=base.real_browser_patterns,
        required_accept_type=rules.bots.required_accept_type,
    )


def build_retention_config(rules: Rules) -> RetentionConfig:
    r = rules.retention
    return RetentionConfig(
        retention_days=r.retention_days,
        page_size=r.page_size,
        keys_per_entity=r.keys_per_entity,
        max_deletions=r.max_deletions_per_run,
    )
