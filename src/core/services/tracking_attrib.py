"""
Traffic source attribution.

Maps a referrer URL to a canonical source tag that feeds the
``source:<tag>`` daily metric.

Key behaviors:
- No referrer, own-host referrer or unparseable URL -> ``direct``
- Ordered substring table on the referrer host (first match wins)
- Unmatched external hosts -> ``referral``
- Pure function, never raises
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse

# --- Enums ---


class TrafficSource(str, Enum):
    """Canonical source tags."""

    DIRECT = "direct"
    GOOGLE = "google"
    FACEBOOK = "facebook"
    TWITTER = "twitter"
    INSTAGRAM = "instagram"
    LINKEDIN = "linkedin"
    YOUTUBE = "youtube"
    PINTEREST = "pinterest"
    REDDIT = "reddit"
    REFERRAL = "referral"


# --- Configuration ---


@dataclass(frozen=True)
class AttributionConfig:
    """Attribution configuration."""

    # Checked in order against the referrer host
    host_patterns: tuple[tuple[str, TrafficSource], ...] = (
        ("google", TrafficSource.GOOGLE),
        ("facebook", TrafficSource.FACEBOOK),
        ("twitter", TrafficSource.TWITTER),
        ("x.com", TrafficSource.TWITTER),
        ("instagram", TrafficSource.INSTAGRAM),
        ("linkedin", TrafficSource.LINKEDIN),
        ("youtube", TrafficSource.YOUTUBE),
        ("pinterest", TrafficSource.PINTEREST),
        ("reddit", TrafficSource.REDDIT),
    )


DEFAULT_CONFIG = AttributionConfig()

_TAG_UNSAFE = re.compile(r"[^a-z0-9_\-]")


# --- Parsing Functions ---


def parse_host(url: str | None) -> str | None:
    """
    Extract the lowercase host from a URL.

    Returns None when the URL has no host or cannot be parsed.
    """
    if not url:
        return None

    try:
        host = urlparse(url.strip()).hostname
    except ValueError:
        return None

    return host.lower() if host else None


def sanitize_tag(tag: str) -> str:
    """Normalize a tag to lowercase ``[a-z0-9_-]``."""
    return _TAG_UNSAFE.sub("", tag.lower())


def attribute_source(
    referrer_url: str | None,
    site_url: str | None,
    config: AttributionConfig = DEFAULT_CONFIG,
) -> str:
    """Attribute a referrer to a source tag."""
    referrer_host = parse_host(referrer_url)
    if not referrer_host:
        return TrafficSource.DIRECT.value

    if referrer_host == parse_host(site_url):
        return TrafficSource.DIRECT.value

    for pattern, source in config.host_patterns:
        if pattern in referrer_host:
            return sanitize_tag(source.value)

    return TrafficSource.REFERRAL.value


def source_metric_name(tag: str) -> str:
    """Metric name carrying a traffic source count."""
    return f"source:{sanitize_tag(tag)}"


# --- Service ---


class AttributionService:
    """Attribution bound to the storefront's own URL."""

    def __init__(
        self,
        site_url: str | None,
        config: AttributionConfig | None = None,
    ) -> None:
        self._site_url = site_url
        self._config = config or DEFAULT_CONFIG

    @property
    def site_url(self) -> str | None:
        return self._site_url

    def attribute(self, referrer_url: str | None) -> str:
        return attribute_source(referrer_url, self._site_url, self._config)


def create_attribution_service(
    site_url: str | None,
    config: AttributionConfig | None = None,
) -> AttributionService:
    """Create an AttributionService."""
    return AttributionService(site_url=site_url, config=config)
