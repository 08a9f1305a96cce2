"""
Bot/system traffic filter.

Classifies an incoming storefront request as automated or human using
only request metadata. Every tracking path calls this before touching
a counter.

Key behaviors:
- Case-insensitive substring match of the User-Agent against a deny-list
- Empty User-Agent is a bot
- Missing or non-HTML Accept header is a bot
- Accept-Language sent but empty is a bot
- Headless client hint (Sec-CH-UA) is a bot
- Pure and deterministic (no I/O, no state)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.services.tracking_identity import RequestContext

# --- Enums ---


class UAClass(str, Enum):
    """User agent classification."""

    BOT = "bot"
    REAL = "real"
    UNKNOWN = "unknown"


# --- Configuration ---


@dataclass(frozen=True)
class BotFilterConfig:
    """Bot detection configuration."""

    bot_patterns: tuple[str, ...] = (
        # Search engines
        "googlebot",
        "bingbot",
        "slurp",
        "duckduckbot",
        "baiduspider",
        "yandexbot",
        "applebot",
        # Social previews
        "facebookexternalhit",
        "twitterbot",
        "linkedinbot",
        "whatsapp",
        "skypeuripreview",
        # SEO and analysis
        "ahrefsbot",
        "semrushbot",
        "dotbot",
        "mj12bot",
        "seokicks",
        "seznambot",
        "exabot",
        "zoominfobot",
        "screaming frog",
        "metauri",
        "qwantify",
        # Monitoring
        "pingdombot",
        "monitorus",
        "gtmetrix",
        "uptimerobot",
        "statuscake",
        "newrelicpinger",
        "blackbox",
        "nagios",
        "zabbix",
        "pingdom",
        "newrelic",
        # Automation tooling
        "postman",
        "insomnia",
        "curl",
        "wget",
        "python",
        "java",
        "go-http-client",
        # Generic
        "bot",
        "crawler",
        "spider",
        "scraper",
        "archiver",
        "analyzer",
        "fetcher",
        # Headless browsers
        "headless",
        "phantomjs",
        "selenium",
        "puppeteer",
        "playwright",
        # Performance auditing
        "lighthouse",
        "chrome-lighthouse",
        "pagespeed",
        "mail.ru",
    )

    real_browser_patterns: tuple[str, ...] = (
        "mozilla/5.0",
        "chrome/",
        "firefox/",
        "safari/",
        "edge/",
        "opera/",
    )

    required_accept_type: str = "text/html"


DEFAULT_CONFIG = BotFilterConfig()


# --- Classification ---


def classify_user_agent(
    user_agent: str | None,
    config: BotFilterConfig = DEFAULT_CONFIG,
) -> UAClass:
    """
    Classify a user agent string.

    Bot patterns take priority over browser patterns.
    """
    if not user_agent:
        return UAClass.UNKNOWN

    ua_lower = user_agent.lower()

    for pattern in config.bot_patterns:
        if pattern in ua_lower:
            return UAClass.BOT

    for pattern in config.real_browser_patterns:
        if pattern in ua_lower:
            return UAClass.REAL

    return UAClass.UNKNOWN


def is_bot(
    ctx: RequestContext,
    config: BotFilterConfig = DEFAULT_CONFIG,
) -> bool:
    """
    Decide whether the request comes from an automated client.

    Returns True on the first heuristic that fires.
    """
    user_agent = ctx.user_agent or ""

    if classify_user_agent(user_agent, config) == UAClass.BOT:
        return True

    if not user_agent:
        return True

    accept = ctx.accept or ""
    if not accept or config.required_accept_type.lower() not in accept.lower():
        return True

    # Header sent with no value; absent header is fine
    if ctx.accept_language is not None and not ctx.accept_language.strip():
        return True

    if ctx.sec_ch_ua and "headless" in ctx.sec_ch_ua.lower():
        return True

    return False


# --- Service ---


class BotFilter:
    """Stateless wrapper binding a filter config."""

    def __init__(self, config: BotFilterConfig | None = None) -> None:
        self._config = config or DEFAULT_CONFIG

    def is_bot(self, ctx: RequestContext) -> bool:
        return is_bot(ctx, self._config)

    def classify(self, user_agent: str | None) -> UAClass:
        return classify_user_agent(user_agent, self._config)


def create_bot_filter(config: BotFilterConfig | None = None) -> BotFilter:
    """Create a BotFilter."""
    return BotFilter(config=config)
