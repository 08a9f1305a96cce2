"""
Tests for the bot/system traffic filter.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from src.core.services.tracking_filter import (
    BotFilter,
    BotFilterConfig,
    UAClass,
    classify_user_agent,
    create_bot_filter,
    is_bot,
)
from src.core.services.tracking_identity import RequestContext

FIREFOX_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"


class TestClassifyUserAgent:
    """User agent classification."""

    @pytest.mark.parametrize(
        "ua",
        [
            "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
            "facebookexternalhit/1.1",
            "curl/8.4.0",
            "python-requests/2.31.0",
            "Mozilla/5.0 (X11; Linux x86_64) HeadlessChrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (compatible; AhrefsBot/7.0; +http://ahrefs.com/robot/)",
            "Chrome-Lighthouse",
        ],
    )
    def test_bots_detected(self, ua: str) -> None:
        """Known crawler and tool agents classify as bots."""
        assert classify_user_agent(ua) == UAClass.BOT

    def test_real_browser(self) -> None:
        """Desktop Firefox is a real browser."""
        assert classify_user_agent(FIREFOX_UA) == UAClass.REAL

    def test_bot_pattern_beats_browser_pattern(self) -> None:
        """A Mozilla-prefixed crawler is still a bot."""
        ua = "Mozilla/5.0 (compatible; bingbot/2.0)"
        assert classify_user_agent(ua) == UAClass.BOT

    def test_empty_is_unknown(self) -> None:
        """Missing agent cannot be classified."""
        assert classify_user_agent(None) == UAClass.UNKNOWN
        assert classify_user_agent("") == UAClass.UNKNOWN

    def test_case_insensitive(self) -> None:
        """Matching ignores case."""
        assert classify_user_agent("SOMECRAWLER/1.0") == UAClass.BOT


class TestIsBot:
    """Request-level bot heuristics."""

    def test_real_browser_passes(self, browser_ctx: RequestContext) -> None:
        """A browser with HTML accept and a language passes."""
        assert is_bot(browser_ctx) is False

    def test_empty_user_agent(self, browser_ctx: RequestContext) -> None:
        """Empty user agent is a bot."""
        assert is_bot(replace(browser_ctx, user_agent="")) is True
        assert is_bot(replace(browser_ctx, user_agent=None)) is True

    def test_bot_user_agent(self, browser_ctx: RequestContext) -> None:
        """Deny-listed agent is a bot."""
        assert is_bot(replace(browser_ctx, user_agent="Wget/1.21")) is True

    def test_missing_accept(self, browser_ctx: RequestContext) -> None:
        """Accept header absent or empty is a bot."""
        assert is_bot(replace(browser_ctx, accept=None)) is True
        assert is_bot(replace(browser_ctx, accept="")) is True

    def test_accept_without_html(self, browser_ctx: RequestContext) -> None:
        """Clients not asking for HTML are bots."""
        assert is_bot(replace(browser_ctx, accept="application/json")) is True

    def test_accept_type_case_insensitive(self, browser_ctx: RequestContext) -> None:
        """Configured accept type matches regardless of case."""
        config = replace(BotFilterConfig(), required_accept_type="Text/HTML")
        assert is_bot(browser_ctx, config) is False
        assert is_bot(replace(browser_ctx, accept="TEXT/HTML"), config) is False

    def test_empty_accept_language(self, browser_ctx: RequestContext) -> None:
        """Accept-Language sent but empty is a bot."""
        assert is_bot(replace(browser_ctx, accept_language="")) is True
        assert is_bot(replace(browser_ctx, accept_language="   ")) is True

    def test_absent_accept_language_allowed(self, browser_ctx: RequestContext) -> None:
        """Accept-Language not sent at all is fine."""
        assert is_bot(replace(browser_ctx, accept_language=None)) is False

    def test_headless_client_hint(self, browser_ctx: RequestContext) -> None:
        """Sec-CH-UA advertising a headless browser is a bot."""
        ctx = replace(browser_ctx, sec_ch_ua='"HeadlessChrome";v="120"')
        assert is_bot(ctx) is True

    def test_bare_context_is_bot(self) -> None:
        """A context with no headers at all is a bot."""
        assert is_bot(RequestContext()) is True


class TestBotFilter:
    """Configured filter wrapper."""

    def test_extra_pattern(self, browser_ctx: RequestContext) -> None:
        """Extra deny-list entries apply."""
        config = replace(
            BotFilterConfig(),
            bot_patterns=BotFilterConfig().bot_patterns + ("chrome/120",),
        )
        bot_filter = create_bot_filter(config)
        assert bot_filter.is_bot(browser_ctx) is True

    def test_default_filter(self, browser_ctx: RequestContext) -> None:
        """Default filter accepts a real browser."""
        bot_filter = BotFilter()
        assert bot_filter.is_bot(browser_ctx) is False
        assert bot_filter.classify(FIREFOX_UA) == UAClass.REAL
