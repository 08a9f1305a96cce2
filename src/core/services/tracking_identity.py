"""
Visitor identity resolution.

Derives the tracking subject for a storefront request and tells the
caller whether a new anonymous token should be persisted client-side.

Key behaviors:
- Background contexts (cron, internal AJAX/API) resolve to ``system``
- Administrators resolve to ``admin`` unless admin tracking is enabled
- Authenticated users resolve to ``user_<id>``
- Well-formed anonymous tokens are reused, anything else is replaced
- A fresh token is only issued as a cookie to non-bot clients whose
  response can still carry headers
- Never raises
"""

from __future__ import annotations

import re
import secrets
import string
from dataclasses import dataclass, field
from enum import Enum

from src.core.services.tracking_filter import BotFilterConfig, is_bot

TOKEN_PREFIX = "visitor_"
TOKEN_LENGTH = 32
TOKEN_PATTERN = re.compile(r"^visitor_[a-zA-Z0-9]{32}$")

SYSTEM_VISITOR = "system_process"
ADMIN_VISITOR = "admin_user"

_TOKEN_ALPHABET = string.ascii_letters + string.digits


# --- Request Context ---


@dataclass(frozen=True)
class RequestContext:
    """
    Request metadata handed over by the storefront runtime.

    Header fields keep ``None`` for "not sent" so the filter can tell an
    absent header from an empty one.
    """

    user_agent: str | None = None
    accept: str | None = None
    accept_language: str | None = None
    sec_ch_ua: str | None = None
    referrer: str | None = None
    cookies: dict[str, str] = field(default_factory=dict)
    user_id: str | None = None
    is_admin: bool = False
    is_system: bool = False
    is_secure: bool = False
    can_set_cookie: bool = True
    is_order_received_page: bool = False


# --- Identity ---


class VisitorKind(str, Enum):
    """Resolved actor classification."""

    SYSTEM = "system"
    ADMIN = "admin"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class VisitorIdentity:
    """Resolved visitor."""

    kind: VisitorKind
    value: str

    @property
    def is_trackable(self) -> bool:
        return self.kind in (VisitorKind.AUTHENTICATED, VisitorKind.ANONYMOUS)

    def __str__(self) -> str:
        return self.value

    @classmethod
    def system(cls) -> VisitorIdentity:
        return cls(VisitorKind.SYSTEM, SYSTEM_VISITOR)

    @classmethod
    def admin(cls) -> VisitorIdentity:
        return cls(VisitorKind.ADMIN, ADMIN_VISITOR)

    @classmethod
    def authenticated(cls, user_id: str) -> VisitorIdentity:
        return cls(VisitorKind.AUTHENTICATED, f"user_{user_id}")

    @classmethod
    def anonymous(cls, token: str) -> VisitorIdentity:
        return cls(VisitorKind.ANONYMOUS, token)


@dataclass(frozen=True)
class VisitorCookie:
    """Cookie the adapter must set on the outgoing response."""

    name: str
    value: str
    max_age_seconds: int
    secure: bool
    http_only: bool = True
    same_site: str = "lax"
    path: str = "/"


@dataclass(frozen=True)
class VisitorResolution:
    """Result of identity resolution."""

    identity: VisitorIdentity
    cookie: VisitorCookie | None = None


# --- Configuration ---


@dataclass(frozen=True)
class IdentityConfig:
    """Identity resolver configuration."""

    cookie_name: str = "sky_insights_visitor"
    cookie_lifetime_days: int = 30
    track_admins: bool = False


DEFAULT_CONFIG = IdentityConfig()


# --- Token Helpers ---


def generate_visitor_token() -> str:
    """Mint a new anonymous visitor token."""
    suffix = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))
    return f"{TOKEN_PREFIX}{suffix}"


def is_valid_visitor_token(value: str | None) -> bool:
    """Check a presented token against the issued format."""
    if not value:
        return False
    return TOKEN_PATTERN.match(value.strip()) is not None


# --- Resolver ---


def resolve_visitor(
    ctx: RequestContext,
    config: IdentityConfig = DEFAULT_CONFIG,
    bot_config: BotFilterConfig | None = None,
) -> VisitorResolution:
    """Resolve the visitor for a request (first match wins)."""
    if ctx.is_system:
        return VisitorResolution(VisitorIdentity.system())

    if ctx.is_admin and not config.track_admins:
        return VisitorResolution(VisitorIdentity.admin())

    if ctx.user_id:
        return VisitorResolution(VisitorIdentity.authenticated(ctx.user_id))

    presented = ctx.cookies.get(config.cookie_name)
    if presented and is_valid_visitor_token(presented):
        return VisitorResolution(VisitorIdentity.anonymous(presented.strip()))

    token = generate_visitor_token()
    identity = VisitorIdentity.anonymous(token)

    if not ctx.can_set_cookie or is_bot(ctx, bot_config or BotFilterConfig()):
        return VisitorResolution(identity)

    cookie = VisitorCookie(
        name=config.cookie_name,
        value=token,
        max_age_seconds=config.cookie_lifetime_days * 24 * 60 * 60,
        secure=ctx.is_secure,
    )
    return VisitorResolution(identity, cookie)


class VisitorResolver:
    """Identity resolver bound to its configuration."""

    def __init__(
        self,
        config: IdentityConfig | None = None,
        bot_config: BotFilterConfig | None = None,
    ) -> None:
        self._config = config or DEFAULT_CONFIG
        self._bot_config = bot_config

    def resolve(self, ctx: RequestContext) -> VisitorResolution:
        return resolve_visitor(ctx, self._config, self._bot_config)


def create_visitor_resolver(
    config: IdentityConfig | None = None,
    bot_config: BotFilterConfig | None = None,
) -> VisitorResolver:
    """Create a VisitorResolver."""
    return VisitorResolver(config=config, bot_config=bot_config)
