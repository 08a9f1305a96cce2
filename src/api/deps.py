import os
from functools import lru_cache
from pathlib import Path

from fastapi import Depends, Request

from src.app_shell.tracker import InsightsTracker
from src.components.tracking import TrackingDispatcher
from src.core.services.tracking_identity import RequestContext
from src.rules.loader import load_rules
from src.rules.models import Rules

_FALSEY = {"0", "false", "no", "off"}


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("INSIGHTS_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "insights.db")
        self.rules_path = Path(
            os.environ.get("INSIGHTS_RULES_PATH", str(self.base_dir / "rules.yaml"))
        )
        self.commerce_active = (
            os.environ.get("INSIGHTS_COMMERCE_ACTIVE", "1").strip().lower() not in _FALSEY
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> Rules:
    return load_rules(get_settings().rules_path)


# --- Tracker ---
def get_tracker(request: Request) -> InsightsTracker:
    """Tracker created by the application lifespan."""
    tracker: InsightsTracker = request.app.state.tracker
    return tracker


def get_dispatcher(tracker: InsightsTracker = Depends(get_tracker)) -> TrackingDispatcher:
    tracker.maybe_check_tables()
    return tracker.dispatcher


# --- Request Context ---
def _flag(request: Request, header: str) -> bool:
    return request.headers.get(header, "").strip().lower() in {"1", "true", "yes"}


def get_request_context(request: Request) -> RequestContext:
    """
    Build the tracking context from the incoming request.

    Identity flags come from the storefront runtime via ``X-Insights-*``
    headers; the service is expected to sit behind the storefront.
    """
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    return RequestContext(
        user_agent=request.headers.get("user-agent"),
        accept=request.headers.get("accept"),
        accept_language=request.headers.get("accept-language"),
        sec_ch_ua=request.headers.get("sec-ch-ua"),
        referrer=request.headers.get("referer"),
        cookies=dict(request.cookies),
        user_id=request.headers.get("x-insights-user-id") or None,
        is_admin=_flag(request, "x-insights-admin"),
        is_system=_flag(request, "x-insights-system"),
        is_secure=request.url.scheme == "https" or forwarded_proto.lower() == "https",
        is_order_received_page=_flag(request, "x-insights-order-received"),
    )
