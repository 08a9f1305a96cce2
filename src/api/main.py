import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI

from src.adapters.commerce_stub import create_commerce_stub
from src.api.deps import get_rules, get_settings
from src.app_shell.config import configure_logging
from src.app_shell.tracker import InsightsTracker, create_tracker

logger = logging.getLogger(__name__)


def _build_tracker() -> InsightsTracker:
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        rules = get_rules()
    except (FileNotFoundError, ValueError) as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)
    logger.info("Rules loaded from %s", settings.rules_path)

    configure_logging(rules)
    Path(settings.data_dir).mkdir(parents=True, exist_ok=True)
    return create_tracker(
        rules,
        settings.db_path,
        commerce=create_commerce_stub(settings.commerce_active),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    tracker: InsightsTracker | None = getattr(app.state, "tracker", None)
    if tracker is None:
        tracker = _build_tracker()
        app.state.tracker = tracker

    tracker.activate()
    try:
        yield
    finally:
        tracker.deactivate()


def create_app(tracker: InsightsTracker | None = None) -> FastAPI:
    """Build the API. A pre-built tracker skips settings and rules loading."""
    app = FastAPI(
        title="Storefront Insights API",
        version="1.0.1",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    if tracker is not None:
        app.state.tracker = tracker

    from src.api.routes import tracking

    app.include_router(tracking.router, prefix="/track", tags=["Tracking"])

    @app.get("/health")
    def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "ok", "service": "insights"}

    return app


app = create_app()
