from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.core.services.tracking_identity import RequestContext
from src.rules.loader import load_rules, parse_rules
from src.rules.models import Rules

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class MockTimePort:
    """Controllable clock for tests."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now or datetime(2026, 3, 10, 12, 0, 0, tzinfo=UTC)

    def now_utc(self) -> datetime:
        return self._now

    def set_now(self, now: datetime) -> None:
        self._now = now

    def advance(self, **kwargs: float) -> None:
        self._now = self._now + timedelta(**kwargs)


@pytest.fixture
def time_port() -> MockTimePort:
    return MockTimePort()


@pytest.fixture
def browser_ctx() -> RequestContext:
    """A real browser request with no visitor cookie."""
    return RequestContext(
        user_agent=CHROME_UA,
        accept=BROWSER_ACCEPT,
        accept_language="en-US,en;q=0.9",
    )


@pytest.fixture
def rules() -> Rules:
    """Project rules file from the repo root."""
    rules_path = Path("rules.yaml").resolve()
    if not rules_path.exists():
        raise FileNotFoundError(f"Rules not found at {rules_path}")
    return load_rules(rules_path)


@pytest.fixture
def minimal_rules() -> Rules:
    """Defaults for everything except the project header."""
    return parse_rules("project:\n  slug: test\n  rules_version: '1'\n")


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "insights.db")


@pytest.fixture
def migrated_db(db_path: str) -> str:
    """Temporary SQLite database with all migrations applied."""
    SQLiteMigrator(db_path).run_migrations()
    return db_path
