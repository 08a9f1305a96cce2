"""
Rules loading and validation tests.

Verifies that rules.yaml parses into typed sections and that malformed
rules fail fast with ValueError.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from src.app_shell.config import (
    build_bot_config,
    build_dedupe_config,
    build_identity_config,
    build_retention_config,
    build_tracking_config,
)
from src.core.services.tracking_filter import BotFilter, BotFilterConfig
from src.core.services.tracking_identity import RequestContext
from src.rules.loader import load_rules, parse_rules
from src.rules.models import Rules

HEADER = "project:\n  slug: test\n  rules_version: '1'\n"


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent.parent


class TestRulesLoading:
    """Test rules file loading."""

    def test_load_actual_rules_file(self, project_root: Path) -> None:
        """Rules file loads successfully."""
        rules = load_rules(project_root / "rules.yaml")
        assert isinstance(rules, Rules)
        assert rules.project.slug == "storefront-insights"
        assert rules.visitor_cookie.name == "sky_insights_visitor"

    def test_load_nonexistent_file_raises(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_rules(Path("/nonexistent/path/rules.yaml"))

    def test_load_invalid_yaml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yaml"
        path.write_text("invalid: yaml: content: [")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_rules(path)

    def test_non_mapping_raises(self) -> None:
        with pytest.raises(ValueError, match="mapping"):
            parse_rules("- just\n- a list\n")


class TestRulesSchemaValidation:
    """Schema constraints."""

    def test_defaults(self, minimal_rules: Rules) -> None:
        """Only the project header is required."""
        assert minimal_rules.tracking.enabled is True
        assert minimal_rules.tracking.require_commerce is True
        assert minimal_rules.dedupe.view_window_minutes == 30
        assert minimal_rules.dedupe.checkout_window_minutes == 60
        assert minimal_rules.dedupe.cart_snapshot_days == 7
        assert minimal_rules.retention.retention_days == 30
        assert minimal_rules.retention.max_deletions_per_run == 1000
        assert minimal_rules.store.timezone == "UTC"

    def test_missing_project_raises(self) -> None:
        with pytest.raises(ValueError, match="validation failed"):
            parse_rules("tracking:\n  enabled: true\n")

    def test_unknown_key_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_rules(HEADER + "tracking:\n  enabeld: false\n")

    def test_unknown_section_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_rules(HEADER + "analytics:\n  enabled: true\n")

    def test_unknown_timezone_raises(self) -> None:
        with pytest.raises(ValueError, match="timezone"):
            parse_rules(HEADER + "store:\n  timezone: Mars/Olympus_Mons\n")

    def test_zero_window_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_rules(HEADER + "dedupe:\n  view_window_minutes: 0\n")

    def test_log_level_normalized(self) -> None:
        rules = parse_rules(HEADER + "logging:\n  level: debug\n")
        assert rules.logging.level == "DEBUG"

    def test_bad_log_level_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_rules(HEADER + "logging:\n  level: chatty\n")

    def test_bad_cookie_name_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_rules(HEADER + "visitor_cookie:\n  name: 'bad name;'\n")


class TestConfigBuilders:
    """Rules to component configuration."""

    def test_dedupe_windows_in_seconds(self, rules: Rules) -> None:
        cfg = build_dedupe_config(rules)
        assert cfg.view_window_seconds == 1800
        assert cfg.checkout_window_seconds == 3600
        assert cfg.cart_snapshot_ttl_seconds == 604800

    def test_tracking_config(self) -> None:
        rules = parse_rules(
            HEADER + "store:\n  site_url: https://shop.example.org\n  timezone: Europe/London\n"
        )
        cfg = build_tracking_config(rules)
        assert cfg.site_url == "https://shop.example.org"
        assert cfg.timezone == "Europe/London"
        assert cfg.enabled is True

    def test_identity_config(self) -> None:
        rules = parse_rules(HEADER + "tracking:\n  track_admins: true\n")
        cfg = build_identity_config(rules)
        assert cfg.track_admins is True
        assert cfg.cookie_name == "sky_insights_visitor"
        assert cfg.cookie_lifetime_days == 30

    def test_extra_bot_patterns_appended(self) -> None:
        rules = parse_rules(HEADER + "bots:\n  extra_patterns: [InternalProbe, '  ']\n")
        cfg = build_bot_config(rules)
        assert cfg.bot_patterns[-1] == "internalprobe"
        assert len(cfg.bot_patterns) == len(BotFilterConfig().bot_patterns) + 1

    def test_mixed_case_accept_type(self, browser_ctx: RequestContext) -> None:
        rules = parse_rules(HEADER + "bots:\n  required_accept_type: Text/HTML\n")
        assert BotFilter(build_bot_config(rules)).is_bot(browser_ctx) is False

    def test_max_range_days(self) -> None:
        rules = parse_rules(HEADER + "cache:\n  max_range_days: 31\n")
        assert rules.cache.max_range_days == 31
        with pytest.raises(ValueError):
            parse_rules(HEADER + "cache:\n  max_range_days: 0\n")

    def test_retention_config(self) -> None:
        rules = parse_rules(HEADER + "retention:\n  max_deletions_per_run: 50\n")
        cfg = build_retention_config(rules)
        assert cfg.max_deletions == 50
        assert cfg.retention_days == 30
