from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ProjectRules(_Section):
    slug: str
    rules_version: str


class StoreRules(_Section):
    site_url: str | None = None
    timezone: str = "UTC"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value


class TrackingRules(_Section):
    enabled: bool = True
    require_commerce: bool = True
    track_admins: bool = False


class VisitorCookieRules(_Section):
    name: str = Field(default="sky_insights_visitor", pattern=r"^[A-Za-z0-9_\-]+$")
    lifetime_days: int = Field(default=30, ge=1)


class DedupeRules(_Section):
    enabled: bool = True
    view_window_minutes: int = Field(default=30, ge=1)
    checkout_window_minutes: int = Field(default=60, ge=1)
    cart_snapshot_days: int = Field(default=7, ge=1)


class BotRules(_Section):
    extra_patterns: list[str] = []
    required_accept_type: str = "text/html"


class RetentionRules(_Section):
    enabled: bool = True
    retention_days: int = Field(default=30, ge=1)
    page_size: int = Field(default=100, ge=1)
    keys_per_entity: int = Field(default=100, ge=1)
    max_deletions_per_run: int = Field(default=1000, ge=1)
    interval_hours: float = Field(default=24, gt=0)


class CacheRules(_Section):
    range_ttl_seconds: int = Field(default=300, ge=0)
    max_range_days: int = Field(default=366, ge=1)


class LoggingRules(_Section):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return upper


class Rules(_Section):
    project: ProjectRules
    store: StoreRules = Field(default_factory=StoreRules)
    tracking: TrackingRules = Field(default_factory=TrackingRules)
    visitor_cookie: VisitorCookieRules = Field(default_factory=VisitorCookieRules)
    dedupe: DedupeRules = Field(default_factory=DedupeRules)
    bots: BotRules = Field(default_factory=BotRules)
    retention: RetentionRules = Field(default_factory=RetentionRules)
    cache: CacheRules = Field(default_factory=CacheRules)
    logging: LoggingRules = Field(default_factory=LoggingRules)
