"""
Metrics component - Counter accumulation over lifetime and daily buckets.
"""

from ._impl import (
    InMemoryMetricsStore,
    MetricsQueryService,
    create_in_memory_metrics_store,
    validate_delta,
)
from .component import run_get_counter, run_get_range
from .models import (
    ADD_TO_CART,
    BASE_METRICS,
    CHECKOUTS,
    DECIMAL_METRICS,
    DEFAULT_MAX_RANGE_DAYS,
    DONATIONS,
    LIFETIME,
    REVENUE,
    SOURCE_PREFIX,
    VIEWS,
    Bucket,
    CounterOutput,
    GetCounterInput,
    GetRangeInput,
    MetricKey,
    MetricsValidationError,
    MetricValue,
    RangeOutput,
    StorageUnavailableError,
    coerce_value,
    is_valid_entity_id,
    is_valid_metric_name,
    parse_bucket,
    range_days,
    zero_for,
)
from .ports import MetricsStorePort, TimePort

__all__ = [
    # Entry points
    "run_get_counter",
    "run_get_range",
    # Models
    "Bucket",
    "CounterOutput",
    "GetCounterInput",
    "GetRangeInput",
    "MetricKey",
    "MetricValue",
    "MetricsValidationError",
    "RangeOutput",
    "StorageUnavailableError",
    # Metric names
    "ADD_TO_CART",
    "BASE_METRICS",
    "CHECKOUTS",
    "DECIMAL_METRICS",
    "DEFAULT_MAX_RANGE_DAYS",
    "DONATIONS",
    "LIFETIME",
    "REVENUE",
    "SOURCE_PREFIX",
    "VIEWS",
    # Helpers
    "coerce_value",
    "is_valid_entity_id",
    "is_valid_metric_name",
    "parse_bucket",
    "range_days",
    "validate_delta",
    "zero_for",
    # Implementations
    "InMemoryMetricsStore",
    "MetricsQueryService",
    "create_in_memory_metrics_store",
    # Ports
    "MetricsStorePort",
    "TimePort",
]
