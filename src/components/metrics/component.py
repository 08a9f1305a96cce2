"""
Metrics component - counter reads for the dashboard/export layer.

Invariants:
- I1: Lifetime counters never decrease
- I2: Daily buckets are only removed by retention cleanup
- I3: Increments to one key serialize; different keys may interleave
- I4: Range reads cover at most the configured number of days
"""

from __future__ import annotations

from ._impl import MetricsQueryService
from .models import (
    DEFAULT_MAX_RANGE_DAYS,
    CounterOutput,
    GetCounterInput,
    GetRangeInput,
    MetricKey,
    MetricsValidationError,
    RangeOutput,
    range_days,
    zero_for,
)
from .ports import MetricsStorePort, TimePort


def run_get_counter(
    inp: GetCounterInput,
    *,
    store: MetricsStorePort,
) -> CounterOutput:
    """
    Read one counter.

    Args:
        inp: Entity, metric and bucket to read.
        store: Metrics store port.

    Returns:
        CounterOutput with the value (zero when absent) or validation errors.
    """
    try:
        key = MetricKey(inp.entity_id, inp.metric_name, inp.bucket)
    except ValueError as e:
        return CounterOutput(
            key=None,
            value=0,
            errors=[MetricsValidationError(code="invalid_key", message=str(e))],
            success=False,
        )

    return CounterOutput(key=key, value=store.get(key))


def run_get_range(
    inp: GetRangeInput,
    *,
    store: MetricsStorePort,
    query: MetricsQueryService | None = None,
    time_port: TimePort | None = None,
) -> RangeOutput:
    """
    Read daily buckets over an inclusive date range.

    Args:
        inp: Entity, metric and date range.
        store: Metrics store port.
        query: Optional query service (enables result caching).
        time_port: Optional time port for the default query service.

    Returns:
        RangeOutput with the total and zero-filled per-day values, or
        an ``invalid_range`` error for inverted or over-wide ranges.
    """
    errors: list[MetricsValidationError] = []
    try:
        MetricKey(inp.entity_id, inp.metric_name, inp.start)
    except ValueError as e:
        errors.append(MetricsValidationError(code="invalid_key", message=str(e)))

    if inp.end < inp.start:
        errors.append(
            MetricsValidationError(
                code="invalid_range",
                message="End date precedes start date",
                field_name="end",
            )
        )
    else:
        max_days = query.max_range_days if query is not None else DEFAULT_MAX_RANGE_DAYS
        if range_days(inp.start, inp.end) > max_days:
            errors.append(
                MetricsValidationError(
                    code="invalid_range",
                    message=f"Range exceeds {max_days} days",
                    field_name="end",
                )
            )

    if errors:
        return RangeOutput(
            total=zero_for(inp.metric_name),
            by_day=(),
            errors=errors,
            success=False,
        )

    service = query or MetricsQueryService(store=store, time_port=time_port)
    total, by_day, cached = service.get_range(
        inp.entity_id,
        inp.metric_name,
        inp.start,
        inp.end,
        use_cache=inp.use_cache,
    )
    return RangeOutput(total=total, by_day=tuple(by_day), cached=cached)
