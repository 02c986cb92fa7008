import datetime as dt
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from costtop.models import CostRecord, GroupBy, Metric, Range, UsageRecord
from costtop.store import (
    Record,
    apply_filter,
    date_bounds,
    range_cutoff,
    records_in_range,
)


@dataclass(frozen=True, slots=True)
class PeriodChange:
    """
    percent change of the current window against the window of the
    same length right before it.
    """

    percent: "float"

    @property
    def arrow(self) -> "str":
        return "↑" if self.percent >= 0 else "↓"


@dataclass(frozen=True, slots=True)
class CostSummary:
    filter: "str | None"
    total: "float"
    average_per_day: "float"
    change: "PeriodChange | None"
    bounds: "tuple[dt.date, dt.date] | None"


@dataclass(frozen=True, slots=True)
class UsageSummary:
    filter: "str | None"
    input_tokens: "int"
    output_tokens: "int"
    average_per_day: "float"
    change: "PeriodChange | None"
    # None when no row carries a request count
    total_requests: "int | None"
    requests_per_day: "float | None"
    # percentage, None when no row carries cache information
    cache_hit_rate: "float | None"
    bounds: "tuple[dt.date, dt.date] | None"

    @property
    def total_tokens(self) -> "int":
        return self.input_tokens + self.output_tokens


def compare_periods(
    records: "Sequence[Record]",
    range_: "Range",
    selected: "str | None",
    group_by: "GroupBy",
    metric: "Callable[[Record], float]",
) -> "PeriodChange | None":
    """
    compares the metric over the current window with the previous
    window of equal length. Returns None when there is no previous
    data to compare against.
    """
    if not records:
        return None

    cutoff = range_cutoff(max(r.date for r in records), range_)
    previous_cutoff = cutoff - dt.timedelta(days=range_.days)
    matching = apply_filter(records, selected, group_by)

    current = sum(metric(r) for r in matching if r.date >= cutoff)
    previous = sum(metric(r) for r in matching if previous_cutoff <= r.date < cutoff)
    if previous == 0:
        return None

    return PeriodChange(percent=(current - previous) / previous * 100.0)


def summarize_cost(
    records: "Sequence[CostRecord]",
    range_: "Range",
    selected: "str | None" = None,
) -> "CostSummary":
    filtered = apply_filter(records_in_range(records, range_), selected, GroupBy.MODEL)
    total = sum(r.amount for r in filtered)
    return CostSummary(
        filter=selected,
        total=total,
        average_per_day=total / max(range_.days, 1),
        change=compare_periods(
            records, range_, selected, GroupBy.MODEL, lambda r: r.amount
        ),
        bounds=date_bounds(filtered),
    )


def cache_hit_rate(records: "Sequence[UsageRecord]") -> "float | None":
    """
    share of cacheable input tokens served from cache, as a
    percentage. Rows without both cache fields are ignored.
    """
    cache_read = 0
    uncached = 0
    for r in records:
        if r.cache_read_tokens is None or r.uncached_tokens is None:
            continue
        cache_read += r.cache_read_tokens
        uncached += r.uncached_tokens

    cacheable = cache_read + uncached
    if cacheable == 0:
        return None
    return cache_read / cacheable * 100.0


def summarize_usage(
    records: "Sequence[UsageRecord]",
    range_: "Range",
    selected: "str | None" = None,
    group_by: "GroupBy" = GroupBy.MODEL,
) -> "UsageSummary":
    filtered = apply_filter(records_in_range(records, range_), selected, group_by)
    days = max(range_.days, 1)

    input_tokens = sum(r.input_tokens for r in filtered)
    output_tokens = sum(r.output_tokens for r in filtered)
    requests = sum(r.request_count or 0 for r in filtered)
    total_requests = requests if requests > 0 else None

    return UsageSummary(
        filter=selected,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        average_per_day=(input_tokens + output_tokens) / days,
        change=compare_periods(
            records, range_, selected, group_by, lambda r: r.total_tokens
        ),
        total_requests=total_requests,
        requests_per_day=total_requests / days if total_requests else None,
        cache_hit_rate=cache_hit_rate(filtered),
        bounds=date_bounds(filtered),
    )


def summarize(
    cost_records: "Sequence[CostRecord]",
    usage_records: "Sequence[UsageRecord]",
    metric: "Metric",
    range_: "Range",
    selected: "str | None",
    group_by: "GroupBy",
) -> "tuple[CostSummary, UsageSummary]":
    """
    builds both summary columns. The active filter only applies to
    the metric currently displayed.
    """
    cost_filter = selected if metric is Metric.COST else None
    usage_filter = selected if metric is Metric.USAGE else None
    return (
        summarize_cost(cost_records, range_, cost_filter),
        summarize_usage(usage_records, range_, usage_filter, group_by),
    )
