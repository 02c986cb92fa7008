"""
Range, category and grouping views over normalized records.

Every place that needs a record's chart category goes through
group_key() so that bar segments, legend entries, filters and colors
always agree on the same key.
"""

import datetime as dt
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

from costtop.models import CostRecord, GroupBy, Range, UsageRecord

UNKNOWN_CATEGORY = "unknown"

Record = TypeVar("Record", CostRecord, UsageRecord)


def _normalize(value: "str | None") -> "str":
    if value is None:
        return UNKNOWN_CATEGORY
    trimmed = value.strip()
    return trimmed or UNKNOWN_CATEGORY


def group_key(record: "CostRecord | UsageRecord", group_by: "GroupBy") -> "str":
    """
    returns the chart category of a record: the cost category for
    cost records, the model or API key id for usage records. Missing
    or blank values resolve to "unknown".
    """
    if isinstance(record, CostRecord):
        return _normalize(record.category)
    if group_by is GroupBy.API_KEYS:
        return _normalize(record.api_key_id)
    return _normalize(record.model)


def cost_amount(record: "CostRecord") -> "float":
    return record.amount


def usage_tokens(record: "UsageRecord") -> "int":
    return record.total_tokens


def range_cutoff(latest: "dt.date", range_: "Range") -> "dt.date":
    return latest - dt.timedelta(days=max(range_.days - 1, 0))


def records_in_range(records: "Sequence[Record]", range_: "Range") -> "list[Record]":
    """
    keeps the trailing window of range_.days days, anchored on the
    most recent date present in the data rather than on today.
    """
    if not records:
        return []
    cutoff = range_cutoff(max(r.date for r in records), range_)
    return [r for r in records if r.date >= cutoff]


def apply_filter(
    records: "Iterable[Record]",
    selected: "str | None",
    group_by: "GroupBy",
) -> "list[Record]":
    if selected is None:
        return list(records)
    return [r for r in records if group_key(r, group_by) == selected]


def available_categories(
    records: "Iterable[CostRecord | UsageRecord]",
    group_by: "GroupBy",
) -> "list[str]":
    """
    lists the sorted categories present in records. Callers pass the
    unfiltered, range-limited set so the filter menu never collapses
    to the current selection.
    """
    return sorted({group_key(r, group_by) for r in records})


def group_totals(
    records: "Iterable[Record]",
    group_by: "GroupBy",
    metric: "Callable[[Record], float]",
) -> "dict[str, dict[str, float]]":
    """
    sums metric per ISO date and category. Categories whose total for
    a date is zero are left out of that date's map.
    """
    totals: "dict[str, dict[str, float]]" = defaultdict(lambda: defaultdict(float))
    for record in records:
        totals[record.date.isoformat()][group_key(record, group_by)] += metric(record)

    return {
        day: {category: value for category, value in per_day.items() if value}
        for day, per_day in sorted(totals.items())
    }


def category_totals(
    records: "Iterable[Record]",
    group_by: "GroupBy",
    metric: "Callable[[Record], float]",
) -> "dict[str, float]":
    totals: "dict[str, float]" = defaultdict(float)
    for record in records:
        totals[group_key(record, group_by)] += metric(record)
    return dict(totals)


def usage_category_totals(
    records: "Iterable[UsageRecord]",
    group_by: "GroupBy",
) -> "dict[str, tuple[int, int]]":
    """
    sums (input, output) tokens per category for the usage legend.
    """
    totals: "dict[str, tuple[int, int]]" = {}
    for record in records:
        key = group_key(record, group_by)
        input_tokens, output_tokens = totals.get(key, (0, 0))
        totals[key] = (
            input_tokens + record.input_tokens,
            output_tokens + record.output_tokens,
        )
    return totals


def date_bounds(records: "Sequence[CostRecord | UsageRecord]") -> "tuple[dt.date, dt.date] | None":
    if not records:
        return None
    dates = [r.date for r in records]
    return min(dates), max(dates)
