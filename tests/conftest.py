import datetime as dt

import pytest
from prometheus_client import CollectorRegistry

from costtop.models import CostRecord, UsageRecord


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def ten_days_of_costs() -> "list[CostRecord]":
    """
    ten consecutive days of gpt-4 at $5 and gpt-3.5 at $1.
    """
    first = dt.date(2024, 3, 1)
    records: "list[CostRecord]" = []
    for i in range(10):
        day = first + dt.timedelta(days=i)
        records.append(CostRecord(date=day, amount=5.0, category="gpt-4"))
        records.append(CostRecord(date=day, amount=1.0, category="gpt-3.5"))
    return records


@pytest.fixture()
def usage_records() -> "list[UsageRecord]":
    first = dt.date(2024, 3, 1)
    return [
        UsageRecord(
            date=first + dt.timedelta(days=i),
            input_tokens=1000,
            output_tokens=500,
            model="gpt-4o" if i % 2 else "gpt-4o-mini",
            api_key_id="key_abc" if i % 2 else "key_def",
            cache_read_tokens=200,
            uncached_tokens=800,
            request_count=10,
        )
        for i in range(10)
    ]
