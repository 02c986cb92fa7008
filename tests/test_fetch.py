import datetime as dt

import pytest

from costtop.errors import AllSourcesFailedError, TransportError
from costtop.fetch import FetchAggregator, append_error, fetch_start, key_ids_to_resolve
from costtop.models import CostRecord, Provider, UsageRecord

NOW = dt.datetime(2024, 3, 15, 18, 30, tzinfo=dt.timezone.utc)


class MockClient:
    """
    A mock provider client that returns pre-configured records or
    raises pre-configured errors.
    """

    def __init__(
        self,
        costs: "list[CostRecord] | Exception" = (),
        usage: "list[UsageRecord] | Exception" = (),
        names: "dict[str, str] | Exception | None" = None,
    ) -> "None":
        self._costs = costs
        self._usage = usage
        self._names = names or {}
        self.starts: "list[dt.datetime]" = []
        self.resolved: "list[list[str]]" = []

    @property
    def name(self) -> "str":
        return "mock"

    async def fetch_costs(self, start: "dt.datetime") -> "list[CostRecord]":
        self.starts.append(start)
        if isinstance(self._costs, Exception):
            raise self._costs
        return list(self._costs)

    async def fetch_usage(self, start: "dt.datetime") -> "list[UsageRecord]":
        self.starts.append(start)
        if isinstance(self._usage, Exception):
            raise self._usage
        return list(self._usage)

    async def resolve_key_names(self, api_key_ids: "list[str]") -> "dict[str, str]":
        self.resolved.append(list(api_key_ids))
        if isinstance(self._names, Exception):
            raise self._names
        return self._names

    async def close(self) -> "None":
        pass


class TestFetchStart:
    def test_is_utc_midnight_lookback_days_ago(self) -> "None":
        assert fetch_start(60, NOW) == dt.datetime(2024, 1, 15, tzinfo=dt.timezone.utc)

    def test_converts_other_timezones(self) -> "None":
        tokyo = dt.timezone(dt.timedelta(hours=9))
        # 02:00 in Tokyo is still the previous day in UTC
        now = dt.datetime(2024, 3, 16, 2, 0, tzinfo=tokyo)
        assert fetch_start(1, now) == dt.datetime(2024, 3, 14, tzinfo=dt.timezone.utc)


class TestHelpers:
    def test_append_error(self) -> "None":
        assert append_error(None, "a") == "a"
        assert append_error("a", "b") == "a; b"

    def test_key_ids_to_resolve_skips_blank_and_unknown(self) -> "None":
        day = dt.date(2024, 3, 1)
        records = [
            UsageRecord(date=day, input_tokens=1, output_tokens=1, api_key_id="key_b"),
            UsageRecord(date=day, input_tokens=1, output_tokens=1, api_key_id=" key_a "),
            UsageRecord(date=day, input_tokens=1, output_tokens=1, api_key_id="  "),
            UsageRecord(date=day, input_tokens=1, output_tokens=1, api_key_id="unknown"),
            UsageRecord(date=day, input_tokens=1, output_tokens=1),
            UsageRecord(date=day, input_tokens=1, output_tokens=1, api_key_id="key_b"),
        ]
        assert key_ids_to_resolve(records) == ["key_a", "key_b"]


class TestFetchAggregator:
    @pytest.mark.asyncio
    async def test_collects_sorted_records_and_key_names(self) -> "None":
        costs = [
            CostRecord(date=dt.date(2024, 3, 2), amount=2.0, category="gpt-4o"),
            CostRecord(date=dt.date(2024, 3, 1), amount=1.0, category="gpt-4o"),
        ]
        usage = [
            UsageRecord(dt.date(2024, 3, 3), 10, 5, model="gpt-4o", api_key_id="key_1"),
            UsageRecord(dt.date(2024, 3, 1), 10, 5, model="gpt-4o", api_key_id="key_2"),
        ]
        client = MockClient(costs=costs, usage=usage, names={"key_1": "Prod"})

        outcome = await FetchAggregator(lookback_days=60).run(Provider.OPENAI, client, NOW)

        assert outcome.provider is Provider.OPENAI
        assert [r.date.day for r in outcome.cost_records] == [1, 2]
        assert [r.date.day for r in outcome.usage_records] == [1, 3]
        assert outcome.key_names == {"key_1": "Prod"}
        assert outcome.cost_error is None
        assert outcome.usage_error is None
        assert client.resolved == [["key_1", "key_2"]]
        assert client.starts == [dt.datetime(2024, 1, 15, tzinfo=dt.timezone.utc)] * 2

    @pytest.mark.asyncio
    async def test_cost_failure_keeps_usage(self) -> "None":
        usage = [UsageRecord(dt.date(2024, 3, 1), 10, 5, model="gpt-4o")]
        client = MockClient(
            costs=TransportError("API error", 500, "boom"),
            usage=usage,
        )

        outcome = await FetchAggregator().run(Provider.OPENAI, client, NOW)

        assert outcome.cost_error == "API error: 500 - boom"
        assert outcome.cost_records == []
        assert outcome.usage_records == usage
        assert outcome.usage_error is None

    @pytest.mark.asyncio
    async def test_usage_failure_keeps_costs(self) -> "None":
        costs = [CostRecord(date=dt.date(2024, 3, 1), amount=1.0, category="claude")]
        failure = AllSourcesFailedError({"messages": TransportError("API error", 503, "down")})
        client = MockClient(costs=costs, usage=failure)

        outcome = await FetchAggregator().run(Provider.ANTHROPIC, client, NOW)

        assert outcome.cost_records == costs
        assert outcome.cost_error is None
        assert outcome.usage_error is not None
        assert outcome.usage_error.startswith(
            "Usage fetch failed: Failed to fetch usage from any endpoint"
        )
        assert outcome.usage_failed
        assert not outcome.key_names_failed
        # no usage, nothing to resolve
        assert client.resolved == []

    @pytest.mark.asyncio
    async def test_key_name_failure_is_reported_on_usage(self) -> "None":
        usage = [UsageRecord(dt.date(2024, 3, 1), 10, 5, api_key_id="key_1")]
        client = MockClient(usage=usage, names=TransportError("API error", 403, "no"))

        outcome = await FetchAggregator().run(Provider.OPENAI, client, NOW)

        assert outcome.usage_records == usage
        assert outcome.usage_error == "API key name fetch failed: API error: 403 - no"
        assert outcome.key_names_failed
        assert not outcome.usage_failed
        assert outcome.key_names == {}

    @pytest.mark.asyncio
    async def test_skips_resolution_without_key_ids(self) -> "None":
        usage = [UsageRecord(dt.date(2024, 3, 1), 10, 5, model="gpt-4o")]
        client = MockClient(usage=usage)

        await FetchAggregator().run(Provider.OPENAI, client, NOW)

        assert client.resolved == []
