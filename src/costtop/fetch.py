import asyncio
import datetime as dt

import structlog

from costtop.models import CostRecord, FetchOutcome, Provider, UsageRecord
from costtop.provider.base import ProviderClient
from costtop.store import UNKNOWN_CATEGORY

logger = structlog.get_logger()

# covers the 30 day range plus the previous 30 days it is compared to
DEFAULT_LOOKBACK_DAYS = 60


def fetch_start(lookback_days: "int", now: "dt.datetime | None" = None) -> "dt.datetime":
    """
    returns UTC midnight lookback_days before today.
    """
    now = now or dt.datetime.now(dt.timezone.utc)
    day = now.astimezone(dt.timezone.utc).date() - dt.timedelta(days=lookback_days)
    return dt.datetime.combine(day, dt.time.min, tzinfo=dt.timezone.utc)


def append_error(existing: "str | None", message: "str") -> "str":
    if existing:
        return f"{existing}; {message}"
    return message


def key_ids_to_resolve(records: "list[UsageRecord]") -> "list[str]":
    ids = {
        r.api_key_id.strip()
        for r in records
        if r.api_key_id and r.api_key_id.strip()
    }
    ids.discard(UNKNOWN_CATEGORY)
    return sorted(ids)


class FetchAggregator:
    """
    FetchAggregator runs one fetch cycle for a provider: costs and
    usage concurrently, then API key name resolution for the keys
    seen in usage. Cost and usage failures are recorded separately
    and never discard what the other side produced.
    """

    def __init__(self, lookback_days: "int" = DEFAULT_LOOKBACK_DAYS) -> "None":
        self._lookback_days = lookback_days

    async def run(
        self,
        provider: "Provider",
        client: "ProviderClient",
        now: "dt.datetime | None" = None,
    ) -> "FetchOutcome":
        start = fetch_start(self._lookback_days, now)
        outcome = FetchOutcome(provider=provider)

        logger.info("fetch_start", provider=provider.value, start=start.isoformat())

        costs, usage = await asyncio.gather(
            client.fetch_costs(start),
            client.fetch_usage(start),
            return_exceptions=True,
        )

        if isinstance(costs, BaseException):
            logger.warning("cost_fetch_error", provider=provider.value, error=str(costs))
            outcome.cost_error = str(costs)
        else:
            outcome.cost_records = sorted(costs, key=_by_date)

        if isinstance(usage, BaseException):
            logger.warning("usage_fetch_error", provider=provider.value, error=str(usage))
            outcome.usage_failed = True
            outcome.usage_error = append_error(
                outcome.usage_error, f"Usage fetch failed: {usage}"
            )
        else:
            outcome.usage_records = sorted(usage, key=_by_date)
            await self._resolve_key_names(client, outcome)

        logger.info(
            "fetch_done",
            provider=provider.value,
            cost_records=len(outcome.cost_records),
            usage_records=len(outcome.usage_records),
            key_names=len(outcome.key_names),
        )
        return outcome

    async def _resolve_key_names(
        self,
        client: "ProviderClient",
        outcome: "FetchOutcome",
    ) -> "None":
        ids = key_ids_to_resolve(outcome.usage_records)
        if not ids:
            return

        try:
            names = await client.resolve_key_names(ids)
        except Exception as e:
            logger.warning(
                "key_name_fetch_error",
                provider=outcome.provider.value,
                error=str(e),
            )
            outcome.key_names_failed = True
            outcome.usage_error = append_error(
                outcome.usage_error, f"API key name fetch failed: {e}"
            )
            return

        outcome.key_names.update(names)


def _by_date(record: "CostRecord | UsageRecord") -> "dt.date":
    return record.date
