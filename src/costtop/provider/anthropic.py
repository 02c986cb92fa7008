import asyncio
import datetime as dt
from collections.abc import Iterable
from typing import Any

import httpx
import structlog

from costtop.errors import DecodeError, TransportError
from costtop.models import CostRecord, UsageRecord
from costtop.provider.pagination import fetch_pages, iter_results

logger = structlog.get_logger()

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1/organizations"
ANTHROPIC_VERSION = "2023-06-01"

_USAGE_PAGE_LIMIT = "31"


def _format_start(start: "dt.datetime") -> "str":
    return start.astimezone(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _bucket_day(bucket: "dict[str, Any]") -> "dt.date":
    raw = bucket.get("starting_at")
    if not isinstance(raw, str):
        raise DecodeError("Bucket without starting_at", str(bucket))
    try:
        # fromisoformat only accepts a trailing Z from 3.11 on
        moment = dt.datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise DecodeError("Invalid starting_at", raw) from e
    if moment.tzinfo is not None:
        moment = moment.astimezone(dt.timezone.utc)
    return moment.date()


def _tokens(result: "dict[str, Any]", key: "str") -> "int":
    value = result.get(key)
    if not value:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Invalid {key}", str(result)) from e


class AnthropicProvider:
    """
    AnthropicProvider implements the ProviderClient protocol for the
    Anthropic admin API. Costs come from the cost report (amounts in
    cents), usage from the unified messages usage report. API key
    names are looked up one id at a time since keys are not grouped
    under projects.
    """

    def __init__(
        self,
        api_key: "str",
        base_url: "str" = ANTHROPIC_BASE_URL,
        timeout: "float" = 30.0,
    ) -> "None":
        self._base_url = base_url.rstrip("/")
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
        )

    @property
    def name(self) -> "str":
        return "anthropic"

    async def close(self) -> "None":
        await self._client.aclose()

    async def fetch_costs(self, start: "dt.datetime") -> "list[CostRecord]":
        """
        fetches the daily cost report grouped by description, which
        attributes each line to a model.
        """
        pages = await fetch_pages(
            self._client,
            f"{self._base_url}/cost_report",
            [
                ("starting_at", _format_start(start)),
                ("group_by[]", "description"),
            ],
        )

        records: "list[CostRecord]" = []
        for bucket, result in iter_results(pages):
            try:
                cents = float(result.get("amount", ""))
            except (TypeError, ValueError):
                logger.debug("anthropic_cost_amount_skipped", amount=result.get("amount"))
                continue

            amount = cents / 100.0
            if amount <= 0.0:
                continue

            records.append(
                CostRecord(
                    date=_bucket_day(bucket),
                    amount=amount,
                    category=result.get("model"),
                )
            )

        logger.debug("anthropic_costs_done", record_count=len(records))
        return records

    async def fetch_usage(self, start: "dt.datetime") -> "list[UsageRecord]":
        """
        fetches the daily messages usage report grouped by model and
        API key.
        """
        pages = await fetch_pages(
            self._client,
            f"{self._base_url}/usage_report/messages",
            [
                ("starting_at", _format_start(start)),
                ("bucket_width", "1d"),
                ("group_by[]", "model"),
                ("group_by[]", "api_key_id"),
                ("limit", _USAGE_PAGE_LIMIT),
            ],
        )

        records: "list[UsageRecord]" = []
        for bucket, result in iter_results(pages):
            cache_creation = result.get("cache_creation") or {}
            uncached = _tokens(result, "uncached_input_tokens")
            cache_read = _tokens(result, "cache_read_input_tokens")
            input_tokens = (
                uncached
                + _tokens(cache_creation, "ephemeral_1h_input_tokens")
                + _tokens(cache_creation, "ephemeral_5m_input_tokens")
                + cache_read
            )
            output_tokens = _tokens(result, "output_tokens")
            if input_tokens == 0 and output_tokens == 0:
                continue

            records.append(
                UsageRecord(
                    date=_bucket_day(bucket),
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    model=result.get("model"),
                    api_key_id=result.get("api_key_id"),
                    cache_read_tokens=cache_read,
                    uncached_tokens=uncached,
                )
            )

        logger.debug("anthropic_usage_done", record_count=len(records))
        return records

    async def resolve_key_names(
        self,
        api_key_ids: "Iterable[str]",
    ) -> "dict[str, str]":
        """
        resolves each id with an independent concurrent lookup. Failed
        lookups are left out of the result.
        """
        ids = sorted(set(api_key_ids))
        results = await asyncio.gather(
            *(self._fetch_key_name(key_id) for key_id in ids),
            return_exceptions=True,
        )

        names: "dict[str, str]" = {}
        for key_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "anthropic_key_name_failed",
                    api_key_id=key_id,
                    error=str(result),
                )
                continue
            if result:
                names[key_id] = result
        return names

    async def _fetch_key_name(self, key_id: "str") -> "str":
        url = f"{self._base_url}/api_keys/{key_id}"
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

        if not resp.is_success:
            raise TransportError("API error", resp.status_code, resp.text)

        try:
            payload = resp.json()
        except ValueError as e:
            raise DecodeError("Failed to parse response", resp.text) from e
        if not isinstance(payload, dict):
            raise DecodeError("Unexpected response shape", resp.text)

        return str(payload.get("name") or "").strip()
