import asyncio
import datetime as dt
from collections.abc import Iterable
from typing import Any

import httpx
import structlog

from costtop.errors import DecodeError
from costtop.models import CostRecord, UsageRecord
from costtop.provider.base import merge_source_results
from costtop.provider.pagination import fetch_pages, iter_results

logger = structlog.get_logger()

OPENAI_BASE_URL = "https://api.openai.com/v1/organization"

# usage sub-resources that carry token counts; they do not share an
# endpoint so each one is paginated on its own
USAGE_ENDPOINTS: "tuple[str, ...]" = ("completions", "embeddings", "images")

# costs endpoint accepts up to 180 daily buckets per page
_COSTS_PAGE_LIMIT = "180"
# usage endpoints accept up to 31 daily buckets per page
_USAGE_PAGE_LIMIT = "31"


def _bucket_day(bucket: "dict[str, Any]") -> "dt.date":
    try:
        start = int(bucket["start_time"])
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError("Bucket without a valid start_time", str(bucket)) from e
    return dt.datetime.fromtimestamp(start, tz=dt.timezone.utc).date()


def _int_field(result: "dict[str, Any]", key: "str") -> "int":
    value = result.get(key)
    if not value:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Invalid {key}", str(result)) from e


class OpenAIProvider:
    """
    OpenAIProvider implements the ProviderClient protocol for the
    OpenAI organization API. It fetches daily costs grouped by line
    item and daily token usage from the completions, embeddings and
    images endpoints, and resolves API key ids to names through the
    projects listing.
    """

    def __init__(
        self,
        api_key: "str",
        base_url: "str" = OPENAI_BASE_URL,
        timeout: "float" = 30.0,
    ) -> "None":
        self._base_url = base_url.rstrip("/")
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    @property
    def name(self) -> "str":
        return "openai"

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        await self._client.aclose()

    async def fetch_costs(self, start: "dt.datetime") -> "list[CostRecord]":
        """
        fetches daily cost buckets grouped by line item.
        """
        pages = await fetch_pages(
            self._client,
            f"{self._base_url}/costs",
            [
                ("start_time", str(int(start.timestamp()))),
                ("bucket_width", "1d"),
                ("group_by", "line_item"),
                ("limit", _COSTS_PAGE_LIMIT),
            ],
        )

        records: "list[CostRecord]" = []
        for bucket, result in iter_results(pages):
            amount = result.get("amount") or {}
            try:
                value = float(amount.get("value", 0.0))
            except (TypeError, ValueError) as e:
                raise DecodeError("Invalid cost amount", str(result)) from e

            records.append(
                CostRecord(
                    date=_bucket_day(bucket),
                    amount=value,
                    category=result.get("line_item"),
                )
            )

        logger.debug("openai_costs_done", record_count=len(records))
        return records

    async def fetch_usage(self, start: "dt.datetime") -> "list[UsageRecord]":
        """
        fetches usage from all token-bearing endpoints concurrently.
        A failing endpoint does not fail the others.
        """
        start_ts = int(start.timestamp())
        results = await asyncio.gather(
            *(self._fetch_endpoint_usage(path, start_ts) for path in USAGE_ENDPOINTS),
            return_exceptions=True,
        )
        return merge_source_results(self.name, dict(zip(USAGE_ENDPOINTS, results)))

    async def _fetch_endpoint_usage(
        self,
        path: "str",
        start_ts: "int",
    ) -> "list[UsageRecord]":
        pages = await fetch_pages(
            self._client,
            f"{self._base_url}/usage/{path}",
            [
                ("start_time", str(start_ts)),
                ("bucket_width", "1d"),
                ("group_by", "model"),
                ("group_by", "api_key_id"),
                ("limit", _USAGE_PAGE_LIMIT),
            ],
        )

        records: "list[UsageRecord]" = []
        for bucket, result in iter_results(pages):
            input_tokens = _int_field(result, "input_tokens")
            output_tokens = _int_field(result, "output_tokens")
            # image rows have no token concept
            if input_tokens == 0 and output_tokens == 0:
                continue

            cached: "int | None" = None
            if result.get("input_cached_tokens") is not None:
                cached = _int_field(result, "input_cached_tokens")
            requests: "int | None" = None
            if result.get("num_model_requests") is not None:
                requests = _int_field(result, "num_model_requests")

            records.append(
                UsageRecord(
                    date=_bucket_day(bucket),
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    model=result.get("model"),
                    api_key_id=result.get("api_key_id"),
                    cache_read_tokens=cached,
                    uncached_tokens=(
                        max(input_tokens - cached, 0) if cached is not None else None
                    ),
                    request_count=requests,
                )
            )

        logger.debug(
            "openai_usage_endpoint_done",
            endpoint=path,
            record_count=len(records),
        )
        return records

    async def resolve_key_names(
        self,
        api_key_ids: "Iterable[str]",
    ) -> "dict[str, str]":
        """
        resolves API key ids to names. Lists every project, then
        fetches each project's keys concurrently. A project whose
        keys cannot be listed is skipped; failing to list projects
        fails the resolution.
        """
        wanted = set(api_key_ids)
        if not wanted:
            return {}

        pages = await fetch_pages(
            self._client,
            f"{self._base_url}/projects",
            [],
            cursor_param="after",
            cursor_field="last_id",
        )
        project_ids = [
            str(project["id"])
            for page in pages
            for project in page["data"]
            if isinstance(project, dict) and project.get("id")
        ]

        results = await asyncio.gather(
            *(self._fetch_project_keys(project_id) for project_id in project_ids),
            return_exceptions=True,
        )

        names: "dict[str, str]" = {}
        for project_id, result in zip(project_ids, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "openai_project_keys_failed",
                    project_id=project_id,
                    error=str(result),
                )
                continue

            for key in result:
                key_id = key.get("id")
                name = (key.get("name") or "").strip()
                if key_id in wanted and name:
                    names[key_id] = name

        return names

    async def _fetch_project_keys(self, project_id: "str") -> "list[dict[str, Any]]":
        pages = await fetch_pages(
            self._client,
            f"{self._base_url}/projects/{project_id}/api_keys",
            [],
            cursor_param="after",
            cursor_field="last_id",
        )
        return [
            key for page in pages for key in page["data"] if isinstance(key, dict)
        ]
