import datetime as dt
from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol

import structlog

from costtop.errors import AllSourcesFailedError, PartialFetchError
from costtop.models import CostRecord, UsageRecord

logger = structlog.get_logger()


class ProviderClient(Protocol):
    """
    ProviderClient stands as a common protocol that both vendor
    clients must satisfy.

    Clients fetch cost and usage data from a start day onwards and
    return vendor-agnostic record objects. Failures are raised as
    FetchError subclasses.
    """

    @property
    def name(self) -> "str": ...

    async def fetch_costs(self, start: "dt.datetime") -> "Sequence[CostRecord]": ...

    async def fetch_usage(self, start: "dt.datetime") -> "Sequence[UsageRecord]": ...

    async def resolve_key_names(
        self,
        api_key_ids: "Iterable[str]",
    ) -> "Mapping[str, str]": ...

    async def close(self) -> "None": ...


def merge_source_results(
    provider: "str",
    results: "Mapping[str, list[UsageRecord] | BaseException]",
) -> "list[UsageRecord]":
    """
    merges the outcome of concurrently fetched usage sub-resources.

    Records of every successful source are concatenated in source
    order. Failed sources are only logged as long as some source
    produced records; if none did and at least one failed, the
    whole usage fetch fails with every source's error.
    """
    records: "list[UsageRecord]" = []
    failures: "dict[str, BaseException]" = {}

    for source, result in results.items():
        if isinstance(result, BaseException):
            failures[source] = result
            continue
        records.extend(result)

    if failures and not records:
        raise AllSourcesFailedError(failures)

    if failures:
        logger.warning(
            "usage_partial_failure",
            provider=provider,
            sources=sorted(failures),
            exc_info=PartialFetchError(failures),
        )

    return records
