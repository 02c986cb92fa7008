from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from costtop.models import FetchOutcome

# fetch stages reported in costtop_fetch_errors_total
STAGE_COST = "cost"
STAGE_USAGE = "usage"
STAGE_KEY_NAMES = "key_names"
STAGE_CRASH = "crash"


class FetchMetrics:
    """
    records dashboard fetch cycles as Prometheus self-metrics.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._fetch_duration: "Histogram" = Histogram(
            "costtop_fetch_duration_seconds",
            "Duration of provider fetch cycles",
            ["provider"],
            registry=registry,
        )
        self._fetch_errors: "Counter" = Counter(
            "costtop_fetch_errors_total",
            "Total number of fetch errors by provider and stage",
            ["provider", "stage"],
            registry=registry,
        )
        self._last_fetch_success: "Gauge" = Gauge(
            "costtop_last_fetch_success_timestamp_seconds",
            "Unix timestamp of last fetch cycle without errors per provider",
            ["provider"],
            registry=registry,
        )
        self._records: "Gauge" = Gauge(
            "costtop_records",
            "Records held by the dashboard after the last fetch",
            ["provider", "kind"],
            registry=registry,
        )

    def observe_fetch_duration(self, provider: "str", duration_seconds: "float") -> "None":
        self._fetch_duration.labels(provider=provider).observe(duration_seconds)

    def inc_fetch_error(self, provider: "str", stage: "str") -> "None":
        self._fetch_errors.labels(provider=provider, stage=stage).inc()

    def set_last_fetch_success(self, provider: "str", timestamp: "float") -> "None":
        self._last_fetch_success.labels(provider=provider).set(timestamp)

    def record_outcome(self, outcome: "FetchOutcome", timestamp: "float") -> "None":
        """
        updates error counters and record gauges from a completed
        fetch.
        """
        provider = outcome.provider.value
        if outcome.cost_error:
            self.inc_fetch_error(provider, STAGE_COST)
        if outcome.usage_failed:
            self.inc_fetch_error(provider, STAGE_USAGE)
        if outcome.key_names_failed:
            self.inc_fetch_error(provider, STAGE_KEY_NAMES)

        self._records.labels(provider=provider, kind="cost").set(len(outcome.cost_records))
        self._records.labels(provider=provider, kind="usage").set(
            len(outcome.usage_records)
        )

        if not outcome.cost_error and not outcome.usage_error:
            self.set_last_fetch_success(provider, timestamp)
