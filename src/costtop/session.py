import time
from dataclasses import dataclass, field

from costtop.layout import clamp_scroll, max_scroll
from costtop.models import CostRecord, FetchOutcome, Metric, Provider, UsageRecord
from costtop.provider.base import ProviderClient


@dataclass
class ProviderSession:
    """
    ProviderSession owns everything the dashboard knows about one
    provider: its client (present once credentials are set), the
    latest records, per-metric errors and scroll positions.

    Fetch results are applied in a single apply() call. in_flight
    guards against a second fetch for the same session.
    """

    provider: "Provider"
    client: "ProviderClient | None" = None
    cost_records: "list[CostRecord]" = field(default_factory=list)
    usage_records: "list[UsageRecord]" = field(default_factory=list)
    cost_error: "str | None" = None
    usage_error: "str | None" = None
    key_names: "dict[str, str]" = field(default_factory=dict)
    in_flight: "bool" = False
    # set once the first fetch cycle completed
    fetched: "bool" = False
    last_fetched_at: "float | None" = None
    # None keeps the chart pinned to the most recent bars
    scroll_cost: "int | None" = None
    scroll_usage: "int | None" = None
    # (total bars, visible bars) of the last rendered frame
    window_cost: "tuple[int, int]" = (0, 0)
    window_usage: "tuple[int, int]" = (0, 0)

    @property
    def has_credentials(self) -> "bool":
        return self.client is not None

    @property
    def has_data(self) -> "bool":
        return bool(self.cost_records or self.usage_records)

    def set_client(self, client: "ProviderClient") -> "ProviderClient | None":
        """
        installs a new client and marks the session as never fetched.
        Returns the replaced client so the caller can close it.
        """
        previous = self.client
        self.client = client
        self.fetched = False
        return previous

    def error_for(self, metric: "Metric") -> "str | None":
        if metric is Metric.COST:
            return self.cost_error
        return self.usage_error

    def begin_fetch(self) -> "bool":
        """
        marks the session as fetching. Returns False when no fetch may
        start: a fetch is already running or there are no credentials.
        """
        if self.in_flight or self.client is None:
            return False
        self.in_flight = True
        self.cost_error = None
        self.usage_error = None
        return True

    def apply(self, outcome: "FetchOutcome") -> "None":
        """
        replaces the session's records and errors with a completed
        fetch outcome.
        """
        if outcome.provider is not self.provider:
            raise ValueError(
                f"outcome for {outcome.provider.value} applied to {self.provider.value}"
            )
        self.cost_records = outcome.cost_records
        self.usage_records = outcome.usage_records
        self.key_names = outcome.key_names
        self.cost_error = outcome.cost_error
        self.usage_error = outcome.usage_error
        self.in_flight = False
        self.fetched = True
        self.last_fetched_at = time.time()

    def abort_fetch(self, error: "str") -> "None":
        """
        ends a fetch that crashed before producing an outcome; the
        previous records are kept.
        """
        self.in_flight = False
        self.fetched = True
        self.cost_error = error
        self.usage_error = error

    def scroll_offset(self, metric: "Metric") -> "int | None":
        if metric is Metric.COST:
            return self.scroll_cost
        return self.scroll_usage

    def scroll_window(self, metric: "Metric") -> "tuple[int, int]":
        if metric is Metric.COST:
            return self.window_cost
        return self.window_usage

    def scroll_limit(self, metric: "Metric") -> "int":
        return max_scroll(*self.scroll_window(metric))

    def remember_scroll(
        self,
        metric: "Metric",
        start: "int",
        total_bars: "int",
        visible_count: "int",
    ) -> "None":
        """
        stores the clamped window the last frame actually showed. A
        window at the right edge stays pinned to the latest bars.
        """
        offset = None if start >= max_scroll(total_bars, visible_count) else start
        if metric is Metric.COST:
            self.scroll_cost = offset
            self.window_cost = (total_bars, visible_count)
        else:
            self.scroll_usage = offset
            self.window_usage = (total_bars, visible_count)

    def scroll(self, metric: "Metric", delta: "int") -> "None":
        total_bars, visible_count = self.scroll_window(metric)
        limit = max_scroll(total_bars, visible_count)
        current = self.scroll_offset(metric)
        start = limit if current is None else current
        offset: "int | None" = clamp_scroll(start, delta, total_bars, visible_count)
        if offset >= limit:
            offset = None
        if metric is Metric.COST:
            self.scroll_cost = offset
        else:
            self.scroll_usage = offset
