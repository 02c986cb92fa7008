import enum
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TypeVar, Union

from costtop.models import GroupBy, Metric, Provider, Range
from costtop.session import ProviderSession

T = TypeVar("T")


class OptionsColumn(enum.Enum):
    PROVIDER = "provider"
    METRIC = "metric"
    GROUP_BY = "group_by"
    RANGE = "range"


COLUMNS: "tuple[OptionsColumn, ...]" = tuple(OptionsColumn)
PROVIDERS: "tuple[Provider, ...]" = (Provider.OPENAI, Provider.ANTHROPIC)
METRICS: "tuple[Metric, ...]" = (Metric.USAGE, Metric.COST)
GROUP_BYS: "tuple[GroupBy, ...]" = (GroupBy.MODEL, GroupBy.API_KEYS)
RANGES: "tuple[Range, ...]" = (Range.SEVEN_DAYS, Range.THIRTY_DAYS)


@dataclass(frozen=True)
class NoCommand:
    pass


@dataclass(frozen=True)
class RefreshCommand:
    provider: "Provider"


@dataclass(frozen=True)
class PromptCredentialsCommand:
    provider: "Provider"


@dataclass(frozen=True)
class SubmitCredentialsCommand:
    provider: "Provider"
    api_key: "str"


@dataclass(frozen=True)
class ScrollCommand:
    # bars; negative scrolls towards older days
    delta: "int"


@dataclass(frozen=True)
class QuitCommand:
    pass


Command = Union[
    NoCommand,
    RefreshCommand,
    PromptCredentialsCommand,
    SubmitCredentialsCommand,
    ScrollCommand,
    QuitCommand,
]


def cycle(options: "Sequence[T]", current: "T", delta: "int") -> "T":
    """
    steps delta positions through options, wrapping around both ends.
    """
    index = options.index(current) if current in options else 0
    return options[(index + delta) % len(options)]


@dataclass
class NavigationState:
    """
    NavigationState is the dashboard's selection state machine. It is
    only mutated by the input path; every transition returns the
    command the dashboard has to carry out, if any.

    Invariants: selected_filter is None or one of the filters of the
    current provider/metric/group-by/range (see reconcile_filter), and
    group_by is MODEL whenever metric is COST.
    """

    provider: "Provider" = Provider.OPENAI
    metric: "Metric" = Metric.USAGE
    group_by: "GroupBy" = GroupBy.MODEL
    range: "Range" = Range.SEVEN_DAYS
    selected_filter: "str | None" = None
    # 0 is "All", i > 0 is filters[i - 1]
    filter_cursor_index: "int" = 0
    column: "OptionsColumn" = OptionsColumn.PROVIDER
    group_by_expanded: "bool" = False
    show_segment_values: "bool" = False
    # provider whose credentials are being asked for
    prompt_provider: "Provider | None" = None

    def clear_filter(self) -> "None":
        self.selected_filter = None
        self.filter_cursor_index = 0

    def move_column(self, delta: "int") -> "Command":
        self.column = cycle(COLUMNS, self.column, delta)
        self.group_by_expanded = False
        return NoCommand()

    def move_cursor(
        self,
        delta: "int",
        sessions: "Mapping[Provider, ProviderSession]",
        filters: "Sequence[str]" = (),
    ) -> "Command":
        """
        moves the selection inside the active column.
        """
        if self.column is OptionsColumn.PROVIDER:
            return self.select_provider(cycle(PROVIDERS, self.provider, delta), sessions)

        if self.column is OptionsColumn.METRIC:
            self.set_metric(cycle(METRICS, self.metric, delta))
        elif self.column is OptionsColumn.GROUP_BY:
            if self.group_by_expanded:
                self.move_filter_cursor(delta, filters)
            elif self.metric is Metric.USAGE:
                self.set_group_by(cycle(GROUP_BYS, self.group_by, delta))
        elif self.column is OptionsColumn.RANGE:
            self.range = cycle(RANGES, self.range, delta)

        return NoCommand()

    def select_provider(
        self,
        provider: "Provider",
        sessions: "Mapping[Provider, ProviderSession]",
    ) -> "Command":
        """
        switches the displayed provider. A provider without credentials
        opens the credential prompt; one that was never fetched gets a
        first fetch.
        """
        if provider is not self.provider:
            self.provider = provider
            self.clear_filter()

        session = sessions[provider]
        if not session.has_credentials:
            self.prompt_provider = provider
            return PromptCredentialsCommand(provider)

        self.prompt_provider = None
        if not session.fetched and not session.in_flight:
            return RefreshCommand(provider)
        return NoCommand()

    def set_metric(self, metric: "Metric") -> "None":
        if metric is self.metric:
            return
        self.metric = metric
        self.clear_filter()
        # API key grouping only exists for usage
        if metric is Metric.COST:
            self.group_by = GroupBy.MODEL

    def set_group_by(self, group_by: "GroupBy") -> "None":
        if group_by is self.group_by:
            return
        if group_by is GroupBy.API_KEYS and self.metric is not Metric.USAGE:
            return
        self.group_by = group_by
        self.clear_filter()

    def toggle_group_by_expansion(self) -> "None":
        # collapsing keeps the selected filter
        self.group_by_expanded = not self.group_by_expanded

    def move_filter_cursor(self, delta: "int", filters: "Sequence[str]") -> "None":
        options = len(filters) + 1
        self.filter_cursor_index = (self.filter_cursor_index + delta) % options
        if self.filter_cursor_index == 0:
            self.selected_filter = None
        else:
            self.selected_filter = filters[self.filter_cursor_index - 1]

    def reconcile_filter(self, filters: "Sequence[str]") -> "None":
        """
        re-anchors the filter on the current filter list: a filter that
        disappeared resets to "All", a surviving one gets its cursor
        index back.
        """
        if self.selected_filter is None:
            self.filter_cursor_index = 0
        elif self.selected_filter in filters:
            self.filter_cursor_index = filters.index(self.selected_filter) + 1
        else:
            self.clear_filter()

    def toggle_segment_values(self) -> "None":
        self.show_segment_values = not self.show_segment_values

    def close_prompt(self) -> "None":
        self.prompt_provider = None
