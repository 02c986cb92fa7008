from costtop.models import GroupBy, Metric, Provider, Range
from costtop.navigation import (
    NavigationState,
    NoCommand,
    OptionsColumn,
    PromptCredentialsCommand,
    RefreshCommand,
    cycle,
)
from costtop.session import ProviderSession


class StubClient:
    pass


def _sessions(*with_credentials: "Provider") -> "dict[Provider, ProviderSession]":
    sessions = {p: ProviderSession(provider=p) for p in Provider}
    for provider in with_credentials:
        sessions[provider].set_client(StubClient())
    return sessions


class TestCycle:
    def test_wraps_both_ways(self) -> "None":
        options = ("a", "b", "c")
        assert cycle(options, "c", 1) == "a"
        assert cycle(options, "a", -1) == "c"


class TestColumns:
    def test_move_column_wraps_and_collapses(self) -> "None":
        nav = NavigationState(group_by_expanded=True)

        nav.move_column(-1)

        assert nav.column is OptionsColumn.RANGE
        assert not nav.group_by_expanded


class TestProviderSelection:
    def test_provider_without_credentials_opens_prompt(self) -> "None":
        nav = NavigationState()
        sessions = _sessions(Provider.OPENAI)

        command = nav.move_cursor(1, sessions)

        assert nav.provider is Provider.ANTHROPIC
        assert command == PromptCredentialsCommand(Provider.ANTHROPIC)
        assert nav.prompt_provider is Provider.ANTHROPIC

    def test_unfetched_provider_with_credentials_is_refreshed(self) -> "None":
        nav = NavigationState()
        sessions = _sessions(Provider.OPENAI, Provider.ANTHROPIC)

        command = nav.move_cursor(1, sessions)

        assert command == RefreshCommand(Provider.ANTHROPIC)
        assert nav.prompt_provider is None

    def test_fetched_provider_is_not_refreshed(self) -> "None":
        nav = NavigationState()
        sessions = _sessions(Provider.OPENAI, Provider.ANTHROPIC)
        sessions[Provider.ANTHROPIC].fetched = True

        assert nav.move_cursor(1, sessions) == NoCommand()

    def test_switching_provider_clears_filter(self) -> "None":
        nav = NavigationState(selected_filter="gpt-4o", filter_cursor_index=2)

        nav.select_provider(Provider.ANTHROPIC, _sessions(Provider.ANTHROPIC))

        assert nav.selected_filter is None
        assert nav.filter_cursor_index == 0


class TestMetricAndGroupBy:
    def test_cost_forces_model_grouping(self) -> "None":
        nav = NavigationState(group_by=GroupBy.API_KEYS, selected_filter="key_1")

        nav.set_metric(Metric.COST)

        assert nav.group_by is GroupBy.MODEL
        assert nav.selected_filter is None

    def test_api_keys_only_in_usage(self) -> "None":
        nav = NavigationState(metric=Metric.COST, column=OptionsColumn.GROUP_BY)

        nav.move_cursor(1, _sessions())
        assert nav.group_by is GroupBy.MODEL

        nav.set_group_by(GroupBy.API_KEYS)
        assert nav.group_by is GroupBy.MODEL

    def test_group_by_change_clears_filter(self) -> "None":
        nav = NavigationState(column=OptionsColumn.GROUP_BY, selected_filter="gpt-4o")

        nav.move_cursor(1, _sessions())

        assert nav.group_by is GroupBy.API_KEYS
        assert nav.selected_filter is None

    def test_range_cycles(self) -> "None":
        nav = NavigationState(column=OptionsColumn.RANGE)

        nav.move_cursor(1, _sessions())
        assert nav.range is Range.THIRTY_DAYS
        nav.move_cursor(1, _sessions())
        assert nav.range is Range.SEVEN_DAYS


class TestFilters:
    def test_expanded_group_by_moves_through_filters(self) -> "None":
        nav = NavigationState(column=OptionsColumn.GROUP_BY)
        nav.toggle_group_by_expansion()
        filters = ["gpt-3.5", "gpt-4"]

        nav.move_cursor(1, _sessions(), filters)
        assert nav.selected_filter == "gpt-3.5"
        nav.move_cursor(1, _sessions(), filters)
        assert nav.selected_filter == "gpt-4"
        nav.move_cursor(1, _sessions(), filters)
        assert nav.selected_filter is None
        assert nav.filter_cursor_index == 0
        nav.move_cursor(-1, _sessions(), filters)
        assert nav.selected_filter == "gpt-4"

    def test_reconcile_keeps_surviving_filter(self) -> "None":
        nav = NavigationState(selected_filter="gpt-4", filter_cursor_index=2)

        nav.reconcile_filter(["a", "b", "gpt-4"])

        assert nav.selected_filter == "gpt-4"
        assert nav.filter_cursor_index == 3

    def test_reconcile_resets_vanished_filter(self) -> "None":
        nav = NavigationState(selected_filter="gpt-4", filter_cursor_index=2)

        nav.reconcile_filter(["gpt-3.5"])

        assert nav.selected_filter is None
        assert nav.filter_cursor_index == 0
