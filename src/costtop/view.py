import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from costtop.colors import FALLBACK_COLOR, PALETTES, Palette, color_table
from costtop.format import (
    COST_DISPLAY_THRESHOLD,
    compact_date_label,
    format_bar_total,
    format_cost,
    format_tokens,
    key_display_name,
    short_date,
)
from costtop.layout import (
    DEFAULT_SETTINGS,
    BarLayout,
    LayoutSettings,
    ScrollbarThumb,
    SmartScale,
    bar_layout,
    scrollbar_thumb,
    segment_heights,
    smart_scale,
)
from costtop.models import GroupBy, Metric, Provider
from costtop.navigation import NavigationState
from costtop.session import ProviderSession
from costtop.store import (
    apply_filter,
    available_categories,
    category_totals,
    cost_amount,
    group_totals,
    records_in_range,
    usage_category_totals,
    usage_tokens,
)
from costtop.summary import CostSummary, UsageSummary, summarize

# rows of the chart area not used by bars
VALUE_LABEL_HEIGHT = 1
DATE_LABEL_HEIGHT = 1
SCROLLBAR_HEIGHT = 1
LEGEND_WIDTH = 50
# chart panel borders
BORDER = 2
FOOTER_HEIGHT = 3


class ChartState(enum.Enum):
    NEEDS_KEY = "needs_key"
    ERROR = "error"
    LOADING = "loading"
    EMPTY = "empty"
    NO_SPACE = "no_space"
    READY = "ready"


@dataclass(frozen=True, slots=True)
class SegmentView:
    category: "str"
    color: "str"
    height: "int"
    value: "float"
    # text drawn inside the segment, empty when values are hidden
    label: "str" = ""


@dataclass(frozen=True, slots=True)
class BarView:
    x: "int"
    date_label: "str"
    total: "float"
    total_label: "str"
    # total exceeds the compressed scale; drawn at full height
    capped: "bool"
    segments: "tuple[SegmentView, ...]"


@dataclass(frozen=True, slots=True)
class LegendEntry:
    category: "str"
    label: "str"
    color: "str"
    detail: "str"


@dataclass(frozen=True)
class ChartFrame:
    state: "ChartState"
    title: "str"
    message: "str" = ""
    legend_title: "str" = ""
    bars: "tuple[BarView, ...]" = ()
    legend: "tuple[LegendEntry, ...]" = ()
    layout: "BarLayout | None" = None
    scale: "SmartScale | None" = None
    scrollbar: "ScrollbarThumb | None" = None
    total_bars: "int" = 0
    bar_height: "int" = 0
    width: "int" = 0


@dataclass(frozen=True)
class SummaryFrame:
    loading: "bool"
    range_label: "str"
    cost: "CostSummary | None" = None
    usage: "UsageSummary | None" = None
    cost_heading: "str" = "Cost: All"
    usage_heading: "str" = "Usage: All"
    date_range: "str" = ""


@dataclass(frozen=True)
class OptionsFrame:
    credentials: "Mapping[Provider, bool]"
    filters: "tuple[str, ...]"
    filter_labels: "tuple[str, ...]"


@dataclass(frozen=True)
class DashboardFrame:
    provider: "Provider"
    palette: "Palette"
    nav: "NavigationState"
    options: "OptionsFrame"
    summary: "SummaryFrame"
    chart: "ChartFrame"
    prompt_provider: "Provider | None" = None
    # masked credential prompt input
    prompt_text: "str" = ""
    in_flight: "bool" = False
    key_hints: "tuple[str, ...]" = field(
        default=(
            "←/→ column",
            "↑/↓ select",
            "enter filters",
            "h/l scroll",
            "d values",
            "r refresh",
            "q quit",
        )
    )


def _records(session: "ProviderSession", metric: "Metric") -> "list":
    if metric is Metric.COST:
        return session.cost_records
    return session.usage_records


def _metric_fn(metric: "Metric") -> "Callable":
    return cost_amount if metric is Metric.COST else usage_tokens


def category_label(
    category: "str",
    group_by: "GroupBy",
    key_names: "Mapping[str, str]",
) -> "str":
    if group_by is GroupBy.API_KEYS:
        return key_display_name(category, key_names)
    return category


def current_filters(session: "ProviderSession", nav: "NavigationState") -> "list[str]":
    """
    lists the filter choices for the current selection, computed over
    the range-limited but unfiltered records.
    """
    ranged = records_in_range(_records(session, nav.metric), nav.range)
    return available_categories(ranged, nav.group_by)


def chart_region(width: "int", height: "int") -> "tuple[int, int]":
    """
    returns the (width, height) left for bars once the header, footer,
    borders and legend are laid out.
    """
    header = height // 4
    chart_height = height - header - FOOTER_HEIGHT - BORDER
    inner_width = width - BORDER
    legend = min(LEGEND_WIDTH, inner_width // 3)
    return max(inner_width - legend, 0), max(chart_height, 0)


def chart_title(provider: "Provider", nav: "NavigationState", key_names: "Mapping[str, str]") -> "str":
    if nav.metric is Metric.COST:
        title = f"{provider.label} - Daily Cost by Model"
    else:
        title = f"{provider.label} - Daily Token Usage by {nav.group_by.label}"
    if nav.selected_filter is not None:
        title += f" - {category_label(nav.selected_filter, nav.group_by, key_names)}"
    return title


def _legend(
    records: "list",
    nav: "NavigationState",
    colors: "Mapping[str, str]",
    key_names: "Mapping[str, str]",
) -> "tuple[str, tuple[LegendEntry, ...]]":
    if nav.metric is Metric.COST:
        totals = category_totals(records, GroupBy.MODEL, cost_amount)
        items = [c for c in sorted(totals) if totals[c] >= COST_DISPLAY_THRESHOLD]
        if not items:
            items = sorted(totals)
        entries = tuple(
            LegendEntry(
                category=c,
                label=c,
                color=colors.get(c, FALLBACK_COLOR),
                detail=f"Cost: {format_cost(totals[c])}",
            )
            for c in items
        )
        return "Models (>$1)", entries

    usage = usage_category_totals(records, nav.group_by)
    entries = tuple(
        LegendEntry(
            category=c,
            label=category_label(c, nav.group_by, key_names),
            color=colors.get(c, FALLBACK_COLOR),
            detail=f"In: {format_tokens(usage[c][0])} Out: {format_tokens(usage[c][1])}",
        )
        for c in sorted(usage)
    )
    title = "API Keys" if nav.group_by is GroupBy.API_KEYS else "Models"
    return title, entries


def build_chart(
    session: "ProviderSession",
    nav: "NavigationState",
    width: "int",
    height: "int",
    settings: "LayoutSettings" = DEFAULT_SETTINGS,
) -> "ChartFrame":
    """
    derives the chart of the current selection for a width x height
    bar region.
    """
    provider = session.provider
    metric = nav.metric
    title = chart_title(provider, nav, session.key_names)

    error = session.error_for(metric)
    if error:
        return ChartFrame(
            state=ChartState.ERROR,
            title=title,
            message=f"Error loading {provider.label} {metric.label} data: {error}",
        )

    if not session.has_credentials:
        return ChartFrame(
            state=ChartState.NEEDS_KEY,
            title=title,
            message=f"Connect an {provider.label} Admin API key to view this dashboard.",
        )

    ranged = records_in_range(_records(session, metric), nav.range)
    if not ranged and (session.in_flight or not session.fetched):
        return ChartFrame(
            state=ChartState.LOADING,
            title=title,
            message=f"Loading {provider.label} {metric.label} data...",
        )

    empty_message = (
        f"No {provider.label} {metric.label} data available for the selected window."
    )
    filtered = apply_filter(ranged, nav.selected_filter, nav.group_by)
    if not filtered:
        return ChartFrame(state=ChartState.EMPTY, title=title, message=empty_message)

    palette = PALETTES[provider]
    colors = color_table(
        session.cost_records, session.usage_records, nav.group_by, palette
    )
    metric_fn = _metric_fn(metric)
    totals = group_totals(filtered, nav.group_by, metric_fn)
    dates = list(totals)
    day_totals = [sum(per_day.values()) for per_day in totals.values()]
    legend_title, legend = _legend(filtered, nav, colors, session.key_names)

    scale = smart_scale(day_totals, settings)
    if scale is None:
        return ChartFrame(state=ChartState.EMPTY, title=title, message=empty_message)

    no_space = ChartFrame(
        state=ChartState.NO_SPACE,
        title=title,
        message=f"Not enough space to render {metric.value} chart",
        legend_title=legend_title,
        legend=legend,
    )
    bar_height = height - VALUE_LABEL_HEIGHT - DATE_LABEL_HEIGHT - SCROLLBAR_HEIGHT
    if bar_height <= 0:
        return no_space

    layout = bar_layout(len(dates), width, session.scroll_offset(metric), settings)
    if layout is None:
        return no_space

    categories = sorted({c for per_day in totals.values() for c in per_day})
    is_cost = metric is Metric.COST
    bars: "list[BarView]" = []

    for visible_index, day in enumerate(dates[layout.start_index : layout.end_index]):
        per_day = totals[day]
        total = sum(per_day.values())
        segments = segment_heights(
            [(c, per_day[c]) for c in categories if c in per_day],
            scale,
            bar_height,
        )
        bars.append(
            BarView(
                x=layout.bar_x(visible_index),
                date_label=compact_date_label(short_date(day), layout.bar_width),
                total=total,
                total_label=format_bar_total(total, is_cost),
                capped=scale.is_capped(total),
                segments=tuple(
                    SegmentView(
                        category=s.category,
                        color=colors.get(s.category, FALLBACK_COLOR),
                        height=s.height,
                        value=s.value,
                        label=(
                            format_bar_total(s.value, is_cost)
                            if nav.show_segment_values
                            else ""
                        ),
                    )
                    for s in segments
                ),
            )
        )

    return ChartFrame(
        state=ChartState.READY,
        title=title,
        legend_title=legend_title,
        bars=tuple(bars),
        legend=legend,
        layout=layout,
        scale=scale,
        scrollbar=scrollbar_thumb(
            len(dates), layout.visible_count, layout.start_index, width
        ),
        total_bars=len(dates),
        bar_height=bar_height,
        width=width,
    )


def build_summary(session: "ProviderSession", nav: "NavigationState") -> "SummaryFrame":
    if session.in_flight or not session.has_data:
        return SummaryFrame(loading=True, range_label=nav.range.label)

    cost, usage = summarize(
        session.cost_records,
        session.usage_records,
        nav.metric,
        nav.range,
        nav.selected_filter,
        nav.group_by,
    )
    bounds = cost.bounds or usage.bounds
    date_range = (
        f"{bounds[0]:%m/%d} - {bounds[1]:%m/%d}" if bounds else "No data in selected range"
    )

    usage_heading = "Usage: All"
    if usage.filter is not None:
        label = category_label(usage.filter, nav.group_by, session.key_names)
        usage_heading = f"Usage: {label}"

    return SummaryFrame(
        loading=False,
        range_label=nav.range.label,
        cost=cost,
        usage=usage,
        cost_heading=f"Cost: {cost.filter}" if cost.filter is not None else "Cost: All",
        usage_heading=usage_heading,
        date_range=date_range,
    )


def build_frame(
    sessions: "Mapping[Provider, ProviderSession]",
    nav: "NavigationState",
    width: "int",
    height: "int",
    settings: "LayoutSettings" = DEFAULT_SETTINGS,
    prompt_input: "str" = "",
) -> "DashboardFrame":
    """
    derives everything the renderer needs for one frame. Reconciles
    the filter with the current filter list and remembers the scroll
    window the chart ended up showing.
    """
    session = sessions[nav.provider]
    filters = current_filters(session, nav)
    nav.reconcile_filter(filters)

    chart_width, chart_height = chart_region(width, height)
    chart = build_chart(session, nav, chart_width, chart_height, settings)
    if chart.layout is not None:
        session.remember_scroll(
            nav.metric,
            chart.layout.start_index,
            chart.total_bars,
            chart.layout.visible_count,
        )

    return DashboardFrame(
        provider=nav.provider,
        palette=PALETTES[nav.provider],
        nav=nav,
        options=OptionsFrame(
            credentials={p: s.has_credentials for p, s in sessions.items()},
            filters=tuple(filters),
            filter_labels=tuple(
                category_label(f, nav.group_by, session.key_names) for f in filters
            ),
        ),
        summary=build_summary(session, nav),
        chart=chart,
        prompt_provider=nav.prompt_provider,
        prompt_text="*" * len(prompt_input),
        in_flight=session.in_flight,
    )
