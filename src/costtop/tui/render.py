from rich.align import Align
from rich.console import Group, RenderableType
from rich.layout import Layout
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from costtop.colors import Palette
from costtop.format import format_tokens
from costtop.models import GroupBy, Metric
from costtop.navigation import COLUMNS, GROUP_BYS, METRICS, PROVIDERS, RANGES, OptionsColumn
from costtop.summary import PeriodChange
from costtop.view import (
    FOOTER_HEIGHT,
    ChartFrame,
    ChartState,
    DashboardFrame,
    OptionsFrame,
    SummaryFrame,
    chart_region,
)

COLUMN_TITLES = {
    OptionsColumn.PROVIDER: "Provider",
    OptionsColumn.METRIC: "Metric",
    OptionsColumn.GROUP_BY: "Group By",
    OptionsColumn.RANGE: "Range",
}

BAR_CHAR = " "
CAP_CHAR = "≈"
TRACK_CHAR = "─"
THUMB_CHAR = "━"


class Canvas:
    """
    fixed size character grid; each cell carries its own rich style.
    """

    def __init__(self, width: "int", height: "int") -> "None":
        self.width = width
        self.height = height
        self._cells = [[(" ", "")] * width for _ in range(height)]

    def put(self, x: "int", y: "int", text: "str", style: "str" = "") -> "None":
        if not 0 <= y < self.height:
            return
        row = self._cells[y]
        for i, char in enumerate(text):
            if 0 <= x + i < self.width:
                row[x + i] = (char, style)

    def fill(self, x: "int", y: "int", width: "int", char: "str", style: "str") -> "None":
        self.put(x, y, char * width, style)

    def to_text(self) -> "Text":
        text = Text(no_wrap=True, overflow="crop")
        for y, row in enumerate(self._cells):
            if y:
                text.append("\n")
            for char, style in row:
                text.append(char, style=style or None)
        return text


def _centered(label: "str", width: "int") -> "int":
    return max((width - len(label)) // 2, 0)


def render_bars(chart: "ChartFrame", palette: "Palette") -> "Text":
    """
    draws the stacked bars: a total label above each bar, the bar
    rows, a date label row and the scrollbar row.
    """
    layout = chart.layout
    bar_height = chart.bar_height
    canvas = Canvas(chart.width, bar_height + 3)
    if layout is None:
        return canvas.to_text()

    bar_width = layout.bar_width
    bottom = bar_height

    for bar in chart.bars:
        y = bottom
        for segment in bar.segments:
            style = f"on {segment.color}"
            for row in range(segment.height):
                canvas.fill(bar.x, y - row, bar_width, BAR_CHAR, style)
            if segment.label and segment.height > 0 and len(segment.label) <= bar_width:
                middle = y - (segment.height - 1) // 2
                canvas.put(
                    bar.x + _centered(segment.label, bar_width),
                    middle,
                    segment.label,
                    f"bold black {style}",
                )
            y -= segment.height

        top = y + 1
        if bar.capped and bar.segments:
            canvas.fill(bar.x, top, bar_width, CAP_CHAR, f"bold {palette.error} on {bar.segments[-1].color}")

        total_label = bar.total_label[:bar_width]
        canvas.put(
            bar.x + _centered(total_label, bar_width),
            max(top - 1, 0),
            total_label,
            f"bold {palette.accent}" if bar.capped else "bold",
        )
        canvas.put(
            bar.x + _centered(bar.date_label, bar_width),
            bottom + 1,
            bar.date_label,
            "dim",
        )

    if chart.scrollbar is not None:
        canvas.fill(0, bottom + 2, chart.width, TRACK_CHAR, "dim")
        canvas.fill(
            chart.scrollbar.position,
            bottom + 2,
            chart.scrollbar.size,
            THUMB_CHAR,
            palette.primary,
        )

    return canvas.to_text()


def render_legend(chart: "ChartFrame") -> "RenderableType":
    lines = [Text(chart.legend_title, style="bold underline")]
    for entry in chart.legend:
        line = Text()
        line.append("■ ", style=entry.color)
        line.append(entry.label)
        line.append(f"  {entry.detail}", style="dim")
        lines.append(line)
    return Group(*lines)


def render_chart(frame: "DashboardFrame", width: "int", height: "int") -> "RenderableType":
    chart = frame.chart
    palette = frame.palette

    if chart.state is not ChartState.READY:
        style = palette.error if chart.state is ChartState.ERROR else "dim"
        message = Align.center(Text(chart.message, style=style), vertical="middle")
        if not chart.legend:
            return message
        body: "RenderableType" = message
    else:
        body = render_bars(chart, palette)

    chart_width, _ = chart_region(width, height)
    grid = Table.grid(expand=True)
    grid.add_column(width=chart_width, no_wrap=True)
    grid.add_column(ratio=1)
    grid.add_row(body, render_legend(chart))
    return grid


def _option_line(label: "str", selected: "bool", active: "bool", palette: "Palette") -> "Text":
    if selected and active:
        return Text(f"▸ {label}", style=f"bold {palette.selected_fg} on {palette.selected_bg}")
    if selected:
        return Text(f"▸ {label}", style=f"bold {palette.primary}")
    return Text(f"  {label}")


def render_options(frame: "DashboardFrame") -> "RenderableType":
    nav = frame.nav
    options: "OptionsFrame" = frame.options
    palette = frame.palette

    table = Table(expand=True, box=None, pad_edge=False)
    for column in COLUMNS:
        title_style = (
            f"bold {palette.selected_fg} on {palette.selected_bg}"
            if column is nav.column
            else "bold"
        )
        table.add_column(COLUMN_TITLES[column], header_style=title_style)

    providers = []
    for provider in PROVIDERS:
        label = provider.label
        if not options.credentials.get(provider, False):
            label += " (no key)"
        providers.append(
            _option_line(
                label,
                provider is nav.provider,
                nav.column is OptionsColumn.PROVIDER,
                palette,
            )
        )

    metrics = [
        _option_line(m.label, m is nav.metric, nav.column is OptionsColumn.METRIC, palette)
        for m in METRICS
    ]

    group_bys: "list[Text]" = []
    for group_by in GROUP_BYS:
        line = _option_line(
            group_by.label,
            group_by is nav.group_by,
            nav.column is OptionsColumn.GROUP_BY and not nav.group_by_expanded,
            palette,
        )
        if group_by is GroupBy.API_KEYS and nav.metric is Metric.COST:
            line.stylize("dim")
        group_bys.append(line)
    if nav.group_by_expanded:
        for index, label in enumerate(("All",) + options.filter_labels):
            group_bys.append(
                _option_line(
                    f"  {label}",
                    index == nav.filter_cursor_index,
                    nav.column is OptionsColumn.GROUP_BY,
                    palette,
                )
            )

    ranges = [
        _option_line(r.label, r is nav.range, nav.column is OptionsColumn.RANGE, palette)
        for r in RANGES
    ]

    table.add_row(Group(*providers), Group(*metrics), Group(*group_bys), Group(*ranges))
    return table


def _change_text(change: "PeriodChange | None") -> "Text":
    if change is None:
        return Text("")
    style = "red" if change.percent >= 0 else "green"
    return Text(f" {change.arrow} {abs(change.percent):.1f}%", style=style)


def render_summary(summary: "SummaryFrame", palette: "Palette") -> "RenderableType":
    if summary.loading:
        return Align.center(Text("Loading...", style="dim"), vertical="middle")

    lines: "list[Text]" = [Text(f"{summary.range_label}  {summary.date_range}", style="dim")]

    if summary.cost is not None:
        cost = summary.cost
        line = Text(f"{summary.cost_heading}  ", style=f"bold {palette.primary}")
        line.append(f"${cost.total:.2f}", style="bold")
        line.append(f"  (${cost.average_per_day:.2f}/day)", style="dim")
        line.append_text(_change_text(cost.change))
        lines.append(line)

    if summary.usage is not None:
        usage = summary.usage
        line = Text(f"{summary.usage_heading}  ", style=f"bold {palette.primary}")
        line.append(format_tokens(usage.total_tokens), style="bold")
        line.append(
            f"  (in {format_tokens(usage.input_tokens)} / out {format_tokens(usage.output_tokens)},"
            f" {format_tokens(usage.average_per_day)}/day)",
            style="dim",
        )
        line.append_text(_change_text(usage.change))
        lines.append(line)

        details = Text(style="dim")
        if usage.total_requests is not None:
            details.append(f"Requests: {usage.total_requests:,}")
            if usage.requests_per_day is not None:
                details.append(f" ({usage.requests_per_day:.0f}/day)")
        if usage.cache_hit_rate is not None:
            if details.plain:
                details.append("  ")
            details.append(f"Cache hit rate: {usage.cache_hit_rate:.1f}%")
        if details.plain:
            lines.append(details)

    return Group(*lines)


def render_prompt(frame: "DashboardFrame") -> "RenderableType":
    provider = frame.prompt_provider
    if provider is None:
        return Text("")
    body = Group(
        Text(f"Enter {provider.label} Admin API key:", style="bold"),
        Text(frame.prompt_text + "▏", style=frame.palette.primary),
        Text("enter to save, esc to cancel", style="dim"),
    )
    return Align.center(body, vertical="middle")


def render_footer(frame: "DashboardFrame") -> "RenderableType":
    text = Text("  ".join(frame.key_hints), style="dim")
    if frame.in_flight:
        text.append("  refreshing...", style=frame.palette.accent)
    return text


def render(frame: "DashboardFrame", width: "int", height: "int") -> "Layout":
    """
    lays out one dashboard frame for a width x height terminal.
    """
    palette = frame.palette
    root = Layout()
    header = Layout(size=max(height // 4, 1))
    body = Layout(ratio=1)
    footer = Layout(size=FOOTER_HEIGHT)
    root.split_column(header, body, footer)

    header.split_row(
        Layout(
            Panel(render_options(frame), title="Options", border_style=palette.primary),
            ratio=3,
        ),
        Layout(
            Panel(
                render_summary(frame.summary, palette),
                title="Summary",
                border_style=palette.primary,
            ),
            ratio=2,
        ),
    )

    if frame.prompt_provider is not None:
        body.update(
            Panel(render_prompt(frame), title="API Key", border_style=palette.accent)
        )
    else:
        body.update(
            Panel(
                render_chart(frame, width, height),
                title=frame.chart.title,
                border_style=palette.primary,
            )
        )

    footer.update(Panel(render_footer(frame), border_style="dim"))
    return root
