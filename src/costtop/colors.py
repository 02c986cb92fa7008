from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from costtop.models import CostRecord, GroupBy, Provider, UsageRecord
from costtop.store import group_key


@dataclass(frozen=True, slots=True)
class Palette:
    """
    rich color strings used to draw one provider's dashboard.
    """

    primary: "str"
    accent: "str"
    error: "str"
    selected_fg: "str"
    selected_bg: "str"
    chart: "tuple[str, ...]"


PALETTES: "dict[Provider, Palette]" = {
    Provider.OPENAI: Palette(
        primary="cyan",
        accent="green",
        error="red",
        selected_fg="black",
        selected_bg="cyan",
        chart=("blue", "cyan", "green", "magenta", "yellow", "bright_blue"),
    ),
    Provider.ANTHROPIC: Palette(
        primary="#CC785C",
        accent="#61AAF2",
        error="#BF4D43",
        selected_fg="white",
        selected_bg="#CC785C",
        chart=("#CC785C", "#D4A27F", "#EBDBBC", "#BF4D43", "#E5E4DF", "#F0F0EB"),
    ),
}

# drawn for a category missing from the table
FALLBACK_COLOR = "white"


def assign_colors(
    categories: "Iterable[str]",
    chart_colors: "Sequence[str]",
) -> "dict[str, str]":
    """
    maps each category to a chart color. Keys are sorted before
    indexing into the palette so the mapping only depends on the set
    of categories, never on the order they were seen in.
    """
    if not chart_colors:
        raise ValueError("palette has no chart colors")
    return {
        category: chart_colors[i % len(chart_colors)]
        for i, category in enumerate(sorted(set(categories)))
    }


def unified_categories(
    cost_records: "Iterable[CostRecord]",
    usage_records: "Iterable[UsageRecord]",
    group_by: "GroupBy",
) -> "set[str]":
    """
    union of cost categories and usage categories, so a model that
    shows up in both charts is colored the same in both.
    """
    categories = {group_key(r, GroupBy.MODEL) for r in cost_records}
    categories.update(group_key(r, group_by) for r in usage_records)
    return categories


def color_table(
    cost_records: "Iterable[CostRecord]",
    usage_records: "Iterable[UsageRecord]",
    group_by: "GroupBy",
    palette: "Palette",
) -> "dict[str, str]":
    return assign_colors(
        unified_categories(cost_records, usage_records, group_by),
        palette.chart,
    )
