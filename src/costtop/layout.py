import math
from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class LayoutSettings:
    """
    LayoutSettings holds the tunable chart constants. The outlier
    thresholds and bar width bounds are empirical values.
    """

    min_bar_width: "int" = 5
    max_bar_width: "int" = 20
    spacing: "int" = 1
    # compress the scale when the tallest bar exceeds outlier_ratio x p75
    outlier_ratio: "float" = 3.0
    # compressed scale tops out at compressed_ratio x p75
    compressed_ratio: "float" = 2.0
    percentile: "float" = 0.75


DEFAULT_SETTINGS = LayoutSettings()


@dataclass(frozen=True, slots=True)
class BarLayout:
    """
    BarLayout is the horizontal placement of the visible bars of a
    chart, recomputed every frame.
    """

    start_index: "int"
    visible_count: "int"
    bar_width: "int"
    spacing: "int"
    # left padding that centers the bars in the available width
    offset: "int"

    @property
    def end_index(self) -> "int":
        return self.start_index + self.visible_count

    @property
    def used_width(self) -> "int":
        return self.visible_count * self.bar_width + self.spacing * (
            self.visible_count - 1
        )

    def bar_x(self, visible_index: "int") -> "int":
        return self.offset + visible_index * (self.bar_width + self.spacing)


def max_scroll(total_bars: "int", visible_count: "int") -> "int":
    return max(total_bars - visible_count, 0)


def bar_layout(
    total_bars: "int",
    available_width: "int",
    scroll_offset: "int | None" = None,
    settings: "LayoutSettings" = DEFAULT_SETTINGS,
) -> "BarLayout | None":
    """
    packs as many bars as fit in available_width, starting from one
    bar per column and backing off until bar_width (clamped to the
    configured bounds) plus spacing fits. Returns None when not even a
    single bar fits.

    scroll_offset is the requested first visible bar; None pins the
    window to the most recent bars.
    """
    if total_bars <= 0 or available_width <= 0:
        return None

    spacing = settings.spacing
    visible = min(total_bars, available_width)

    while visible > 0:
        required_spacing = spacing * (visible - 1)
        if available_width <= required_spacing:
            visible -= 1
            continue

        bar_width = (available_width - required_spacing) // visible
        bar_width = min(max(bar_width, settings.min_bar_width), settings.max_bar_width)

        used_width = visible * bar_width + required_spacing
        if used_width <= available_width:
            limit = max_scroll(total_bars, visible)
            start = limit if scroll_offset is None else min(max(scroll_offset, 0), limit)
            return BarLayout(
                start_index=start,
                visible_count=visible,
                bar_width=bar_width,
                spacing=spacing,
                offset=(available_width - used_width) // 2,
            )

        visible -= 1

    return None


def clamp_scroll(
    offset: "int",
    delta: "int",
    total_bars: "int",
    visible_count: "int",
) -> "int":
    """
    applies a scroll delta, keeping the window inside the data.
    """
    return min(max(offset + delta, 0), max_scroll(total_bars, visible_count))


def percentile(values: "Sequence[float]", q: "float") -> "float":
    """
    linear-interpolated percentile of values, q in [0, 1].
    """
    if not values:
        raise ValueError("percentile of empty sequence")
    ordered = sorted(values)
    position = (len(ordered) - 1) * q
    low = math.floor(position)
    high = math.ceil(position)
    if low == high:
        return ordered[low]
    return ordered[low] + (ordered[high] - ordered[low]) * (position - low)


@dataclass(frozen=True, slots=True)
class SmartScale:
    """
    SmartScale is the vertical scale of a chart. display_max is below
    actual_max when a spike day was compressed.
    """

    display_max: "float"
    actual_max: "float"

    @property
    def compressed(self) -> "bool":
        return self.display_max < self.actual_max

    def is_capped(self, total: "float") -> "bool":
        return total > self.display_max


def smart_scale(
    totals: "Sequence[float]",
    settings: "LayoutSettings" = DEFAULT_SETTINGS,
) -> "SmartScale | None":
    """
    computes the vertical scale of a chart from its per-date totals.
    When the tallest bar is more than outlier_ratio times the p75 of
    positive totals, the scale is capped at compressed_ratio x p75 so
    one spike day does not flatten every other bar. Returns None when
    there is nothing positive to draw.
    """
    positive = [t for t in totals if t > 0]
    if not positive:
        return None

    actual_max = max(positive)
    p75 = percentile(positive, settings.percentile)
    if p75 > 0 and actual_max > settings.outlier_ratio * p75:
        return SmartScale(display_max=settings.compressed_ratio * p75, actual_max=actual_max)
    return SmartScale(display_max=actual_max, actual_max=actual_max)


@dataclass(frozen=True, slots=True)
class Segment:
    category: "str"
    value: "float"
    height: "int"


def segment_heights(
    values: "Sequence[tuple[str, float]]",
    scale: "SmartScale",
    bar_height: "int",
) -> "list[Segment]":
    """
    splits a bar into stacked segment heights, bottom first, in the
    order of values. Capped bars fill the whole height with segments
    scaled by display_max / total. Positive segments get at least one
    row; rounding never makes the stack exceed bar_height.
    """
    total = sum(v for _, v in values if v > 0)
    if total <= 0 or bar_height <= 0 or scale.display_max <= 0:
        return []

    capped = scale.is_capped(total)
    ratio = scale.display_max / total if capped else 1.0
    segments: "list[Segment]" = []
    used = 0

    for category, value in values:
        if value <= 0:
            continue
        remaining = bar_height - used
        if remaining <= 0:
            break

        height = round(value * ratio / scale.display_max * bar_height)
        height = min(max(height, 1), remaining)
        segments.append(Segment(category=category, value=value, height=height))
        used += height

    if segments and capped and used < bar_height:
        # rounding remainder goes to the topmost segment
        top = segments[-1]
        segments[-1] = Segment(
            category=top.category,
            value=top.value,
            height=top.height + bar_height - used,
        )

    return segments


@dataclass(frozen=True, slots=True)
class ScrollbarThumb:
    position: "int"
    size: "int"


def scrollbar_thumb(
    total_bars: "int",
    visible_count: "int",
    start_index: "int",
    track_width: "int",
) -> "ScrollbarThumb | None":
    """
    places the horizontal scrollbar thumb. None when every bar is
    visible and no scrollbar is drawn.
    """
    if track_width <= 0 or visible_count <= 0 or total_bars <= visible_count:
        return None

    size = max(1, round(track_width * visible_count / total_bars))
    size = min(size, track_width)
    limit = max_scroll(total_bars, visible_count)
    position = round((track_width - size) * min(start_index, limit) / limit)
    return ScrollbarThumb(position=position, size=size)
