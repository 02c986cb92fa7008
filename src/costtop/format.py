import datetime as dt
from collections.abc import Mapping

# legend amounts at or above this are shown without trailing zeros
COST_DISPLAY_THRESHOLD = 1.0


def format_tokens(tokens: "float") -> "str":
    """
    formats a token count for display (e.g., 125000 -> 125k).
    """
    tokens = int(tokens)
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1_000:
        return f"{tokens // 1_000}k"
    return str(tokens)


def format_cost(amount: "float") -> "str":
    """
    formats a legend amount: "$12.5" for larger values, "$0.40" for
    small ones.
    """
    text = f"${amount:.2f}"
    if amount >= COST_DISPLAY_THRESHOLD:
        text = text.rstrip("0").rstrip(".")
    return text


def format_bar_total(value: "float", is_cost: "bool") -> "str":
    if is_cost:
        return f"${value:.0f}"
    return format_tokens(value)


def abbreviate_api_key(key_id: "str") -> "str":
    """
    shortens long key ids to their first 8 and last 4 characters.
    """
    if len(key_id) <= 16:
        return key_id
    return f"{key_id[:8]}...{key_id[-4:]}"


def key_display_name(key_id: "str", key_names: "Mapping[str, str]") -> "str":
    return key_names.get(key_id) or abbreviate_api_key(key_id)


def short_date(iso_day: "str") -> "str":
    return dt.date.fromisoformat(iso_day).strftime("%m/%d")


def compact_date_label(label: "str", width: "int") -> "str":
    """
    fits an MM/DD label in width columns, falling back to the day
    alone and then to a truncated day.
    """
    if width >= len(label):
        return label
    day = label.split("/")[-1]
    if width >= len(day):
        return day
    return day[: max(width, 0)]
