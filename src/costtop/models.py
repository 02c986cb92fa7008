import datetime as dt
import enum
from dataclasses import dataclass, field


class Provider(enum.Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @property
    def label(self) -> "str":
        return _PROVIDER_LABELS[self]


_PROVIDER_LABELS: "dict[Provider, str]" = {
    Provider.OPENAI: "OpenAI",
    Provider.ANTHROPIC: "Anthropic",
}


class Metric(enum.Enum):
    USAGE = "usage"
    COST = "cost"

    @property
    def label(self) -> "str":
        return self.value.capitalize()


class GroupBy(enum.Enum):
    MODEL = "model"
    API_KEYS = "api_keys"

    @property
    def label(self) -> "str":
        if self is GroupBy.API_KEYS:
            return "API Keys"
        return "Model"


class Range(enum.Enum):
    SEVEN_DAYS = 7
    THIRTY_DAYS = 30

    @property
    def days(self) -> "int":
        return self.value

    @property
    def label(self) -> "str":
        return f"{self.value}d"


@dataclass(frozen=True, slots=True)
class CostRecord:
    """
    CostRecord is one normalized cost data point: the amount
    billed for a category (line item or model) on a given day.
    """

    # calendar day in UTC
    date: "dt.date"
    amount: "float"
    # raw category as reported by the vendor, may be blank
    category: "str | None" = None


@dataclass(frozen=True, slots=True)
class UsageRecord:
    """
    UsageRecord is one normalized token usage data point for a
    model/API key pair on a given day.
    """

    date: "dt.date"
    input_tokens: "int"
    output_tokens: "int"
    model: "str | None" = None
    # API key identifier, not the secret itself
    api_key_id: "str | None" = None
    cache_read_tokens: "int | None" = None
    uncached_tokens: "int | None" = None
    request_count: "int | None" = None

    @property
    def total_tokens(self) -> "int":
        return self.input_tokens + self.output_tokens


@dataclass(slots=True)
class FetchOutcome:
    """
    FetchOutcome is the result of one fetch cycle for a provider.
    Cost and usage errors are independent; records are always
    sorted by date.
    """

    provider: "Provider"
    cost_records: "list[CostRecord]" = field(default_factory=list)
    usage_records: "list[UsageRecord]" = field(default_factory=list)
    key_names: "dict[str, str]" = field(default_factory=dict)
    cost_error: "str | None" = None
    usage_error: "str | None" = None
    # stages that failed; usage_error may carry both messages
    usage_failed: "bool" = False
    key_names_failed: "bool" = False
