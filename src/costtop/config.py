import os
from dataclasses import dataclass, field

from costtop.fetch import DEFAULT_LOOKBACK_DAYS
from costtop.layout import LayoutSettings
from costtop.models import Provider

API_KEY_ENV = {
    Provider.OPENAI: "OPENAI_ADMIN_KEY",
    Provider.ANTHROPIC: "ANTHROPIC_ADMIN_KEY",
}


@dataclass
class Config:
    log_level: "str" = "warning"
    # empty logs to stderr
    log_file: "str" = ""
    env_file: "str" = ""
    # format ":9186" or "0.0.0.0:9186", empty disables the endpoint
    metrics_listen_address: "str" = ""
    # seconds between automatic refreshes, 0 disables them
    refresh_interval: "float" = 0
    lookback_days: "int" = DEFAULT_LOOKBACK_DAYS
    layout: "LayoutSettings" = field(default_factory=LayoutSettings)

    openai_admin_key: "str" = ""
    anthropic_admin_key: "str" = ""

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            openai_admin_key=os.environ.get(API_KEY_ENV[Provider.OPENAI], ""),
            anthropic_admin_key=os.environ.get(API_KEY_ENV[Provider.ANTHROPIC], ""),
        )

    @property
    def api_keys(self) -> "dict[Provider, str]":
        return {
            Provider.OPENAI: self.openai_admin_key,
            Provider.ANTHROPIC: self.anthropic_admin_key,
        }
