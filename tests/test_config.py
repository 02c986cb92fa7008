from costtop.config import Config
from costtop.fetch import DEFAULT_LOOKBACK_DAYS
from costtop.models import Provider


class TestConfigFromEnv:
    def test_defaults(self, monkeypatch: "object") -> "None":
        monkeypatch.delenv("OPENAI_ADMIN_KEY", raising=False)
        monkeypatch.delenv("ANTHROPIC_ADMIN_KEY", raising=False)
        config = Config.from_env()
        assert config.openai_admin_key == ""
        assert config.anthropic_admin_key == ""
        assert config.log_level == "warning"
        assert config.lookback_days == DEFAULT_LOOKBACK_DAYS
        assert config.refresh_interval == 0

    def test_reads_env_vars(self, monkeypatch: "object") -> "None":
        monkeypatch.setenv("OPENAI_ADMIN_KEY", "sk-admin-123")
        monkeypatch.setenv("ANTHROPIC_ADMIN_KEY", "sk-ant-admin-456")
        config = Config.from_env()
        assert config.api_keys == {
            Provider.OPENAI: "sk-admin-123",
            Provider.ANTHROPIC: "sk-ant-admin-456",
        }
