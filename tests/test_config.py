"""
Tests for settings and secret loading
"""
import pytest
from pydantic import ValidationError

from fleetdesk.config import Settings
from fleetdesk.secrets import load_secret


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.sweep_interval_seconds == 60
        assert settings.realtime_channel == "table_changes"

    def test_cors_origins_parsed(self):
        settings = Settings(_env_file=None, cors_origins="https://admin.example.com, http://localhost:5173 ,")
        assert settings.cors_origins == ["https://admin.example.com", "http://localhost:5173"]

    def test_log_level_and_environment_normalized(self):
        settings = Settings(_env_file=None, log_level="debug", environment="Development")
        assert settings.log_level == "DEBUG"
        assert settings.is_development

    @pytest.mark.parametrize("field,value", [("log_level", "LOUD"), ("environment", "qa"), ("sweep_interval_seconds", 1)])
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("SWEEPER_ENABLED", "false")
        monkeypatch.setenv("CRON_TOKEN", "from-env")
        settings = Settings(_env_file=None)
        assert settings.sweeper_enabled is False
        assert settings.cron_token == "from-env"


class TestLoadSecret:

    def test_env_var(self, monkeypatch):
        monkeypatch.setenv("CRON_TOKEN", "abc")
        assert load_secret("cron_token") == "abc"

    def test_file_variable_wins_over_env(self, monkeypatch, tmp_path):
        secret_file = tmp_path / "cron_token"
        secret_file.write_text("from-file\n")
        monkeypatch.setenv("CRON_TOKEN_FILE", str(secret_file))
        monkeypatch.setenv("CRON_TOKEN", "from-env")
        assert load_secret("cron-token") == "from-file"

    def test_missing_file_raises(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CRON_TOKEN_FILE", str(tmp_path / "missing"))
        with pytest.raises(FileNotFoundError):
            load_secret("cron_token")

    def test_default_and_required(self, monkeypatch):
        monkeypatch.delenv("CRON_TOKEN", raising=False)
        monkeypatch.delenv("CRON_TOKEN_FILE", raising=False)
        assert load_secret("cron_token", default="fallback") == "fallback"
        with pytest.raises(ValueError):
            load_secret("cron_token", required=True)
