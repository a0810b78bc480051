"""
Unit tests for configuration module.

Tests settings loading, validation, nested configuration, and caching.
"""

import pytest
from pydantic import ValidationError

from kqlassist.config import (
    AuthSettings,
    DataSourceSettings,
    LoggingSettings,
    LLMSettings,
    PipelineSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)
from kqlassist.models import ApplicationInsightsConfig, DataExplorerConfig, LogAnalyticsConfig


class TestLLMSettings:
    """Test LLM configuration."""

    def test_defaults(self):
        """Defaults favour conservative first attempts."""
        settings = LLMSettings()

        assert settings.default_provider == "openai"
        assert settings.openai_model == "gpt-4o"
        assert settings.temperature == 0.3
        assert settings.regeneration_temperature == 0.7
        assert settings.max_tokens == 1000

    def test_api_key_validation_requires_sk_prefix(self, monkeypatch):
        """API key must start with 'sk-'."""
        monkeypatch.setenv("LLM_OPENAI_API_KEY", "invalid-key-1234567890abcdef")

        with pytest.raises(ValidationError, match="must start with 'sk-'"):
            LLMSettings()

    def test_api_key_minimum_length(self, monkeypatch):
        """API key must have minimum length."""
        monkeypatch.setenv("LLM_OPENAI_API_KEY", "sk-short")

        with pytest.raises(ValidationError):
            LLMSettings()

    def test_max_tokens_validation(self, monkeypatch):
        """Max tokens must be within limits."""
        monkeypatch.setenv("LLM_MAX_TOKENS", "20000")

        with pytest.raises(ValidationError, match="less than or equal to 16"):
            LLMSettings()

    def test_regeneration_temperature_not_below_first_attempt(self, monkeypatch):
        """Regeneration temperature must be >= first-attempt temperature."""
        monkeypatch.setenv("LLM_TEMPERATURE", "0.9")
        monkeypatch.setenv("LLM_REGENERATION_TEMPERATURE", "0.5")

        with pytest.raises(ValidationError, match="regeneration_temperature"):
            LLMSettings()

    def test_azure_endpoint_must_be_url(self, monkeypatch):
        """Azure OpenAI endpoint must be an http(s) URL."""
        monkeypatch.setenv("LLM_AZURE_OPENAI_ENDPOINT", "not-a-url")

        with pytest.raises(ValidationError, match="http"):
            LLMSettings()

    def test_empty_azure_endpoint_is_none(self, monkeypatch):
        """An empty endpoint is treated as unset."""
        monkeypatch.setenv("LLM_AZURE_OPENAI_ENDPOINT", "")

        assert LLMSettings().azure_openai_endpoint is None


class TestDataSourceSettings:
    """Test datasource configuration."""

    def test_default_is_application_insights(self):
        settings = DataSourceSettings()

        assert settings.type == "application-insights"
        assert settings.timespan == "PT24H"

    def test_to_provider_config_selects_variant(self, monkeypatch):
        """The type field selects the configuration variant."""
        monkeypatch.setenv("DATASOURCE_TYPE", "azure-data-explorer")
        monkeypatch.setenv("DATASOURCE_CLUSTER_URI", "https://help.kusto.windows.net")
        monkeypatch.setenv("DATASOURCE_DATABASE", "Samples")

        config = DataSourceSettings().to_provider_config()

        assert isinstance(config, DataExplorerConfig)
        assert config.cluster_uri == "https://help.kusto.windows.net"
        assert config.database == "Samples"

    def test_log_analytics_variant(self, monkeypatch):
        monkeypatch.setenv("DATASOURCE_TYPE", "log-analytics")
        monkeypatch.setenv("DATASOURCE_WORKSPACE_ID", "ws-1")

        config = DataSourceSettings().to_provider_config()

        assert isinstance(config, LogAnalyticsConfig)
        assert config.workspace_id == "ws-1"

    def test_empty_strings_become_none(self, monkeypatch):
        """Empty environment values do not count as configured."""
        monkeypatch.setenv("DATASOURCE_APPLICATION_ID", "")

        config = DataSourceSettings().to_provider_config()

        assert isinstance(config, ApplicationInsightsConfig)
        assert config.application_id is None

    def test_unknown_type_rejected(self, monkeypatch):
        monkeypatch.setenv("DATASOURCE_TYPE", "splunk")

        with pytest.raises(ValidationError):
            DataSourceSettings()


class TestAuthSettings:
    """Test explicit credential configuration."""

    def test_no_explicit_credential_by_default(self):
        settings = AuthSettings()

        assert settings.has_explicit_credential is False
        assert settings.has_service_principal is False

    def test_service_principal_requires_all_fields(self, monkeypatch):
        monkeypatch.setenv("AUTH_TENANT_ID", "tenant")
        monkeypatch.setenv("AUTH_CLIENT_ID", "client")

        assert AuthSettings().has_service_principal is False

        monkeypatch.setenv("AUTH_CLIENT_SECRET", "secret")

        assert AuthSettings().has_service_principal is True

    def test_access_token_is_explicit(self, monkeypatch):
        monkeypatch.setenv("AUTH_ACCESS_TOKEN", "eyJ0eXAi")

        assert AuthSettings().has_explicit_credential is True


class TestPipelineSettings:
    """Test router policy configuration."""

    def test_defaults(self):
        settings = PipelineSettings()

        assert settings.mode == "review-always"
        assert settings.confidence_threshold == 0.7
        assert settings.max_attempts == 3
        assert settings.turn_timeout_seconds is None

    def test_threshold_bounds(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_CONFIDENCE_THRESHOLD", "1.5")

        with pytest.raises(ValidationError):
            PipelineSettings()

    def test_max_attempts_at_least_one(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_MAX_ATTEMPTS", "0")

        with pytest.raises(ValidationError):
            PipelineSettings()


class TestSettings:
    """Test the nested settings object and cache."""

    def test_nested_settings(self, monkeypatch):
        monkeypatch.setenv("PIPELINE_MODE", "auto")
        monkeypatch.setenv("DATASOURCE_TYPE", "log-analytics")

        settings = Settings()

        assert settings.pipeline.mode == "auto"
        assert settings.datasource.type == "log-analytics"
        assert settings.app_name == "kqlassist"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_clear_settings_cache_reloads(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("PIPELINE_MAX_ATTEMPTS", "5")
        clear_settings_cache()

        second = get_settings()

        assert second is not first
        assert second.pipeline.max_attempts == 5

    def test_dotenv_override_when_requested(self, monkeypatch, tmp_path):
        """KQLASSIST_ENV_SOURCE=dotenv lets .env win over the environment."""
        import kqlassist.config as config_module

        env_file = tmp_path / ".env"
        env_file.write_text("PIPELINE_MAX_ATTEMPTS=7\n")
        monkeypatch.setattr(config_module, "_DOTENV_PATH", env_file)
        monkeypatch.setenv("PIPELINE_MAX_ATTEMPTS", "2")
        monkeypatch.setenv("KQLASSIST_ENV_SOURCE", "dotenv")

        assert get_settings().pipeline.max_attempts == 7


class TestLoggingSettings:
    """Test logging setup."""

    def test_configure_quiets_library_loggers(self, tmp_path):
        import logging

        settings = LoggingSettings(file=tmp_path / "logs" / "kqlassist.log")
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            settings.configure(level="DEBUG")

            assert root.level == logging.DEBUG
            assert logging.getLogger("httpx").level == logging.WARNING
            assert (tmp_path / "logs").is_dir()
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
