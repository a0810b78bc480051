"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

Usage:
    from kqlassist.config import get_settings

    settings = get_settings()
    print(settings.llm.default_provider)
    print(settings.datasource.type)
"""

import logging
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kqlassist.models.provider import parse_provider_config

_LIBRARY_LOGGERS = ("httpx", "openai", "azure", "langgraph")


class LLMSettings(BaseSettings):
    """LLM provider configuration."""

    default_provider: Literal["openai", "azure-openai", "local"] = Field(
        default="openai", description="LLM provider used for generation"
    )

    # OpenAI configuration
    openai_api_key: str | None = Field(
        None,
        description="OpenAI API key",
        min_length=20,
    )
    openai_model: str = Field(default="gpt-4o", description="OpenAI model")

    # Azure OpenAI configuration
    azure_openai_endpoint: str | None = Field(
        None, description="Azure OpenAI resource endpoint (https://<name>.openai.azure.com)"
    )
    azure_openai_api_key: str | None = Field(
        None, description="Azure OpenAI key (omit to authenticate with Azure AD)"
    )
    azure_openai_deployment: str | None = Field(
        None, description="Azure OpenAI deployment name"
    )
    azure_openai_api_version: str = Field(
        default="2024-06-01", description="Azure OpenAI REST API version"
    )

    # Local model configuration
    local_base_url: str = Field(
        default="http://localhost:11434",
        description="Base URL for local model server (Ollama, vLLM, etc.)",
    )
    local_model: str = Field(default="llama3.1:8b", description="Local model name")

    # Common settings
    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=2.0,
        description="Temperature for the first generation attempt",
    )
    regeneration_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Temperature for regeneration attempts",
    )
    max_tokens: int = Field(
        default=1000,
        gt=0,
        le=16000,
        description="Maximum tokens per LLM response",
    )
    timeout: int = Field(
        default=30,
        gt=0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_key(cls, v: str | None) -> str | None:
        """Validate OpenAI API key format."""
        if v and not v.startswith("sk-"):
            raise ValueError("OpenAI API key must start with 'sk-'")
        return v

    @field_validator("azure_openai_endpoint")
    @classmethod
    def validate_azure_endpoint(cls, v: str | None) -> str | None:
        """Validate Azure OpenAI endpoint URL."""
        if v is None or v == "":
            return None
        parsed = urlparse(v)
        if parsed.scheme not in {"http", "https"} or not parsed.hostname:
            raise ValueError("LLM_AZURE_OPENAI_ENDPOINT must be an http(s) URL.")
        return v

    @model_validator(mode="after")
    def validate_temperatures(self) -> "LLMSettings":
        """Regeneration must explore at least as widely as the first attempt."""
        if self.regeneration_temperature < self.temperature:
            raise ValueError(
                f"regeneration_temperature ({self.regeneration_temperature}) must be greater "
                f"than or equal to temperature ({self.temperature})"
            )
        return self


class DataSourceSettings(BaseSettings):
    """Telemetry backend configuration."""

    type: Literal["application-insights", "log-analytics", "azure-data-explorer"] = Field(
        default="application-insights",
        description="Telemetry backend to query",
    )
    application_id: str | None = Field(None, description="Application Insights application id")
    tenant_id: str | None = Field(None, description="Azure AD tenant id")
    subscription_id: str | None = Field(None, description="Azure subscription id")
    resource_group: str | None = Field(None, description="Resource group name")
    resource_name: str | None = Field(None, description="Component or workspace name")
    workspace_id: str | None = Field(None, description="Log Analytics workspace (customer) id")
    endpoint: str | None = Field(None, description="Query endpoint override")
    cluster_uri: str | None = Field(None, description="Azure Data Explorer cluster URI")
    database: str | None = Field(None, description="Azure Data Explorer database")
    timespan: str | None = Field(
        default="PT24H",
        description="ISO-8601 duration applied to Application Insights and Log Analytics queries",
    )

    model_config = SettingsConfigDict(
        env_prefix="DATASOURCE_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator(
        "application_id",
        "tenant_id",
        "subscription_id",
        "resource_group",
        "resource_name",
        "workspace_id",
        "endpoint",
        "cluster_uri",
        "database",
        "timespan",
        mode="before",
    )
    @classmethod
    def normalize_empty(cls, v: str | None) -> str | None:
        """Treat empty strings as missing."""
        if v == "":
            return None
        return v

    def to_provider_config(self):
        """
        Build the provider configuration variant for the selected backend.

        Shape is not validated here; the connector's validation gate
        reports missing or unused fields.
        """
        return parse_provider_config(self.model_dump())


class AuthSettings(BaseSettings):
    """Explicit credential sources, tried before any ambient identity."""

    tenant_id: str | None = Field(None, description="Tenant for the service principal")
    client_id: str | None = Field(None, description="Service principal client id")
    client_secret: str | None = Field(None, description="Service principal secret")
    access_token: str | None = Field(None, description="Pre-acquired bearer token")

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def has_service_principal(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)

    @property
    def has_explicit_credential(self) -> bool:
        return bool(self.access_token) or self.has_service_principal


class PipelineSettings(BaseSettings):
    """Confidence router and turn policy settings."""

    mode: Literal["auto", "review-always", "raw"] = Field(
        default="review-always",
        description="How generated queries are handled before execution",
    )
    confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for auto-execution (inclusive)",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Maximum generation attempts per user turn",
    )
    max_review_rounds: int = Field(
        default=20,
        ge=1,
        description="Maximum review prompts per user turn before it fails",
    )
    query_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Per-query execution timeout",
    )
    turn_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="End-to-end deadline for a user turn (None = no deadline)",
    )
    schema_hint_enabled: bool = Field(
        default=False,
        description="Fetch backend schema and pass it to generation",
    )

    model_config = SettingsConfigDict(
        env_prefix="PIPELINE_",
        env_file=".env",
        extra="ignore",
    )


class LoggingSettings(BaseSettings):
    """
    Logging configuration.

    Records go to stderr so query results on stdout stay pipeable.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    date_format: str = "%H:%M:%S"
    file: Path | None = Field(default=None, description="Also append records to this file")
    library_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Level for the HTTP, SDK and graph libraries",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self, level: str | None = None) -> None:
        """Install handlers on the root logger, replacing any existing setup."""
        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        logging.basicConfig(
            level=level or self.level,
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,
        )
        for name in _LIBRARY_LOGGERS:
            logging.getLogger(name).setLevel(self.library_level)


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Settings are nested by domain (llm, datasource, auth, pipeline, logging).

    Environment Variables:
        LLM_*: LLM provider configuration (see LLMSettings)
        DATASOURCE_*: Telemetry backend configuration (see DataSourceSettings)
        AUTH_*: Explicit credentials (see AuthSettings)
        PIPELINE_*: Router and turn policy (see PipelineSettings)
        LOG_*: Logging configuration (see LoggingSettings)

    Example:
        >>> settings = get_settings()
        >>> settings.pipeline.confidence_threshold
        0.7
        >>> settings.datasource.type
        'application-insights'
    """

    app_name: str = Field(default="kqlassist", description="Application name")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    datasource: DataSourceSettings = Field(default_factory=DataSourceSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def model_post_init(self, __context) -> None:
        logging.getLogger(__name__).debug(
            f"Loaded {self.datasource.type} / {self.llm.default_provider} settings",
            extra={
                "llm_provider": self.llm.default_provider,
                "datasource_type": self.datasource.type,
                "pipeline_mode": self.pipeline.mode,
                "max_attempts": self.pipeline.max_attempts,
            },
        )


# Overridable for tests; None means .env in the working directory
_DOTENV_PATH: Path | None = None


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("KQLASSIST_ENV_SOURCE", "environment").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    dotenv_path = _DOTENV_PATH or Path.cwd() / ".env"
    if dotenv_path.exists():
        load_dotenv(dotenv_path, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Load settings once per process.

    The process environment wins over .env unless KQLASSIST_ENV_SOURCE is
    set to "dotenv", in which case the .env in the working directory is
    loaded over it first.
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """Forget the cached settings so the next get_settings() re-reads the environment."""
    get_settings.cache_clear()
