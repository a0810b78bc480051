"""
Provider Configuration Models

Discriminated union describing which telemetry backend to query and how
to reach it. Fields are optional on every variant so the validation gate,
not the model, decides what is missing and reports it by name.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

PROVIDER_TYPES = ("application-insights", "log-analytics", "azure-data-explorer")


class _ProviderConfigBase(BaseModel):
    """Fields shared by every provider configuration."""

    tenant_id: str | None = Field(None, description="Azure AD tenant")
    subscription_id: str | None = Field(None, description="Azure subscription")
    resource_group: str | None = Field(None, description="Resource group")
    resource_name: str | None = Field(None, description="Component or workspace name")
    endpoint: str | None = Field(None, description="Override for the query endpoint base URL")
    timespan: str | None = Field(None, description="ISO-8601 duration applied to queries")

    # Fields only meaningful for some variants; accepted everywhere so the
    # gate can warn about them.
    application_id: str | None = None
    workspace_id: str | None = None
    cluster_uri: str | None = None
    database: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class ApplicationInsightsConfig(_ProviderConfigBase):
    """Application Insights component."""

    type: Literal["application-insights"] = "application-insights"


class LogAnalyticsConfig(_ProviderConfigBase):
    """Log Analytics workspace."""

    type: Literal["log-analytics"] = "log-analytics"


class DataExplorerConfig(_ProviderConfigBase):
    """Azure Data Explorer cluster and database."""

    type: Literal["azure-data-explorer"] = "azure-data-explorer"


ProviderConfiguration = Annotated[
    ApplicationInsightsConfig | LogAnalyticsConfig | DataExplorerConfig,
    Field(discriminator="type"),
]


class ValidationResult(BaseModel):
    """Outcome of the validation gate."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


_PROVIDER_ADAPTER: TypeAdapter = TypeAdapter(ProviderConfiguration)


def parse_provider_config(
    data: dict[str, Any],
) -> ApplicationInsightsConfig | LogAnalyticsConfig | DataExplorerConfig:
    """Build the configuration variant selected by ``data["type"]``."""
    return _PROVIDER_ADAPTER.validate_python(data)
