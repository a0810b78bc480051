"""Unit tests for the provider configuration validation gate."""

from kqlassist.connectors.validation import validate_provider_config
from kqlassist.models import ApplicationInsightsConfig, DataExplorerConfig, LogAnalyticsConfig


class TestApplicationInsights:
    """Application Insights configuration checks."""

    def test_valid_with_application_id(self):
        result = validate_provider_config(
            ApplicationInsightsConfig(
                application_id="app",
                subscription_id="sub",
                resource_group="rg",
                resource_name="component",
            )
        )

        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_missing_application_id(self):
        result = validate_provider_config(ApplicationInsightsConfig())

        assert result.is_valid is False
        assert "application_id is required for application-insights" in result.errors

    def test_missing_resource_fields_warn(self):
        result = validate_provider_config(ApplicationInsightsConfig(application_id="app"))

        assert result.is_valid is True
        assert result.warnings == [
            "subscription_id, resource_group, resource_name not set; resource discovery is limited"
        ]

    def test_unused_fields_warn(self):
        result = validate_provider_config(
            ApplicationInsightsConfig(
                application_id="app",
                subscription_id="sub",
                resource_group="rg",
                resource_name="component",
                database="db",
            )
        )

        assert result.is_valid is True
        assert result.warnings == [
            "database is not used by application-insights and will be ignored"
        ]


class TestLogAnalytics:
    """Log Analytics configuration checks."""

    def test_workspace_id_alone_is_valid(self):
        assert validate_provider_config(LogAnalyticsConfig(workspace_id="ws")).is_valid is True

    def test_resource_path_alone_is_valid(self):
        result = validate_provider_config(
            LogAnalyticsConfig(subscription_id="sub", resource_group="rg", resource_name="ws")
        )

        assert result.is_valid is True

    def test_each_missing_resource_field_reported(self):
        result = validate_provider_config(LogAnalyticsConfig(subscription_id="sub"))

        assert result.is_valid is False
        assert result.errors == [
            "resource_group is required for log-analytics when workspace_id is not set",
            "resource_name is required for log-analytics when workspace_id is not set",
        ]


class TestDataExplorer:
    """Azure Data Explorer configuration checks."""

    def test_valid(self):
        result = validate_provider_config(
            DataExplorerConfig(cluster_uri="https://help.kusto.windows.net", database="Samples")
        )

        assert result.is_valid is True

    def test_requires_cluster_and_database(self):
        result = validate_provider_config(DataExplorerConfig())

        assert result.errors == [
            "cluster_uri is required for azure-data-explorer",
            "database is required for azure-data-explorer",
        ]

    def test_cluster_uri_must_be_url(self):
        result = validate_provider_config(
            DataExplorerConfig(cluster_uri="help.kusto.windows.net", database="Samples")
        )

        assert result.is_valid is False
        assert result.errors[0].startswith("cluster_uri must be an http or https URL")

    def test_errors_and_warnings_reported_together(self):
        result = validate_provider_config(DataExplorerConfig(application_id="app"))

        assert len(result.errors) == 2
        assert result.warnings == [
            "application_id is not used by azure-data-explorer and will be ignored"
        ]


def test_endpoint_override_must_be_url():
    result = validate_provider_config(
        ApplicationInsightsConfig(application_id="app", endpoint="ftp://example.com")
    )

    assert result.is_valid is False


def test_unsupported_config_type():
    class Other:
        type = "splunk"

    result = validate_provider_config(Other())

    assert result.is_valid is False
    assert result.errors == ["Unsupported provider type: splunk"]
