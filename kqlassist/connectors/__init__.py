"""
Telemetry Connectors Module

Provides async KQL connectors for Azure telemetry backends.

Available Connectors:
    - BaseTelemetryConnector: Abstract base class with authentication fallback
    - ApplicationInsightsConnector: Application Insights REST API
    - LogAnalyticsConnector: Log Analytics REST API (with ARM workspace lookup)
    - DataExplorerConnector: Azure Data Explorer v1 REST API

Usage:
    from kqlassist.connectors import create_connector
    from kqlassist.models import ApplicationInsightsConfig

    config = ApplicationInsightsConfig(application_id="...")

    async with create_connector(config) as connector:
        result = await connector.execute("requests | take 10")
        schema = await connector.get_schema()
"""

from kqlassist.connectors.application_insights import ApplicationInsightsConnector
from kqlassist.connectors.auth import (
    AuthenticationStrategy,
    ConnectionHandle,
    CredentialRegistry,
    StaticTokenCredential,
    build_explicit_credential,
)
from kqlassist.connectors.base import BaseTelemetryConnector
from kqlassist.connectors.data_explorer import DataExplorerConnector
from kqlassist.connectors.errors import classify_backend_error
from kqlassist.connectors.factory import create_connector
from kqlassist.connectors.log_analytics import LogAnalyticsConnector
from kqlassist.connectors.normalize import normalize_column_type
from kqlassist.connectors.validation import log_validation_result, validate_provider_config

__all__ = [
    # Base
    "BaseTelemetryConnector",
    # Connectors
    "ApplicationInsightsConnector",
    "LogAnalyticsConnector",
    "DataExplorerConnector",
    "create_connector",
    # Authentication
    "AuthenticationStrategy",
    "ConnectionHandle",
    "CredentialRegistry",
    "StaticTokenCredential",
    "build_explicit_credential",
    # Validation and normalization
    "validate_provider_config",
    "log_validation_result",
    "classify_backend_error",
    "normalize_column_type",
]
