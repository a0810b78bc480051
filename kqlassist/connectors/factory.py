"""Connector factory for supported telemetry backends."""

from __future__ import annotations

import logging

import httpx
from azure.core.credentials_async import AsyncTokenCredential

from kqlassist.config import AuthSettings
from kqlassist.connectors.application_insights import ApplicationInsightsConnector
from kqlassist.connectors.auth import CredentialRegistry, build_explicit_credential
from kqlassist.connectors.base import BaseTelemetryConnector
from kqlassist.connectors.data_explorer import DataExplorerConnector
from kqlassist.connectors.log_analytics import LogAnalyticsConnector
from kqlassist.models.errors import ConfigurationInvalid

logger = logging.getLogger(__name__)

CONNECTORS: dict[str, type[BaseTelemetryConnector]] = {
    "application-insights": ApplicationInsightsConnector,
    "log-analytics": LogAnalyticsConnector,
    "azure-data-explorer": DataExplorerConnector,
}


def create_connector(
    config,
    *,
    credential: AsyncTokenCredential | None = None,
    auth: AuthSettings | None = None,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 60.0,
) -> BaseTelemetryConnector:
    """
    Create the connector for a provider configuration.

    Args:
        config: Provider configuration variant
        credential: Explicit credential supplied by the caller
        auth: Configured explicit credential sources, used when ``credential`` is None
        http_client: Shared httpx client
        timeout: Default per-query timeout in seconds

    Raises:
        ConfigurationInvalid: Unknown provider type or failed validation
    """
    provider_type = getattr(config, "type", None)
    connector_cls = CONNECTORS.get(provider_type)
    if connector_cls is None:
        raise ConfigurationInvalid(
            str(provider_type),
            [f"Unsupported provider type: {provider_type}. Available: {list(CONNECTORS)}"],
        )

    owns_explicit = False
    if credential is None and auth is not None:
        credential = build_explicit_credential(
            access_token=auth.access_token,
            tenant_id=auth.tenant_id or config.tenant_id,
            client_id=auth.client_id,
            client_secret=auth.client_secret,
        )
        owns_explicit = credential is not None

    credentials = CredentialRegistry(
        explicit_credential=credential,
        tenant_id=config.tenant_id,
        owns_explicit=owns_explicit,
    )

    logger.info(
        f"Creating {provider_type} connector",
        extra={"provider_type": provider_type, "explicit_credential": credential is not None},
    )
    return connector_cls(
        config,
        credentials=credentials,
        http_client=http_client,
        timeout=timeout,
    )
