"""
Azure Portal Deep Links

Builds a Logs blade URL that opens a query against the configured
Application Insights component or Log Analytics workspace. The query
travels in the URL gzip-compressed and base64-encoded, the form the
portal's "share link to query" produces.
"""

import base64
import gzip
import logging
from urllib.parse import quote

from kqlassist.models.errors import ConfigurationInvalid
from kqlassist.models.provider import (
    ApplicationInsightsConfig,
    DataExplorerConfig,
    LogAnalyticsConfig,
)

logger = logging.getLogger(__name__)

PORTAL_BASE_URL = "https://portal.azure.com"

_RESOURCE_PROVIDERS = {
    "application-insights": ("Microsoft.Insights/components", "resource_name"),
    "log-analytics": ("microsoft.operationalinsights/workspaces", "workspace_id"),
}

_FIELD_ENV = {
    "tenant_id": "DATASOURCE_TENANT_ID",
    "subscription_id": "DATASOURCE_SUBSCRIPTION_ID",
    "resource_group": "DATASOURCE_RESOURCE_GROUP",
    "resource_name": "DATASOURCE_RESOURCE_NAME",
    "workspace_id": "DATASOURCE_WORKSPACE_ID",
}


def encode_query(query: str) -> str:
    """Gzip, base64 and percent-encode a query for the portal URL."""
    compressed = gzip.compress(query.encode("utf-8"))
    return quote(base64.b64encode(compressed).decode("ascii"), safe="")


def supports_portal_link(
    config: ApplicationInsightsConfig | LogAnalyticsConfig | DataExplorerConfig,
) -> bool:
    """Whether the backend has a portal Logs blade and a tenant to open it in."""
    return config.type in _RESOURCE_PROVIDERS and bool(config.tenant_id)


def build_portal_url(
    config: ApplicationInsightsConfig | LogAnalyticsConfig | DataExplorerConfig,
    query: str,
) -> str:
    """
    Build the Logs blade URL for ``query``.

    Raises:
        ConfigurationInvalid: Unsupported backend, or resource fields missing
    """
    if config.type not in _RESOURCE_PROVIDERS:
        raise ConfigurationInvalid(
            config.type,
            ["Azure Portal links are only available for Application Insights and Log Analytics"],
        )

    resource_type, name_field = _RESOURCE_PROVIDERS[config.type]
    required = ("tenant_id", "subscription_id", "resource_group", name_field)
    missing = [field for field in required if not getattr(config, field)]
    if missing:
        raise ConfigurationInvalid(
            config.type,
            [
                f"{field} is required for an Azure Portal link ({_FIELD_ENV[field]})"
                for field in missing
            ],
        )

    resource_id = (
        f"/subscriptions/{config.subscription_id}"
        f"/resourceGroups/{config.resource_group}"
        f"/providers/{resource_type}/{getattr(config, name_field)}"
    )
    url = (
        f"{PORTAL_BASE_URL}/#@{config.tenant_id}/blade/Microsoft_Azure_Monitoring_Logs/LogsBlade"
        f"/resourceId/{quote(resource_id, safe='')}"
        f"/source/LogsBlade.AnalyticsShareLinkToQuery/q/{encode_query(query)}"
    )
    logger.debug(f"Built portal link for {config.type}", extra={"url_length": len(url)})
    return url
