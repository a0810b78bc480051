"""
Application Insights Connector

Queries an Application Insights component through the
``/v1/apps/{application_id}/query`` REST API.

Usage:
    config = ApplicationInsightsConfig(application_id="...")

    async with ApplicationInsightsConnector(config) as connector:
        result = await connector.execute("requests | summarize count() by resultCode")
"""

import logging

from pydantic import ValidationError

from kqlassist.connectors.auth import ConnectionHandle
from kqlassist.connectors.base import BaseTelemetryConnector
from kqlassist.connectors.normalize import (
    MonitorQueryResponse,
    monitor_schema_to_info,
    monitor_to_result,
)
from kqlassist.models.errors import BackendErrorKind, ExecutionFailure
from kqlassist.models.result import QueryResult, SchemaInfo
from kqlassist.pipeline.deadline import Deadline

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.applicationinsights.io"

SCHEMA_QUERY = (
    "union withsource=TableName * "
    "| where timestamp > ago(1h) "
    "| summarize Columns=buildschema(pack_all()) by TableName "
    "| take 100"
)


class ApplicationInsightsConnector(BaseTelemetryConnector):
    """Application Insights query connector."""

    provider_type = "application-insights"
    backend_name = "ApplicationInsights"
    validation_query = "print ok = 1"

    @property
    def base_url(self) -> str:
        return (self.config.endpoint or DEFAULT_ENDPOINT).rstrip("/")

    @property
    def scope(self) -> str:
        return f"{self.base_url}/.default"

    @property
    def query_url(self) -> str:
        return f"{self.base_url}/v1/apps/{self.config.application_id}/query"

    async def _send_query(
        self,
        query: str,
        handle: ConnectionHandle,
        deadline: Deadline,
        timeout: float | None,
    ) -> QueryResult:
        body = {"query": query}
        if self.config.timespan:
            body["timespan"] = self.config.timespan

        logger.debug(
            "Sending Application Insights query",
            extra={"application_id": self.config.application_id, "query_length": len(query)},
        )
        payload = await self._request_json(
            "POST", self.query_url, handle, deadline, timeout, json_body=body
        )
        try:
            parsed = MonitorQueryResponse.model_validate(payload)
        except ValidationError as e:
            raise ExecutionFailure(
                self.backend_name,
                f"Unexpected response shape: {e.error_count()} validation errors",
                kind=BackendErrorKind.SERVER,
            ) from e
        return monitor_to_result(parsed)

    async def _fetch_schema(self, handle: ConnectionHandle, deadline: Deadline) -> SchemaInfo:
        result = await self._send_query(SCHEMA_QUERY, handle, deadline, self.timeout)
        return monitor_schema_to_info(result)
