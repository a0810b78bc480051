"""
Log Analytics Connector

Queries a Log Analytics workspace through the
``/v1/workspaces/{workspace_id}/query`` REST API.

When only the subscription, resource group and workspace name are
configured, the workspace (customer) id is resolved once through Azure
Resource Manager with the same authentication strategy as the query.
"""

import logging

from pydantic import ValidationError

from kqlassist.connectors.auth import AuthenticationStrategy, ConnectionHandle
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

DEFAULT_ENDPOINT = "https://api.loganalytics.io"
ARM_ENDPOINT = "https://management.azure.com"
ARM_SCOPE = f"{ARM_ENDPOINT}/.default"
WORKSPACE_API_VERSION = "2022-10-01"

SCHEMA_QUERY = (
    "union withsource=TableName * "
    "| where TimeGenerated > ago(1h) "
    "| summarize Columns=buildschema(pack_all()) by TableName "
    "| take 100"
)


class LogAnalyticsConnector(BaseTelemetryConnector):
    """Log Analytics workspace query connector."""

    provider_type = "log-analytics"
    backend_name = "LogAnalytics"
    validation_query = "print ok = 1"

    def __init__(self, config, **kwargs):
        super().__init__(config, **kwargs)
        self._workspace_id: str | None = config.workspace_id

    @property
    def base_url(self) -> str:
        return (self.config.endpoint or DEFAULT_ENDPOINT).rstrip("/")

    @property
    def scope(self) -> str:
        return f"{self.base_url}/.default"

    @property
    def workspace_resource_url(self) -> str:
        return (
            f"{ARM_ENDPOINT}/subscriptions/{self.config.subscription_id}"
            f"/resourceGroups/{self.config.resource_group}"
            f"/providers/Microsoft.OperationalInsights/workspaces/{self.config.resource_name}"
        )

    async def resolve_workspace_id(self, handle: ConnectionHandle, deadline: Deadline) -> str:
        """Return the workspace id, looking it up through ARM on first use."""
        if self._workspace_id:
            return self._workspace_id

        arm_strategy = handle.strategy
        if self._credentials.is_single_audience(arm_strategy):
            # A static token is issued for the query API and ARM rejects it
            arm_strategy = AuthenticationStrategy.PLATFORM_DEFAULT
        arm_handle = await self._acquire(arm_strategy, ARM_SCOPE, deadline)
        payload = await self._request_json(
            "GET",
            self.workspace_resource_url,
            arm_handle,
            deadline,
            self.timeout,
            params={"api-version": WORKSPACE_API_VERSION},
        )
        customer_id = (payload.get("properties") or {}).get("customerId")
        if not customer_id:
            raise ExecutionFailure(
                self.backend_name,
                f"Workspace {self.config.resource_name} has no customerId",
                kind=BackendErrorKind.QUERY,
            )

        logger.info(
            f"Resolved Log Analytics workspace {self.config.resource_name}",
            extra={"workspace_id": customer_id, "strategy": arm_strategy.value},
        )
        self._workspace_id = customer_id
        return customer_id

    async def _send_query(
        self,
        query: str,
        handle: ConnectionHandle,
        deadline: Deadline,
        timeout: float | None,
    ) -> QueryResult:
        workspace_id = await self.resolve_workspace_id(handle, deadline)
        body = {"query": query}
        if self.config.timespan:
            body["timespan"] = self.config.timespan

        payload = await self._request_json(
            "POST",
            f"{self.base_url}/v1/workspaces/{workspace_id}/query",
            handle,
            deadline,
            timeout,
            json_body=body,
        )
        try:
            parsed = MonitorQueryResponse.model_validate(payload)
        except ValidationError as e:
            raise ExecutionFailure(
                self.backend_name,
                f"Unexpected response shape: {e.error_count()} validation errors",
                kind=BackendErrorKind.SERVER,
            ) from e

        if parsed.error is not None:
            logger.warning(
                f"Log Analytics returned a partial result: {parsed.error.message}",
                extra={"code": parsed.error.code, "tables": len(parsed.tables)},
            )
        return monitor_to_result(parsed)

    async def _fetch_schema(self, handle: ConnectionHandle, deadline: Deadline) -> SchemaInfo:
        result = await self._send_query(SCHEMA_QUERY, handle, deadline, self.timeout)
        return monitor_schema_to_info(result)
