"""
Azure Data Explorer Connector

Queries a Kusto cluster through the v1 REST API. Queries go to
``/v1/rest/query``; control commands (text starting with ``.``) go to
``/v1/rest/mgmt``.
"""

import logging

from pydantic import ValidationError

from kqlassist.connectors.auth import ConnectionHandle
from kqlassist.connectors.base import BaseTelemetryConnector
from kqlassist.connectors.normalize import (
    KustoQueryResponse,
    kusto_schema_to_info,
    kusto_to_result,
)
from kqlassist.models.errors import BackendErrorKind, ExecutionFailure
from kqlassist.models.result import QueryResult, SchemaInfo
from kqlassist.pipeline.deadline import Deadline

logger = logging.getLogger(__name__)


class DataExplorerConnector(BaseTelemetryConnector):
    """Azure Data Explorer (Kusto) query connector."""

    provider_type = "azure-data-explorer"
    backend_name = "DataExplorer"
    validation_query = ".show version"

    @property
    def cluster_url(self) -> str:
        return self.config.cluster_uri.rstrip("/")

    @property
    def scope(self) -> str:
        return f"{self.cluster_url}/.default"

    @property
    def schema_query(self) -> str:
        return (
            f".show database ['{self.config.database}'] schema "
            "| where isnotempty(ColumnName) "
            "| project TableName, ColumnName, ColumnType"
        )

    def endpoint_for(self, query: str) -> str:
        """Control commands use the management endpoint."""
        if query.lstrip().startswith("."):
            return f"{self.cluster_url}/v1/rest/mgmt"
        return f"{self.cluster_url}/v1/rest/query"

    async def _send_query(
        self,
        query: str,
        handle: ConnectionHandle,
        deadline: Deadline,
        timeout: float | None,
    ) -> QueryResult:
        body = {"db": self.config.database, "csl": query}
        effective_timeout = deadline.clip(timeout)
        if effective_timeout:
            body["properties"] = {
                "Options": {"servertimeout": _format_timespan(effective_timeout)}
            }

        payload = await self._request_json(
            "POST", self.endpoint_for(query), handle, deadline, timeout, json_body=body
        )
        try:
            parsed = KustoQueryResponse.model_validate(payload)
        except ValidationError as e:
            raise ExecutionFailure(
                self.backend_name,
                f"Unexpected response shape: {e.error_count()} validation errors",
                kind=BackendErrorKind.SERVER,
            ) from e
        return kusto_to_result(parsed)

    async def _fetch_schema(self, handle: ConnectionHandle, deadline: Deadline) -> SchemaInfo:
        result = await self._send_query(self.schema_query, handle, deadline, self.timeout)
        return kusto_schema_to_info(result)


def _format_timespan(seconds: float) -> str:
    """Format seconds as a Kusto timespan literal (hh:mm:ss)."""
    total = max(1, int(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
