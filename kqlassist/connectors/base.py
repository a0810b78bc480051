"""
Base Telemetry Connector

Abstract base class for the KQL backends. Provides a consistent async
interface for executing queries, validating connectivity and discovering
schema, plus the authentication fallback every backend shares.

All connectors must implement:
- scope: token audience for the backend
- _send_query(): issue one query with an acquired token
- _fetch_schema(): discover tables and columns
- validation_query: cheapest query proving the backend is reachable

Authentication:
    A connector starts on EXPLICIT_TOKEN when a credential was supplied,
    PLATFORM_DEFAULT otherwise. When the backend or identity provider
    rejects credentials, the remaining strategies are tried once each in
    priority order; the first that succeeds becomes the connector's
    strategy for every later call. Any other failure is terminal and
    propagates without trying another strategy.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
from azure.core.credentials_async import AsyncTokenCredential

from kqlassist.connectors.auth import (
    AuthenticationStrategy,
    ConnectionHandle,
    CredentialRegistry,
)
from kqlassist.connectors.errors import error_from_response, error_from_transport
from kqlassist.connectors.validation import log_validation_result, validate_provider_config
from kqlassist.models.errors import (
    AuthenticationExhausted,
    BackendErrorKind,
    ConfigurationInvalid,
    ExecutionFailure,
    KQLAssistError,
)
from kqlassist.models.result import ConnectionCheck, QueryResult, SchemaInfo
from kqlassist.pipeline.deadline import Deadline

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseTelemetryConnector(ABC):
    """
    Abstract base class for telemetry backend connectors.

    Features:
    - Validation gate: invalid configurations never allocate resources
    - Sticky authentication strategy with ordered fallback
    - Typed errors classified once at the transport boundary
    - Deadline-aware execution with per-call timeouts
    - Automatic resource cleanup (async context manager)

    Not safe for overlapping concurrent queries: ``current_strategy`` has
    a single owner.

    Usage:
        async with ApplicationInsightsConnector(config) as connector:
            result = await connector.execute("requests | take 10")
            print(result.primary_table.row_count)
    """

    provider_type: str = ""
    backend_name: str = "Telemetry"

    def __init__(
        self,
        config,
        *,
        credential: AsyncTokenCredential | None = None,
        credentials: CredentialRegistry | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ):
        """
        Initialize connector.

        Args:
            config: Provider configuration for this backend
            credential: Explicit credential enabling EXPLICIT_TOKEN
            credentials: Pre-built credential registry (overrides ``credential``)
            http_client: Shared httpx client (the connector creates and owns one otherwise)
            timeout: Default per-query timeout in seconds

        Raises:
            ConfigurationInvalid: If the configuration fails the validation gate
        """
        if getattr(config, "type", None) != self.provider_type:
            raise ConfigurationInvalid(
                self.provider_type,
                [
                    f"{self.__class__.__name__} requires a {self.provider_type} configuration, "
                    f"got {getattr(config, 'type', type(config).__name__)}"
                ],
            )
        result = validate_provider_config(config)
        log_validation_result(self.provider_type, result)
        if not result.is_valid:
            raise ConfigurationInvalid(self.provider_type, result.errors, result.warnings)

        self.config = config
        self.timeout = timeout
        self._credentials = credentials or CredentialRegistry(
            explicit_credential=credential,
            tenant_id=config.tenant_id,
        )
        self.current_strategy: AuthenticationStrategy = self._credentials.initial_strategy()
        self._handle: ConnectionHandle | None = None
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._closed = False

        logger.info(
            f"Initialized {self.__class__.__name__}",
            extra={
                "provider_type": self.provider_type,
                "strategy": self.current_strategy.value,
            },
        )

    # ------------------------------------------------------------------
    # Backend-specific hooks
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def scope(self) -> str:
        """OAuth scope for the backend's query API."""
        pass  # pragma: no cover - abstract method

    @property
    @abstractmethod
    def validation_query(self) -> str:
        """Query used by validate_connection()."""
        pass  # pragma: no cover - abstract method

    @abstractmethod
    async def _send_query(
        self,
        query: str,
        handle: ConnectionHandle,
        deadline: Deadline,
        timeout: float | None,
    ) -> QueryResult:
        """
        Issue one query with an established connection.

        Raises:
            AuthenticationExhausted: Credentials rejected
            ExecutionFailure: Any terminal failure
        """
        pass  # pragma: no cover - abstract method

    @abstractmethod
    async def _fetch_schema(
        self,
        handle: ConnectionHandle,
        deadline: Deadline,
    ) -> SchemaInfo:
        """Discover tables and columns with an established connection."""
        pass  # pragma: no cover - abstract method

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(
        self,
        query: str,
        timeout: float | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> QueryResult:
        """
        Execute a KQL query.

        Args:
            query: KQL query text
            timeout: Per-query timeout in seconds (overrides default)
            deadline: Turn deadline; the timeout is clipped to its remainder

        Returns:
            QueryResult in the canonical shape

        Raises:
            AuthenticationExhausted: Every strategy was rejected
            ExecutionFailure: Terminal backend failure
            DeadlineExceeded: The turn deadline ran out
        """
        deadline = deadline or Deadline.unbounded()
        query_timeout = timeout or self.timeout

        async def operation(handle: ConnectionHandle) -> QueryResult:
            return await self._send_query(query, handle, deadline, query_timeout)

        result = await self._run_with_fallback(operation, deadline, "execute")
        logger.info(
            f"{self.backend_name} query returned {result.total_rows} rows",
            extra={
                "provider_type": self.provider_type,
                "tables": len(result.tables),
                "rows": result.total_rows,
                "strategy": self.current_strategy.value,
            },
        )
        return result

    async def validate_connection(self) -> ConnectionCheck:
        """Run a trivial query. Never raises; failures are reported in the result."""
        try:
            await self.execute(self.validation_query)
        except KQLAssistError as e:
            logger.warning(
                f"{self.backend_name} connection check failed: {e.message}",
                extra={"provider_type": self.provider_type, "error": e.to_dict()},
            )
            return ConnectionCheck(is_valid=False, error=e.message)
        return ConnectionCheck(is_valid=True)

    async def get_schema(self, *, deadline: Deadline | None = None) -> SchemaInfo:
        """
        Discover backend schema.

        Raises:
            AuthenticationExhausted: Every strategy was rejected
            ExecutionFailure: Terminal backend failure
        """
        deadline = deadline or Deadline.unbounded()

        async def operation(handle: ConnectionHandle) -> SchemaInfo:
            return await self._fetch_schema(handle, deadline)

        schema = await self._run_with_fallback(operation, deadline, "schema")
        logger.info(
            f"{self.backend_name} schema has {len(schema.tables)} tables",
            extra={"provider_type": self.provider_type, "tables": len(schema.tables)},
        )
        return schema

    async def aclose(self) -> None:
        """Release the HTTP client and every credential the connector created."""
        if self._closed:
            return
        self._closed = True
        self._handle = None
        if self._owns_client:
            await self._client.aclose()
        await self._credentials.close()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()
        return False

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.provider_type} ({self.current_strategy.value})>"

    # ------------------------------------------------------------------
    # Authentication fallback
    # ------------------------------------------------------------------

    async def _run_with_fallback(
        self,
        operation: Callable[[ConnectionHandle], Awaitable[T]],
        deadline: Deadline,
        stage: str,
    ) -> T:
        tried = [self.current_strategy]
        try:
            return await self._attempt(self.current_strategy, operation, deadline, stage)
        except AuthenticationExhausted as original:
            logger.warning(
                f"{self.backend_name} rejected {self.current_strategy.value}, trying fallbacks",
                extra={
                    "provider_type": self.provider_type,
                    "strategy": self.current_strategy.value,
                    "error": original.message,
                },
            )
            for strategy in self._credentials.fallback_candidates(tried):
                tried.append(strategy)
                try:
                    result = await self._attempt(strategy, operation, deadline, stage)
                except AuthenticationExhausted as e:
                    logger.info(
                        f"Fallback strategy {strategy.value} rejected: {e.message}",
                        extra={"provider_type": self.provider_type, "strategy": strategy.value},
                    )
                    continue

                logger.info(
                    f"Switched authentication strategy to {strategy.value}",
                    extra={
                        "provider_type": self.provider_type,
                        "previous": self.current_strategy.value,
                        "strategy": strategy.value,
                    },
                )
                self.current_strategy = strategy
                return result

            original.record_attempts([strategy.value for strategy in tried])
            logger.error(
                f"All authentication strategies failed for {self.backend_name}",
                extra={
                    "provider_type": self.provider_type,
                    "attempted_strategies": original.attempted_strategies,
                },
            )
            raise original

    async def _attempt(
        self,
        strategy: AuthenticationStrategy,
        operation: Callable[[ConnectionHandle], Awaitable[T]],
        deadline: Deadline,
        stage: str,
    ) -> T:
        handle = await self._connect(strategy, deadline)
        try:
            return await operation(handle)
        except AuthenticationExhausted:
            if self._handle is handle:
                self._handle = None
            raise

    async def _connect(
        self,
        strategy: AuthenticationStrategy,
        deadline: Deadline,
    ) -> ConnectionHandle:
        """Reuse the live handle for ``strategy`` or acquire a new token."""
        handle = self._handle
        if handle is not None and handle.strategy is strategy and not handle.is_expired():
            return handle

        self._handle = await self._acquire(strategy, self.scope, deadline)
        return self._handle

    async def _acquire(
        self,
        strategy: AuthenticationStrategy,
        scope: str,
        deadline: Deadline,
    ) -> ConnectionHandle:
        try:
            return await deadline.run(
                self._credentials.acquire(strategy, scope, self.backend_name),
                "authenticate",
                timeout=self.timeout,
            )
        except TimeoutError as e:
            raise ExecutionFailure(
                self.backend_name,
                f"Token acquisition for {strategy.value} timed out",
                kind=BackendErrorKind.TIMEOUT,
            ) from e

    # ------------------------------------------------------------------
    # Transport helpers for subclasses
    # ------------------------------------------------------------------

    async def _request_json(
        self,
        method: str,
        url: str,
        handle: ConnectionHandle,
        deadline: Deadline,
        timeout: float | None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Send an authorized request and return its JSON body, translating failures."""
        headers = {"Authorization": handle.authorization, "Accept": "application/json"}
        try:
            response = await deadline.run(
                self._client.request(method, url, json=json_body, params=params, headers=headers),
                "execute",
                timeout=timeout,
            )
        except TimeoutError as e:
            raise ExecutionFailure(
                self.backend_name,
                f"Request to {url} timed out",
                kind=BackendErrorKind.TIMEOUT,
            ) from e
        except httpx.HTTPError as e:
            raise error_from_transport(self.backend_name, e) from e

        if response.is_error:
            raise error_from_response(self.backend_name, response, handle.strategy.value)

        try:
            return response.json()
        except ValueError as e:
            raise ExecutionFailure(
                self.backend_name,
                "Backend returned a non-JSON response",
                kind=BackendErrorKind.SERVER,
                status_code=response.status_code,
            ) from e
