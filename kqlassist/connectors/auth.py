"""
Authentication Strategies

Credential sources tried, in priority order, when a connector needs a
bearer token for a telemetry backend:

    EXPLICIT_TOKEN           caller-supplied credential (service principal or static token)
    PLATFORM_DEFAULT         azure-identity DefaultAzureCredential chain
    INTERACTIVE_LOGIN        token cached by ``az login``
    SYSTEM_MANAGED_IDENTITY  managed identity of the host

Credentials are created lazily, on first use of their strategy, and
cached for the lifetime of the registry.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from azure.core.credentials import AccessToken
from azure.core.credentials_async import AsyncTokenCredential
from azure.core.exceptions import ClientAuthenticationError
from azure.identity.aio import (
    AzureCliCredential,
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)

from kqlassist.connectors.errors import error_from_credential

logger = logging.getLogger(__name__)

# Refresh tokens this many seconds before they expire
TOKEN_EXPIRY_SKEW_SECONDS = 300


class AuthenticationStrategy(str, Enum):
    """Credential sources, declared in fallback priority order."""

    EXPLICIT_TOKEN = "explicit_token"
    PLATFORM_DEFAULT = "platform_default"
    INTERACTIVE_LOGIN = "interactive_login"
    SYSTEM_MANAGED_IDENTITY = "system_managed_identity"


class StaticTokenCredential:
    """Async token credential wrapping a pre-acquired bearer token."""

    def __init__(self, token: str, expires_on: int | None = None):
        self._token = token
        # Unknown expiry: treat the token as valid for an hour from now
        self._expires_on = expires_on or int(time.time()) + 3600

    async def get_token(self, *scopes: str, **kwargs) -> AccessToken:
        return AccessToken(self._token, self._expires_on)

    async def close(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


CredentialFactory = Callable[[], AsyncTokenCredential]


def default_credential_factories(
    tenant_id: str | None = None,
) -> dict[AuthenticationStrategy, CredentialFactory]:
    """Factories for the ambient strategies, backed by azure-identity."""
    return {
        AuthenticationStrategy.PLATFORM_DEFAULT: lambda: DefaultAzureCredential(
            additionally_allowed_tenants=["*"]
        ),
        AuthenticationStrategy.INTERACTIVE_LOGIN: lambda: AzureCliCredential(tenant_id=tenant_id),
        AuthenticationStrategy.SYSTEM_MANAGED_IDENTITY: lambda: ManagedIdentityCredential(),
    }


def build_explicit_credential(
    access_token: str | None = None,
    tenant_id: str | None = None,
    client_id: str | None = None,
    client_secret: str | None = None,
) -> AsyncTokenCredential | None:
    """
    Build the explicit credential from configured secrets.

    A static access token wins over a service principal. Returns None when
    neither is configured, in which case EXPLICIT_TOKEN is unavailable.
    """
    if access_token:
        return StaticTokenCredential(access_token)
    if tenant_id and client_id and client_secret:
        return ClientSecretCredential(tenant_id, client_id, client_secret)
    return None


@dataclass
class ConnectionHandle:
    """Token acquired for one strategy and scope."""

    strategy: AuthenticationStrategy
    scope: str
    token: AccessToken

    @property
    def authorization(self) -> str:
        return f"Bearer {self.token.token}"

    def is_expired(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return self.token.expires_on - TOKEN_EXPIRY_SKEW_SECONDS <= current


class CredentialRegistry:
    """
    Lazily created, cached credentials for every strategy.

    Owns (and closes) every credential it created. An explicit credential
    passed in by the caller is closed only when ``owns_explicit`` is set.
    """

    def __init__(
        self,
        explicit_credential: AsyncTokenCredential | None = None,
        tenant_id: str | None = None,
        factories: dict[AuthenticationStrategy, CredentialFactory] | None = None,
        owns_explicit: bool = False,
    ):
        self._explicit = explicit_credential
        self._owns_explicit = owns_explicit
        self._factories = (
            factories if factories is not None else default_credential_factories(tenant_id)
        )
        self._credentials: dict[AuthenticationStrategy, AsyncTokenCredential] = {}

    @property
    def has_explicit_credential(self) -> bool:
        return self._explicit is not None

    def available_strategies(self) -> list[AuthenticationStrategy]:
        """All strategies this registry can serve, in priority order."""
        return [
            strategy
            for strategy in AuthenticationStrategy
            if strategy is not AuthenticationStrategy.EXPLICIT_TOKEN
            or self.has_explicit_credential
        ]

    def is_single_audience(self, strategy: AuthenticationStrategy) -> bool:
        """Whether the strategy returns one pre-acquired token whatever scope is asked for."""
        return strategy is AuthenticationStrategy.EXPLICIT_TOKEN and isinstance(
            self._explicit, StaticTokenCredential
        )

    def initial_strategy(self) -> AuthenticationStrategy:
        if self.has_explicit_credential:
            return AuthenticationStrategy.EXPLICIT_TOKEN
        return AuthenticationStrategy.PLATFORM_DEFAULT

    def fallback_candidates(
        self, tried: list[AuthenticationStrategy]
    ) -> list[AuthenticationStrategy]:
        """Strategies not yet tried, in priority order."""
        return [strategy for strategy in self.available_strategies() if strategy not in tried]

    def get(self, strategy: AuthenticationStrategy) -> AsyncTokenCredential:
        """Return the credential for a strategy, creating it on first use."""
        if strategy is AuthenticationStrategy.EXPLICIT_TOKEN:
            if self._explicit is None:
                raise ValueError("No explicit credential was supplied")
            return self._explicit

        if strategy not in self._credentials:
            factory = self._factories.get(strategy)
            if factory is None:
                raise ValueError(f"No credential factory registered for {strategy.value}")
            self._credentials[strategy] = factory()
            logger.debug(
                f"Created credential for {strategy.value}",
                extra={"strategy": strategy.value},
            )
        return self._credentials[strategy]

    async def acquire(
        self,
        strategy: AuthenticationStrategy,
        scope: str,
        backend: str,
    ) -> ConnectionHandle:
        """
        Acquire a token for ``scope`` using ``strategy``.

        Raises:
            AuthenticationExhausted: If the identity provider rejects or
                cannot serve the request
        """
        credential = self.get(strategy)
        try:
            token = await credential.get_token(scope)
        except ClientAuthenticationError as e:
            logger.info(
                f"{strategy.value} could not acquire a token: {e.message or e}",
                extra={"strategy": strategy.value, "scope": scope},
            )
            raise error_from_credential(backend, e, strategy.value) from e
        return ConnectionHandle(strategy=strategy, scope=scope, token=token)

    async def close(self) -> None:
        """Close every credential this registry created."""
        credentials = list(self._credentials.values())
        if self._explicit is not None and self._owns_explicit:
            credentials.append(self._explicit)
        self._credentials.clear()
        for credential in credentials:
            await credential.close()
