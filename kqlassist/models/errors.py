"""
Error Taxonomy

Exceptions raised across the generate → decide → execute path.
Every error carries the component that raised it, whether a local retry
could help, and a context dict the presentation layer can render from.
"""

from enum import Enum
from typing import Any


class BackendErrorKind(str, Enum):
    """Structured classification of a telemetry backend failure."""

    AUTHENTICATION = "authentication"
    QUERY = "query"
    THROTTLED = "throttled"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    SERVER = "server"


class KQLAssistError(Exception):
    """
    Base exception for all kqlassist errors.

    Attributes:
        component: Name of the component that raised the error
        message: Error description
        recoverable: Whether a local retry could succeed
        context: Additional context for debugging and rendering
    """

    def __init__(
        self,
        component: str,
        message: str,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ):
        self.component = component
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}
        super().__init__(f"[{component}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/CLI output."""
        return {
            "component": self.component,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
            "type": self.__class__.__name__,
        }


class GenerationFailure(KQLAssistError):
    """The language model was unreachable or returned no content."""

    def __init__(self, component: str, message: str, context: dict[str, Any] | None = None):
        super().__init__(component, message, recoverable=False, context=context)


class RegenerationExhausted(KQLAssistError):
    """The per-turn attempt cap was reached."""

    def __init__(self, attempts: int, max_attempts: int, last_query: str | None = None):
        self.attempts = attempts
        self.max_attempts = max_attempts
        super().__init__(
            "QueryPipeline",
            f"Regeneration limit reached after {attempts} of {max_attempts} attempts",
            recoverable=False,
            context={
                "attempts": attempts,
                "max_attempts": max_attempts,
                "last_query": last_query,
            },
        )


class ReviewRoundsExhausted(KQLAssistError):
    """The reviewer kept the query in review past the per-turn round limit."""

    def __init__(self, rounds: int, last_query: str | None = None):
        self.rounds = rounds
        super().__init__(
            "QueryPipeline",
            f"Query stayed in review for {rounds} rounds without being executed or cancelled",
            recoverable=False,
            context={"rounds": rounds, "last_query": last_query},
        )


class ConfigurationInvalid(KQLAssistError):
    """Provider configuration was rejected by the validation gate."""

    def __init__(
        self,
        provider_type: str,
        errors: list[str],
        warnings: list[str] | None = None,
    ):
        self.provider_type = provider_type
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(
            "ValidationGate",
            f"Invalid {provider_type} configuration: " + "; ".join(self.errors),
            recoverable=False,
            context={
                "provider_type": provider_type,
                "errors": self.errors,
                "warnings": self.warnings,
            },
        )


class BackendError(KQLAssistError):
    """
    Failure reported by a telemetry backend or identity provider.

    Raw transport errors are translated into this type at the connector
    boundary so callers dispatch on ``kind`` instead of message text.
    """

    def __init__(
        self,
        backend: str,
        message: str,
        kind: BackendErrorKind,
        status_code: int | None = None,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ):
        self.backend = backend
        self.kind = kind
        self.status_code = status_code
        merged = {"kind": kind.value, "status_code": status_code}
        merged.update(context or {})
        super().__init__(backend, message, recoverable=recoverable, context=merged)


class AuthenticationExhausted(BackendError):
    """
    Credentials were rejected.

    Raised inside the connector for every authentication failure; it only
    reaches callers once the whole strategy chain has failed, in which case
    ``attempted_strategies`` lists every strategy that was tried.
    """

    def __init__(
        self,
        backend: str,
        message: str,
        strategy: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.strategy = strategy
        self.attempted_strategies: list[str] = [strategy] if strategy else []
        super().__init__(
            backend,
            message,
            kind=BackendErrorKind.AUTHENTICATION,
            status_code=status_code,
            recoverable=True,
            context={"strategy": strategy, **(context or {})},
        )

    def record_attempts(self, strategies: list[str]) -> None:
        """Attach the full list of attempted strategies."""
        self.attempted_strategies = list(strategies)
        self.context["attempted_strategies"] = list(strategies)


class ExecutionFailure(BackendError):
    """Terminal backend failure; changing credentials cannot fix it."""

    def __init__(
        self,
        backend: str,
        message: str,
        kind: BackendErrorKind = BackendErrorKind.QUERY,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(
            backend,
            message,
            kind=kind,
            status_code=status_code,
            recoverable=False,
            context=context,
        )


class DeadlineExceeded(KQLAssistError):
    """The end-to-end turn deadline elapsed at a suspension point."""

    def __init__(self, stage: str, budget_seconds: float | None = None):
        self.stage = stage
        super().__init__(
            "Deadline",
            f"Turn deadline exceeded during {stage}",
            recoverable=False,
            context={"stage": stage, "budget_seconds": budget_seconds},
        )
