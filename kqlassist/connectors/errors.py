"""
Backend Error Classification

Translates raw transport and identity failures into typed errors once,
at the connector boundary. Fallback logic dispatches on the resulting
``BackendErrorKind`` and never inspects message text itself.
"""

import logging
import re
from typing import Any

import httpx
from azure.core.exceptions import ClientAuthenticationError

from kqlassist.models.errors import (
    AuthenticationExhausted,
    BackendError,
    BackendErrorKind,
    ExecutionFailure,
)

logger = logging.getLogger(__name__)

AUTH_ERROR_PATTERN = re.compile(
    r"\b401\b|unauthorized|authentication|access denied|invalid credentials",
    re.IGNORECASE,
)

_TIMEOUT_STATUSES = {408, 504}


def classify_backend_error(status_code: int | None, message: str) -> BackendErrorKind:
    """
    Classify a failed backend response.

    Args:
        status_code: HTTP status, if the failure came from a response
        message: Error text extracted from the payload or exception

    Returns:
        The error kind; only AUTHENTICATION is recoverable by switching
        credentials.
    """
    if status_code == 401:
        return BackendErrorKind.AUTHENTICATION
    if status_code == 429:
        return BackendErrorKind.THROTTLED
    if AUTH_ERROR_PATTERN.search(message or ""):
        return BackendErrorKind.AUTHENTICATION
    if status_code in _TIMEOUT_STATUSES:
        return BackendErrorKind.TIMEOUT
    if status_code is not None and status_code >= 500:
        return BackendErrorKind.SERVER
    return BackendErrorKind.QUERY


def extract_error_message(response: httpx.Response) -> str:
    """Pull the most specific error text out of an error response."""
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase

    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return response.text.strip() or response.reason_phrase

    parts = [error.get("message") or error.get("@message") or ""]
    inner = error.get("innererror")
    while isinstance(inner, dict):
        detail = inner.get("message")
        if detail and detail not in parts:
            parts.append(detail)
        inner = inner.get("innererror")
    code = error.get("code")
    text = ": ".join(part for part in parts if part)
    return f"{code}: {text}" if code and text else text or code or response.reason_phrase


def error_from_response(
    backend: str,
    response: httpx.Response,
    strategy: str | None = None,
) -> BackendError:
    """Build the typed error for a non-success backend response."""
    message = extract_error_message(response)
    kind = classify_backend_error(response.status_code, message)
    context: dict[str, Any] = {"url": str(response.request.url)}

    if kind is BackendErrorKind.AUTHENTICATION:
        return AuthenticationExhausted(
            backend,
            message,
            strategy=strategy,
            status_code=response.status_code,
            context=context,
        )
    return ExecutionFailure(
        backend,
        message,
        kind=kind,
        status_code=response.status_code,
        context=context,
    )


def error_from_transport(backend: str, exc: httpx.HTTPError) -> ExecutionFailure:
    """Translate an httpx transport exception (no response received)."""
    if isinstance(exc, httpx.TimeoutException):
        kind = BackendErrorKind.TIMEOUT
    else:
        kind = BackendErrorKind.TRANSPORT
    logger.debug(
        f"{backend} transport error: {exc}",
        extra={"backend": backend, "kind": kind.value},
    )
    return ExecutionFailure(backend, f"{type(exc).__name__}: {exc}", kind=kind)


def error_from_credential(
    backend: str,
    exc: ClientAuthenticationError,
    strategy: str,
) -> AuthenticationExhausted:
    """Translate an identity provider failure into a recoverable auth error."""
    return AuthenticationExhausted(
        backend,
        f"Credential acquisition failed: {exc.message or exc}",
        strategy=strategy,
    )
