"""Shared service-layer error types.

Centralised here to avoid circular imports between service modules.
"""

from dataclasses import dataclass

from agent_dispatch.errors.domain import (
    NotFoundError,
    ParameterNotFoundError,
    ValidationError,
)
from agent_dispatch.errors.formatter import DispatchError


@dataclass
class ChatwootAPIError(Exception):
    """Chatwoot REST call failed after the retry budget.

    Attributes:
        method: HTTP method of the failed request.
        url: Full request URL.
        message: Human-readable reason (response body or transport error).
        status_code: HTTP status, or None for transport failures.
        retryable: Whether the failure class was retryable (5xx/429/transport).
    """

    method: str
    url: str
    message: str
    status_code: int | None = None
    retryable: bool = False

    def __str__(self) -> str:
        """Return formatted error message."""
        status = self.status_code if self.status_code is not None else "no response"
        return f"{self.method} {self.url} failed ({status}): {self.message}"


@dataclass
class HostStoreError(Exception):
    """Tenant's Chatwoot database could not be reached.

    Attributes:
        host: Database host name from the tenant parameters.
        message: Underlying driver error text.
    """

    host: str
    message: str

    def __str__(self) -> str:
        """Return formatted error message."""
        return f"Chatwoot database at {self.host} unavailable: {self.message}"


def to_dispatch_error(exc: Exception) -> DispatchError:
    """Translate a service-layer exception into a coded DispatchError.

    Used by the API exception handlers and the CLI so both surfaces
    report the same code for the same failure.
    """
    if isinstance(exc, DispatchError):
        return exc
    if isinstance(exc, ParameterNotFoundError):
        return DispatchError.from_code(
            "E-2002",
            detail=str(exc),
            details={"account_id": exc.account_id, "parameter": exc.name},
        )
    if isinstance(exc, NotFoundError):
        return DispatchError.from_code(
            "E-2003",
            detail=str(exc),
            details={"resource": exc.resource_type, "identifier": exc.identifier},
        )
    if isinstance(exc, ValidationError):
        return DispatchError.from_code("E-2001", detail=str(exc))
    if isinstance(exc, ChatwootAPIError):
        return DispatchError.from_code(
            "E-3001",
            detail=exc.message,
            details={
                "method": exc.method,
                "url": exc.url,
                "status_code": exc.status_code,
            },
        )
    if isinstance(exc, HostStoreError):
        return DispatchError.from_code(
            "E-3002", detail=exc.message, details={"host": exc.host}
        )
    return DispatchError.from_code("E-4001", detail=str(exc) or type(exc).__name__)
