"""Typed domain exceptions for API error mapping.

The API exception handlers and the CLI translate these by type, through
``services.errors.to_dispatch_error``, into coded errors with the matching
HTTP status.

Usage:
    # In service layer
    raise ParameterNotFoundError(account_id, ParameterName.HOST_TOKEN)

    # At a trigger surface
    error = to_dispatch_error(exc)   # E-2002, HTTP 422
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ValidationError(DomainError):
    """Validation failure. Maps to HTTP 400."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ParameterNotFoundError(NotFoundError):
    """Required tenant parameter is missing. Maps to HTTP 422.

    Distinct from a plain NotFoundError because it signals tenant
    misconfiguration rather than a missing addressed resource.
    """

    def __init__(self, account_id: int, name: str) -> None:
        DomainError.__init__(
            self, f"Parameter '{name}' not found for account_id={account_id}"
        )
        self.resource_type = "Parameter"
        self.identifier = name
        self.account_id = account_id
        self.name = name
