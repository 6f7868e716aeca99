"""Error code registry with E-XXXX format codes.

Categories:
- E-2xxx: Validation errors (bad trigger input, tenant misconfiguration)
- E-3xxx: Conversation host (Chatwoot) errors
- E-4xxx: System/internal errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    VALIDATION = "validation"  # E-2xxx
    HOST_API = "host_api"  # E-3xxx
    SYSTEM = "system"  # E-4xxx


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action the operator should take to resolve.
        http_status: Status code the API responds with.
        is_retryable: Whether the trigger can be replayed without operator action.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    http_status: int = 500
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Invalid Trigger Payload",
        message_template="{detail}",
        remediation="Send every required field with a valid value.",
        http_status=400,
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Missing Tenant Parameter",
        message_template="{detail}",
        remediation="Add the parameter to the tenant's account parameters and retry.",
        http_status=422,
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.VALIDATION,
        title="Unknown Tenant",
        message_template="{detail}",
        remediation="Check the account id or domain sent by the caller.",
        http_status=404,
    ),
    # Conversation host errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.HOST_API,
        title="Conversation Host Request Failed",
        message_template="Chatwoot request failed: {detail}",
        remediation="Check the tenant's chatwoot-url and chatwoot-token, then retry.",
        http_status=502,
        is_retryable=True,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.HOST_API,
        title="Conversation Host Database Unavailable",
        message_template="Chatwoot database error: {detail}",
        remediation="Check chatwoot_db_host and the host_db credentials, then retry.",
        http_status=502,
        is_retryable=True,
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Internal Error",
        message_template="Unexpected error: {detail}",
        remediation="Check the service logs for the stack trace.",
        http_status=500,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Look up an error code definition.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Return all error codes in a category, sorted by code."""
    return sorted(
        (e for e in ERROR_REGISTRY.values() if e.category == category),
        key=lambda e: e.code,
    )
