"""Error handling framework for the dispatch engine.

This package provides:
- Typed domain exceptions raised by the service layer
- Error code registry with E-XXXX format codes
- DispatchError, the shape rendered by the API and CLI

Error categories:
- E-2xxx: Validation errors
- E-3xxx: Conversation host errors
- E-4xxx: System/internal errors
"""

from agent_dispatch.errors.domain import (
    DomainError,
    NotFoundError,
    ParameterNotFoundError,
    ValidationError,
)
from agent_dispatch.errors.formatter import DispatchError, format_error
from agent_dispatch.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Domain
    "DomainError",
    "NotFoundError",
    "ParameterNotFoundError",
    "ValidationError",
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Formatter
    "DispatchError",
    "format_error",
]
