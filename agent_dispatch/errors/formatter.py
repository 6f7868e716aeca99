"""Application error type and formatting.

DispatchError is what the API exception handler renders; services raise
narrower exceptions and the trigger layer converts them with from_code().
"""

from dataclasses import dataclass, field

from agent_dispatch.errors.registry import get_error


@dataclass
class DispatchError(Exception):
    """Application error with code, message, and context.

    Attributes:
        code: Error code in E-XXXX format.
        message: Human-readable error message.
        remediation: Action the operator should take to resolve.
        http_status: Status code the API responds with.
        is_retryable: Whether the trigger can be replayed without operator action.
        details: Additional context dictionary.
    """

    code: str
    message: str
    remediation: str
    http_status: int = 500
    is_retryable: bool = False
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.code}: {self.message}"

    @classmethod
    def from_code(cls, code: str, **kwargs: object) -> "DispatchError":
        """Create error from registry code with context substitution.

        Args:
            code: Error code in E-XXXX format.
            **kwargs: Context values for message template substitution.
                The special key 'details' is stored on the error instead.

        Returns:
            DispatchError instance with formatted message.
        """
        details = kwargs.pop("details", {})
        if not isinstance(details, dict):
            details = {}

        error_def = get_error(code)
        if not error_def:
            return cls(
                code=code,
                message=f"Unknown error: {code}",
                remediation="Contact support.",
                details=details,
            )

        message = error_def.message_template
        try:
            message = message.format(**kwargs)
        except KeyError:
            # Keep template if some placeholders are missing
            pass

        return cls(
            code=error_def.code,
            message=message,
            remediation=error_def.remediation,
            http_status=error_def.http_status,
            is_retryable=error_def.is_retryable,
            details=details,
        )


def format_error(error: DispatchError, include_remediation: bool = True) -> str:
    """Format error for display on the CLI.

    Args:
        error: The DispatchError to format.
        include_remediation: Whether to include remediation steps.

    Returns:
        Multi-line formatted string.
    """
    lines = [f"{error.code}: {error.message}"]
    if include_remediation:
        lines.append(f"  Action: {error.remediation}")
    return "\n".join(lines)
