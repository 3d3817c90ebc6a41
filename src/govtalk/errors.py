"""govtalk error types.

Every error carries a ``kind`` tag so that a failed exchange can be
reported as a :class:`~govtalk.client.SendResult` without callers having
to match on exception classes.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "AuthenticationError",
    "ConfigError",
    "DigestError",
    "GovTalkError",
    "ResponseError",
    "SchemaError",
    "TransportError",
    "ValidationError",
]


class GovTalkError(Exception):
    """Base error for govtalk operations."""

    kind = "error"


class ValidationError(GovTalkError):
    """A field or request failed local validation before any network I/O."""

    kind = "validation"


class AuthenticationError(GovTalkError):
    """The selected authentication strategy could not produce a token."""

    kind = "authentication"


class DigestError(GovTalkError):
    """The digest hook could not process the serialized envelope."""

    kind = "digest"


class SchemaError(GovTalkError):
    """Schema unreachable, or XML failed validation against it."""

    kind = "schema"


class ResponseError(GovTalkError):
    """The Gateway reply could not be interpreted as an envelope."""

    kind = "response"


class ConfigError(GovTalkError):
    """Configuration validation error."""

    kind = "config"


class TransportError(GovTalkError):
    """HTTP/connection error.

    Args:
        message: Human-readable error description.
        retryable: Whether this error is transient. Informational only;
            nothing in govtalk retries automatically.
        status: HTTP status code, when the server answered with one.
    """

    kind = "transport"

    def __init__(self, message: str, *, retryable: bool = False, status: int | None = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status = status

    def __reduce__(self) -> tuple[type[TransportError], tuple[str], dict[str, Any]]:
        """Preserve retryable flag and status across pickle/unpickle."""
        return (type(self), (str(self),), {"retryable": self.retryable, "status": self.status})

    def __setstate__(self, state: dict[str, Any] | None) -> None:
        if state is None:
            return
        self.retryable = state.get("retryable", False)
        self.status = state.get("status")
