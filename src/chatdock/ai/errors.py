"""Failure taxonomy for completion requests.

Every failure surfaced by :class:`~chatdock.ai.client.CompletionClient` is a
:class:`CompletionError`. Callers show ``str(error)`` to the user and may branch
on ``code``; none of these errors are retried automatically.
"""

from __future__ import annotations

from typing import Any, ClassVar


class ErrorCode:
    """Machine-readable identifiers for completion failures."""

    MISSING_CREDENTIAL = "missing_credential"
    AUTH_FAILED = "auth_failed"
    RATE_LIMITED = "rate_limited"
    ENDPOINT_OR_MODEL_NOT_FOUND = "endpoint_or_model_not_found"
    API_ERROR = "api_error"
    NETWORK_UNREACHABLE = "network_unreachable"
    UNKNOWN = "unknown"


class CompletionError(Exception):
    """Base class for completion failures."""

    code: ClassVar[str] = ErrorCode.UNKNOWN
    default_message: ClassVar[str] = "The completion request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}

    def __str__(self) -> str:
        return self.message


class MissingCredentialError(CompletionError):
    code = ErrorCode.MISSING_CREDENTIAL
    default_message = "No API key was provided."


class AuthFailedError(CompletionError):
    """The endpoint rejected the credential (HTTP 401)."""

    code = ErrorCode.AUTH_FAILED
    default_message = "The API key was rejected. Update the key and send the request again."


class RateLimitedError(CompletionError):
    code = ErrorCode.RATE_LIMITED
    default_message = "The API rate limit was exceeded. Try again later or check your plan."


class EndpointOrModelNotFoundError(CompletionError):
    """HTTP 404: wrong endpoint URL or unknown model name."""

    code = ErrorCode.ENDPOINT_OR_MODEL_NOT_FOUND
    default_message = "Resource not found. Check the API URL and the model name."

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail
        super().__init__(f"Error 404: {detail or self.default_message}")


class ApiError(CompletionError):
    """Any other non-success HTTP status."""

    code = ErrorCode.API_ERROR

    def __init__(self, status: int, detail: str) -> None:
        self.status = status
        self.detail = detail
        super().__init__(f"API error ({status}): {detail}")

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["status"] = self.status
        return payload


class NetworkUnreachableError(CompletionError):
    """No response arrived: DNS, connect, TLS or timeout failure."""

    code = ErrorCode.NETWORK_UNREACHABLE
    default_message = "No response from the API. Check your internet connection and the API URL."


class UnknownCompletionError(CompletionError):
    code = ErrorCode.UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(f"Error: {message}")


class StreamInterruptedError(UnknownCompletionError):
    """The transport failed after the response had started streaming."""

    def __init__(self, message: str) -> None:
        super().__init__(f"stream interrupted: {message}")


__all__ = [
    "ApiError",
    "AuthFailedError",
    "CompletionError",
    "EndpointOrModelNotFoundError",
    "ErrorCode",
    "MissingCredentialError",
    "NetworkUnreachableError",
    "RateLimitedError",
    "StreamInterruptedError",
    "UnknownCompletionError",
]
