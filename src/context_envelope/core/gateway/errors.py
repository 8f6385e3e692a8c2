"""Errors raised by gateway backends.

The capability resolver catches all of these and falls back to provider
defaults; they surface directly only to callers of the metadata client.
"""

from typing import Any, Optional


class GatewayProviderError(Exception):
    """Base exception for gateway backend failures.

    Attributes:
        provider: Name of the backend that raised the error
        message: Human-readable error description
        retryable: Whether the operation can be retried
        original_error: Underlying exception, if any
    """

    def __init__(
        self,
        provider: str,
        message: str,
        retryable: bool = False,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.retryable = retryable
        self.original_error = original_error

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "provider": self.provider,
            "message": self.message,
            "retryable": self.retryable,
        }


class AuthenticationError(GatewayProviderError):
    """Credentials were rejected (401/403)."""

    def __init__(self, provider: str, message: str = "Authentication failed"):
        super().__init__(provider=provider, message=message, retryable=False)


class RateLimitError(GatewayProviderError):
    """Rate limit exceeded (429).

    Attributes:
        retry_after: Seconds to wait before retrying, when the backend says
    """

    def __init__(
        self,
        provider: str,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
    ):
        super().__init__(provider=provider, message=message, retryable=True)
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        return data
