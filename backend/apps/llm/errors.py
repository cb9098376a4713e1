"""
Errors raised by the Messages API client and codec.
"""
from typing import Optional


class LLMError(Exception):
    """Base class for failures talking to the LLM provider."""

    def user_message(self) -> str:
        return "The assistant is unavailable right now. Please try again."


class ProtocolError(LLMError):
    """Transport failure or a response body that could not be decoded."""


class RateLimited(LLMError):
    """HTTP 429. `retry_after` is in seconds."""

    DEFAULT_RETRY_AFTER = 60

    def __init__(self, retry_after: int = DEFAULT_RETRY_AFTER):
        super().__init__(f"Rate limited, retry after {retry_after}s")
        self.retry_after = retry_after

    def user_message(self) -> str:
        return f"Rate limited, try again in {self.retry_after} seconds."


class Unauthorized(LLMError):
    """HTTP 401, the API key was rejected."""

    def __init__(self, message: str = "Invalid API key"):
        super().__init__(message)

    def user_message(self) -> str:
        return "The assistant is not configured correctly (authentication failed)."


class ApiError(LLMError):
    """Any other non-2xx response; carries the provider's error type when it sent one."""

    def __init__(self, status: int, message: str, error_type: Optional[str] = None):
        super().__init__(f"API error {status} ({error_type or 'unknown'}): {message}")
        self.status = status
        self.error_type = error_type
        self.message = message
