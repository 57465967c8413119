"""Exception hierarchy for chatlogger.

Formatting and decoding errors abort the current attempt.  Transport errors
are retried by the cloud dispatcher and surface as ``ExhaustedRetries`` once
the budget is spent.
"""

from __future__ import annotations


class ChatloggerError(Exception):
    """Base class for all chatlogger errors."""


class ConfigError(ChatloggerError):
    """Invalid provider configuration."""


class FormatError(ChatloggerError):
    """A message could not be converted to a backend payload."""


class DecodeError(ChatloggerError):
    """A response stream record could not be interpreted."""


class TransportError(ChatloggerError):
    """Non-success HTTP status, network failure or request timeout."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ExhaustedRetries(ChatloggerError):
    """The retry budget was spent; wraps the last underlying error."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"gave up after {attempts} attempt(s): {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error


class CompletionCancelled(ChatloggerError):
    """The in-flight completion was cancelled by the caller."""


class ResponseFormatError(ChatloggerError):
    """Model output did not have the shape a workflow expected."""
