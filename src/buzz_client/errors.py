"""
Exception taxonomy for the Buzz API client.

Transport failures are retried inside the executor and only surface as
TransportError once the attempt budget is spent or the status is
non-retryable.  Application failures (an envelope whose code is not OK)
are never retried, apart from the transparent re-login on
``NoAuthentication`` handled by the session.  Cancellation is not part of
this hierarchy: ``asyncio.CancelledError`` propagates unchanged.
"""

from __future__ import annotations

from typing import Any


class BuzzClientError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(BuzzClientError):
    """Credentials or settings are missing or inconsistent."""


class TransportError(BuzzClientError):
    """
    An HTTP call failed for good.

    Attributes:
        status_code: HTTP status of the last response, or ``None`` when the
            failure was a connectivity error / timeout.
        attempts: Number of sends made before giving up.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts


class ApplicationError(BuzzClientError):
    """
    The API answered, but its envelope does not report success.

    Attributes:
        envelope: The envelope that failed verification (for batch calls,
            the failing sub-response).
        code: Its ``code`` field, if any.
    """

    def __init__(self, message: str, envelope: Any = None) -> None:
        super().__init__(message)
        self.envelope = envelope
        self.code = _code_of(envelope)


class ParseError(BuzzClientError):
    """The response body was not valid JSON."""

    def __init__(self, message: str, body: str = "") -> None:
        super().__init__(message)
        self.body = body


def _code_of(envelope: Any) -> str | None:
    if not isinstance(envelope, dict):
        return None
    inner = envelope.get("response")
    target = inner if isinstance(inner, dict) else envelope
    code = target.get("code")
    return None if code is None else str(code)
