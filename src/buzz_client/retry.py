"""
HTTP status classification, Retry-After parsing, and exponential backoff.

The schedule: the base wait starts at 1 s and doubles after every failed
attempt (1 s, 2 s, 4 s, 8 s), a server ``Retry-After`` hint wins when it is
larger, the result is capped at 64 s, and 1–999 ms of jitter is added so
that clients failing together do not retry together.

No I/O occurs here; randomness and the clock are injectable so the
policy can be unit tested exactly.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from .config import INITIAL_WAIT_MS, JITTER_MS, MAX_ATTEMPTS, MAX_WAIT_MS


# ---------------------------------------------------------------------------
# Status classification
# ---------------------------------------------------------------------------

# Requests that will never succeed unchanged: fail fast instead of retrying.
NON_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({
    # Client errors
    400,  # Bad Request
    401,  # Unauthorized
    402,  # Payment Required
    403,  # Forbidden
    405,  # Method Not Allowed
    406,  # Not Acceptable
    407,  # Proxy Authentication Required
    410,  # Gone
    411,  # Length Required
    412,  # Precondition Failed
    413,  # Content Too Large
    414,  # URI Too Long
    415,  # Unsupported Media Type
    416,  # Range Not Satisfiable
    417,  # Expectation Failed
    421,  # Misdirected Request
    422,  # Unprocessable Content
    424,  # Failed Dependency
    426,  # Upgrade Required
    428,  # Precondition Required
    429,  # Too Many Requests
    431,  # Request Header Fields Too Large
    451,  # Unavailable For Legal Reasons
    # Server errors
    501,  # Not Implemented
    505,  # HTTP Version Not Supported
    506,  # Variant Also Negotiates
    508,  # Loop Detected
    510,  # Not Extended
    511,  # Network Authentication Required
})


def is_retryable(status_code: int | None) -> bool:
    """
    Decide whether a failure with this status may be retried.

    Args:
        status_code: HTTP status of the failed response, or ``None`` for
            connectivity errors and timeouts (always retryable).

    Returns:
        ``False`` only for codes in :data:`NON_RETRYABLE_STATUS_CODES`.
    """
    return status_code not in NON_RETRYABLE_STATUS_CODES


# ---------------------------------------------------------------------------
# Backoff helpers
# ---------------------------------------------------------------------------

def parse_retry_after(
    value: str | None,
    now: datetime | None = None,
) -> float | None:
    """
    Convert a ``Retry-After`` header into a wait hint in milliseconds.

    Both RFC 9110 forms are accepted:
      - delta-seconds (``"120"``) → ``120000.0``
      - HTTP-date (``"Wed, 21 Oct 2026 07:28:00 GMT"``) → milliseconds until
        that instant; negative when the date is already in the past.

    Args:
        value: Raw header value, or ``None`` when the header is absent.
        now: Reference time for the HTTP-date form (defaults to UTC now).

    Returns:
        Hint in milliseconds, or ``None`` if absent or unparsable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    try:
        return float(value) * 1000
    except ValueError:
        pass

    try:
        resume_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if resume_at.tzinfo is None:
        resume_at = resume_at.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    return (resume_at - now).total_seconds() * 1000


def compute_wait(
    base_wait_ms: int,
    hint_ms: float | None = None,
    rng: random.Random | None = None,
) -> int:
    """
    Return the wait in milliseconds before the next attempt.

    ``max(base, hint)`` capped at :data:`MAX_WAIT_MS`, plus uniform jitter
    drawn from :data:`JITTER_MS`.  A past or non-positive hint never lowers
    the wait below the base.

    Args:
        base_wait_ms: Current exponential base (1000, 2000, 4000, ...).
        hint_ms: Server hint from :func:`parse_retry_after`, if any.
        rng: Random source (defaults to the module-level generator).

    Returns:
        Milliseconds to sleep.
    """
    wait = float(base_wait_ms)
    if hint_ms is not None:
        wait = max(wait, hint_ms)
    wait = min(float(MAX_WAIT_MS), wait)

    low, high = JITTER_MS
    jitter = (rng or random).randrange(low, high)
    return int(wait) + jitter


# ---------------------------------------------------------------------------
# Per-request attempt state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryState:
    """
    Immutable snapshot of one request's retry progress.

    ``attempt`` is the 1-based number of the send currently being made;
    ``base_wait_ms`` is the backoff base to use if that send fails.
    """

    attempt: int = 1
    base_wait_ms: int = INITIAL_WAIT_MS
    max_attempts: int = MAX_ATTEMPTS

    @classmethod
    def initial(cls, max_attempts: int = MAX_ATTEMPTS) -> RetryState:
        return cls(max_attempts=max_attempts)

    @property
    def exhausted(self) -> bool:
        """True when the current attempt was the last one allowed."""
        return self.attempt >= self.max_attempts

    def advance(self) -> RetryState:
        return replace(self, attempt=self.attempt + 1, base_wait_ms=self.base_wait_ms * 2)
