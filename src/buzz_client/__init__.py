"""
buzz_client — resilient async client for the Buzz JSON-over-HTTP API.

Module layout
-------------
config.py    — retry/transport constants, SessionConfig, build_user_agent
errors.py    — ConfigurationError, TransportError, ApplicationError, ParseError
retry.py     — status classification, Retry-After parsing, backoff, RetryState
executor.py  — URL/body construction, HTTP execution with retry
parser.py    — JSON decoding, envelope verification, token extraction
session.py   — BuzzApiSession: token lifecycle and the json_request façade

Public interface
----------------
Open a session that logs in on demand:
    async with BuzzApiSession(url, user_agent, userspace, username, password) as s:
        ...

Call a command and require success:
    verify_response(await s.json_request("GET", "getuser2", {"userid": 42}))

Manual session management:
    await s.login(userspace, username, password)
    await s.logout()
"""

from .config import CLIENT_VERSION, SessionConfig, build_user_agent
from .errors import (
    ApplicationError,
    BuzzClientError,
    ConfigurationError,
    ParseError,
    TransportError,
)
from .parser import verify_response
from .retry import compute_wait, is_retryable
from .session import BuzzApiSession

__version__ = CLIENT_VERSION

__all__ = [
    "ApplicationError",
    "BuzzApiSession",
    "BuzzClientError",
    "ConfigurationError",
    "ParseError",
    "SessionConfig",
    "TransportError",
    "__version__",
    "build_user_agent",
    "compute_wait",
    "is_retryable",
    "verify_response",
]
