"""
Client constants and the session configuration surface.

All tunables used across the executor, retry and session modules are
centralized here so that config is separated from logic.  Durations follow
the wire conventions of the Buzz API: backoff values are integer
milliseconds, the per-call HTTP timeout is float seconds.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConfigurationError

CLIENT_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Retry / backoff
# ---------------------------------------------------------------------------

MAX_ATTEMPTS: int = 5          # total sends per request, first one included
INITIAL_WAIT_MS: int = 1000    # doubles after every failed attempt
MAX_WAIT_MS: int = 64000       # cap applied before jitter is added
JITTER_MS: tuple[int, int] = (1, 1000)  # uniform, upper bound exclusive

# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

DEFAULT_TIMEOUT_SECONDS: float = 600.0  # per HTTP call, fresh on every retry
ACCEPT_CONTENT_TYPE = "application/json"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"
TRACE_BODY_LIMIT: int = 1000   # request body characters shown in traces

# ---------------------------------------------------------------------------
# API envelope vocabulary
# ---------------------------------------------------------------------------

OK_CODE = "OK"
NO_AUTHENTICATION_CODE = "NoAuthentication"
LOGIN_COMMAND = "login3"
LOGOUT_COMMAND = "logout"
TOKEN_PARAM = "_token"

# ---------------------------------------------------------------------------
# Environment variables read by SessionConfig.from_env
# ---------------------------------------------------------------------------

ENV_SERVER_URL = "BUZZ_SERVER_URL"
ENV_USER_AGENT = "BUZZ_USER_AGENT"
ENV_USERSPACE = "BUZZ_USERSPACE"
ENV_USERNAME = "BUZZ_USERNAME"
ENV_PASSWORD = "BUZZ_PASSWORD"
ENV_VERBOSE = "BUZZ_VERBOSE"
ENV_TIMEOUT = "BUZZ_TIMEOUT"

_TRUTHY = frozenset({"1", "true", "yes", "on"})

DEFAULT_APPLICATION = "buzz-client"


def build_user_agent(
    application: str,
    contact: str,
    version: str = CLIENT_VERSION,
) -> str:
    """
    Build the User-Agent string the Buzz API asks integrators to send.

    Args:
        application: Name of the calling application.
        contact: Contact details (URL, e-mail, ...), ``;``-separated if several.
        version: Client version embedded in the product token.

    Returns:
        e.g. ``'BuzzApiClient/1.0.0 (Python; MyApp; ops@example.com)'``.

    Raises:
        ConfigurationError: If ``application`` or ``contact`` is empty.
    """
    if not application or not contact:
        raise ConfigurationError(
            "Both application and contact information are required "
            "to build the User-Agent."
        )
    return f"BuzzApiClient/{version} (Python; {application}; {contact})"


@dataclass(frozen=True)
class SessionConfig:
    """Everything a BuzzApiSession needs from its caller."""

    server_url: str
    user_agent: str
    userspace: str | None = None
    username: str | None = None
    password: str | None = None
    verbose: bool = False
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def auto_login(self) -> bool:
        return bool(self.userspace and self.username and self.password)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SessionConfig:
        """
        Load a config from ``BUZZ_*`` environment variables.

        ``BUZZ_SERVER_URL`` is required.  Without ``BUZZ_USER_AGENT`` a
        generic agent naming this package is used; set a real contact
        address before talking to a production server.

        Raises:
            ConfigurationError: Missing server URL or unparsable timeout.
        """
        env = os.environ if environ is None else environ

        server_url = env.get(ENV_SERVER_URL, "").strip()
        if not server_url:
            raise ConfigurationError(
                f"Server URL not found. Set the '{ENV_SERVER_URL}' "
                "environment variable."
            )

        user_agent = env.get(ENV_USER_AGENT) or build_user_agent(
            DEFAULT_APPLICATION, "unknown"
        )

        raw_timeout = env.get(ENV_TIMEOUT)
        timeout = DEFAULT_TIMEOUT_SECONDS
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError as exc:
                raise ConfigurationError(
                    f"'{ENV_TIMEOUT}' must be a number of seconds, "
                    f"got {raw_timeout!r}"
                ) from exc

        return cls(
            server_url=server_url.rstrip("/"),
            user_agent=user_agent,
            userspace=env.get(ENV_USERSPACE) or None,
            username=env.get(ENV_USERNAME) or None,
            password=env.get(ENV_PASSWORD) or None,
            verbose=env.get(ENV_VERBOSE, "").strip().lower() in _TRUTHY,
            timeout=timeout,
        )
