"""
Session management and the JSON request façade.

A :class:`BuzzApiSession` owns the bearer token of one logical Buzz API
session.  Created with credentials it runs in *auto-login* mode: the first
authenticated request logs in lazily, and a request answered with
``NoAuthentication`` triggers exactly one re-login and one resend.

Typical use::

    async with BuzzApiSession(url, agent, "myspace", "admin", secret) as s:
        user = verify_response(await s.json_request("GET", "getuser2", "userid=42"))

Concurrency: logins started by the façade are serialized by an
``asyncio.Lock`` and double-checked, so concurrent requests that all find
the token missing or stale share one login.  Explicit ``login()`` calls by
the caller are not serialized.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from .config import (
    DEFAULT_TIMEOUT_SECONDS,
    LOGIN_COMMAND,
    LOGOUT_COMMAND,
    SessionConfig,
)
from .errors import ConfigurationError
from .executor import Params, TransportExecutor, build_command_url, encode_json_body
from .parser import extract_token, is_auth_expired, parse_json_response, verify_response

logger = logging.getLogger(__name__)


def build_login_payload(userspace: str, username: str, password: str) -> dict:
    """JSON body of the ``login3`` command."""
    return {
        "request": {
            "cmd": LOGIN_COMMAND,
            "username": f"{userspace}/{username}",
            "password": password,
        }
    }


def build_logout_payload() -> dict:
    """JSON body of the ``logout`` command."""
    return {"request": {"cmd": LOGOUT_COMMAND}}


class BuzzApiSession:
    """
    Makes requests to a Buzz API server.

    Args:
        server_url: Server URL including the scheme, without trailing ``/``.
        user_agent: User-Agent sent on every request
            (see :func:`buzz_client.config.build_user_agent`).
        userspace, username, password: Auto-login credentials.  Either all
            three or none.
        verbose: Log requests, retries and responses at INFO level.
        timeout: Seconds allowed for each individual HTTP call.
        transport: Optional ``httpx`` transport (tests use ``MockTransport``).
        sleep: Awaitable sleep used between retries.
        rng: Random source for backoff jitter.

    Raises:
        ConfigurationError: Credentials were given but are incomplete.
    """

    verify_response = staticmethod(verify_response)

    def __init__(
        self,
        server_url: str,
        user_agent: str,
        userspace: str | None = None,
        username: str | None = None,
        password: str | None = None,
        *,
        verbose: bool = False,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        credentials = (userspace, username, password)
        if any(value is not None for value in credentials) and not all(credentials):
            raise ConfigurationError(
                "userspace, username, and password are required for auto login"
            )

        self._server_url = server_url.rstrip("/")
        self._user_agent = user_agent
        self._timeout = timeout
        self._auto_login = all(credentials)
        self._credentials = credentials
        self._token: str | None = None
        self._login_lock = asyncio.Lock()

        self._client = httpx.AsyncClient(
            headers={"User-Agent": user_agent},
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            transport=transport,
        )
        self._executor = TransportExecutor(
            self._client, verbose=verbose, sleep=sleep, rng=rng
        )

    @classmethod
    def from_config(cls, config: SessionConfig, **kwargs: Any) -> BuzzApiSession:
        """Create a session from a :class:`SessionConfig`."""
        return cls(
            config.server_url,
            config.user_agent,
            config.userspace,
            config.username,
            config.password,
            verbose=config.verbose,
            timeout=config.timeout,
            **kwargs,
        )

    # -----------------------------------------------------------------------
    # Properties and lifecycle
    # -----------------------------------------------------------------------

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def user_agent(self) -> str:
        return self._user_agent

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def token(self) -> str | None:
        """The token returned by the last successful login."""
        return self._token

    @property
    def auto_login(self) -> bool:
        return self._auto_login

    @property
    def verbose(self) -> bool:
        return self._executor.verbose

    @verbose.setter
    def verbose(self, value: bool) -> None:
        self._executor.verbose = value

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> BuzzApiSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -----------------------------------------------------------------------
    # Authentication
    # -----------------------------------------------------------------------

    async def login(
        self,
        userspace: str | None = None,
        username: str | None = None,
        password: str | None = None,
    ) -> Any:
        """
        Call ``login3`` and store the returned token.

        Without arguments the auto-login credentials are used.

        Returns:
            The verified login envelope (``user.token``, ``user.domainid``, ...).

        Raises:
            ConfigurationError: No arguments on a session without auto login,
                or only some of the three arguments given.
            ApplicationError: The server rejected the login.
        """
        given = (userspace, username, password)
        if all(value is None for value in given):
            if not self._auto_login:
                raise ConfigurationError(
                    "login() without credentials can only be used if the "
                    "session was created with auto login"
                )
            userspace, username, password = self._credentials
        elif not all(given):
            raise ConfigurationError("userspace, username, and password are required to login")

        raw = await self.json_request(
            "POST",
            json=build_login_payload(userspace, username, password),
            include_token=False,
        )
        envelope = verify_response(raw)
        self._token = extract_token(raw)
        return envelope

    async def logout(self) -> Any:
        """
        Call ``logout`` with the current token.

        The stored token is kept; the next successful login replaces it.
        """
        return verify_response(await self.json_request("POST", json=build_logout_payload()))

    async def ensure_authenticated(self) -> None:
        """Log in if auto login is configured and no token is held yet."""
        if self._auto_login and self._token is None:
            await self._refresh_token(stale=None)

    async def _refresh_token(self, stale: str | None) -> None:
        # Single flight: whoever waited on the lock while another coroutine
        # replaced the stale token reuses that token instead of logging in.
        async with self._login_lock:
            if self._token != stale:
                return
            if stale is None:
                self._trace("Attempting to login")
            else:
                self._trace('Attempting to re-login because the request returned code "NoAuthentication"')
            await self.login()

    # -----------------------------------------------------------------------
    # Request façade
    # -----------------------------------------------------------------------

    async def json_request(
        self,
        method: str,
        command: str | None = None,
        params: Params = None,
        json: Any = None,
        include_token: bool = True,
    ) -> Any:
        """
        Make a request to an API that returns JSON.

        Args:
            method: HTTP method, e.g. ``'GET'`` or ``'POST'``.
            command: API command to call, e.g. ``'getuser2'``.
            params: Query string or mapping of query parameters.
            json: JSON-serializable body to POST.
            include_token: Send the session token as ``_token``.

        Returns:
            The decoded JSON.  Not verified: pass it to
            :func:`verify_response` to require ``code == "OK"``.

        Raises:
            TransportError: The HTTP call failed for good.
            ParseError: The response body is not JSON.
            ApplicationError: Only from a failed automatic (re-)login.
        """
        if include_token:
            await self.ensure_authenticated()

        content = encode_json_body(json)
        token = self._token if include_token else None
        result = await self._send(method, command, params, content, token)

        if self._auto_login and token is not None and is_auth_expired(result):
            await self._refresh_token(stale=token)
            result = await self._send(method, command, params, content, self._token)
        return result

    async def _send(
        self,
        method: str,
        command: str | None,
        params: Params,
        content: bytes | None,
        token: str | None,
    ) -> Any:
        url = build_command_url(self._server_url, command, params, token)
        response = await self._executor.execute(method, url, content=content)
        result = parse_json_response(response)
        self._trace_response(result)
        return result

    # -----------------------------------------------------------------------
    # Tracing
    # -----------------------------------------------------------------------

    def _trace(self, message: str) -> None:
        if self.verbose:
            logger.info(message)

    def _trace_response(self, result: Any) -> None:
        if not self.verbose:
            return
        if result is None:
            logger.info("Response was empty or not json")
        else:
            logger.info("Response with json content: %s", json.dumps(result))
