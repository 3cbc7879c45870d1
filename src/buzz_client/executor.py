"""
Request construction and HTTP execution with retry.

Design notes:
- A ``Retry-After`` header is treated as a failure even on a 2xx status:
  the server is explicitly asking the client to come back later.
- Only transport-level failures (any ``httpx.RequestError``, failing
  statuses) consume the attempt budget.  Envelope-level failures are the
  session's business and never reach this module.
- Every send gets a fresh timeout window from the ``httpx.AsyncClient``;
  the timeout is not a budget across retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import re
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from .config import (
    ACCEPT_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    MAX_ATTEMPTS,
    TOKEN_PARAM,
    TRACE_BODY_LIMIT,
)
from .errors import TransportError
from .retry import RetryState, compute_wait, is_retryable, parse_retry_after

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(rf"({TOKEN_PARAM}=)[^&]*")
_PASSWORD_RE = re.compile(r'("password"\s*:\s*)"(?:[^"\\]|\\.)*"')

Params = str | Mapping[str, Any] | None


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------

def build_command_url(
    server_url: str,
    command: str | None = None,
    params: Params = None,
    token: str | None = None,
) -> str:
    """
    Build ``<server>/cmd[/<command>][?<params>]``.

    Args:
        server_url: Base URL including scheme, without trailing ``/``.
        command: API command, e.g. ``'getuser2'``.  ``None`` for calls that
            carry the command in the JSON body (login3, logout).
        params: Raw query string (``'userid=42'``) or a mapping to encode.
        token: Session token appended as ``_token=<token>``.

    Returns:
        Absolute request URL.
    """
    if isinstance(params, Mapping):
        query = urlencode(params, doseq=True)
    else:
        query = params or ""

    if token is not None:
        token_part = f"{TOKEN_PARAM}={quote(token, safe='')}"
        query = f"{query}&{token_part}" if query else token_part

    url = f"{server_url.rstrip('/')}/cmd"
    if command:
        url += f"/{command}"
    if query:
        url += f"?{query}"
    return url


def build_request_headers(has_body: bool) -> dict[str, str]:
    """Per-request headers; the User-Agent lives on the client itself."""
    headers = {"Accept": ACCEPT_CONTENT_TYPE}
    if has_body:
        headers["Content-Type"] = JSON_CONTENT_TYPE
    return headers


def encode_json_body(payload: Any) -> bytes | None:
    """Serialize a JSON body as UTF-8, or ``None`` when there is no body."""
    if payload is None:
        return None
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def mask_token(url: str) -> str:
    """Hide the ``_token`` value so traces can be shared safely."""
    return _TOKEN_RE.sub(r"\1***", url)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class TransportExecutor:
    """
    Send one logical request, retrying transient failures.

    Args:
        client: Shared ``httpx.AsyncClient`` (headers, timeout, transport).
        verbose: Emit request and retry traces at INFO level.
        max_attempts: Total sends allowed, first one included.
        sleep: Awaitable sleep taking seconds; injected by tests.
        rng: Random source for jitter.
        now: Clock for HTTP-date ``Retry-After`` values.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        verbose: bool = False,
        max_attempts: int = MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.verbose = verbose
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._now = now

    async def execute(
        self,
        method: str,
        url: str,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """
        Send ``method url`` until it succeeds or fails for good.

        Returns:
            The first clean response: 2xx and no ``Retry-After`` header.

        Raises:
            TransportError: Non-retryable status, or the attempt budget was
                spent.  Chained to the last ``httpx`` exception, if any.
            asyncio.CancelledError: Propagated unchanged from any send or
                backoff sleep.
        """
        request_headers = build_request_headers(content is not None)
        if headers:
            request_headers.update(headers)

        state = RetryState.initial(self.max_attempts)
        while True:
            self._trace_request(url, content)

            status_code: int | None = None
            retry_after: str | None = None
            cause: Exception | None = None
            try:
                response = await self.client.request(
                    method, url, content=content, headers=request_headers
                )
            except httpx.RequestError as exc:
                cause = exc
                reason = f"{type(exc).__name__}: {exc}"
            else:
                status_code = response.status_code
                retry_after = response.headers.get("Retry-After")
                if response.is_success and retry_after is None:
                    return response
                await response.aclose()
                if response.is_success:
                    reason = f"HTTP {status_code} with Retry-After: {retry_after}"
                else:
                    reason = f"HTTP {status_code} {response.reason_phrase}".rstrip()

            if state.exhausted or not is_retryable(status_code):
                raise TransportError(
                    f"{method} {mask_token(url)} failed after "
                    f"{state.attempt} attempt(s): {reason}",
                    status_code=status_code,
                    attempts=state.attempt,
                ) from cause

            now = self._now() if self._now else None
            wait_ms = compute_wait(
                state.base_wait_ms, parse_retry_after(retry_after, now), self._rng
            )
            self._trace_retry(reason, state.attempt, wait_ms)
            await self._sleep(wait_ms / 1000)
            state = state.advance()

    # -----------------------------------------------------------------------
    # Tracing
    # -----------------------------------------------------------------------

    def _trace_request(self, url: str, content: bytes | None) -> None:
        if not self.verbose:
            return
        logger.info("Request: %s", mask_token(url))
        if content is not None:
            text = _PASSWORD_RE.sub(r'\1"***"', content.decode("utf-8", errors="replace"))
            logger.info("Request content: %s", text[:TRACE_BODY_LIMIT])

    def _trace_retry(self, reason: str, attempt: int, wait_ms: int) -> None:
        if self.verbose:
            logger.info(
                "Will make request retry #%d after %dms because of error: %s",
                attempt, wait_ms, reason,
            )
