"""
Response parsing and Buzz API envelope verification.

Every Buzz API call answers with an envelope carrying a ``code`` field,
either at the top level or nested one level under ``response``::

    {"response": {"code": "OK", "user": {"token": "..."}}}

Batch commands (``createusers``, ``updateusers``, ...) additionally return
one sub-envelope per item under ``responses.response``; each must be OK
on its own.  Apart from :func:`parse_json_response`, all functions are pure
transformations of decoded JSON.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from .config import NO_AUTHENTICATION_CODE, OK_CODE, TRACE_BODY_LIMIT
from .errors import ApplicationError, ParseError


def parse_json_response(response: httpx.Response) -> Any:
    """
    Decode a response body as JSON.

    Args:
        response: A successful response from the executor.

    Returns:
        The decoded JSON value.

    Raises:
        ParseError: The body is empty or not valid JSON.  Not retried.
    """
    text = response.text
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ParseError(
            f"Buzz API response is not valid JSON (HTTP {response.status_code}): "
            f"{text[:TRACE_BODY_LIMIT]!r}",
            body=text[:TRACE_BODY_LIMIT],
        ) from exc


def effective_envelope(envelope: Any) -> Any:
    """Return the nested ``response`` object if present, else ``envelope``."""
    if isinstance(envelope, dict):
        inner = envelope.get("response")
        if inner is not None:
            return inner
    return envelope


def _code_field(envelope: Any) -> str | None:
    if not isinstance(envelope, dict):
        return None
    code = envelope.get("code")
    return None if code is None else str(code)


def response_code(envelope: Any) -> str | None:
    """Return the effective envelope's ``code`` as a string, or ``None``."""
    return _code_field(effective_envelope(envelope))


def child_responses(envelope: Any) -> list:
    """Return the ``responses.response`` array of an envelope, or ``[]``."""
    if not isinstance(envelope, dict):
        return []
    responses = envelope.get("responses")
    if not isinstance(responses, dict):
        return []
    children = responses.get("response")
    return children if isinstance(children, list) else []


def verify_response(envelope: Any, check_children: bool = True) -> Any:
    """
    Verify that an envelope reports success.

    Args:
        envelope: Decoded JSON returned by ``json_request``.
        check_children: Also verify every ``responses.response`` element,
            recursively.  Batch APIs report per-item failures there while
            the outer code is still OK.

    Returns:
        The effective envelope (the nested ``response`` object when there
        is one, otherwise ``envelope`` itself).

    Raises:
        ApplicationError: ``envelope`` is ``None``, its code is not ``OK``,
            or any child response fails.  ``error.envelope`` holds the
            failing (sub-)envelope.
    """
    if envelope is None:
        raise ApplicationError(
            f"Buzz API call failed. Expected response.code to be {OK_CODE}, found: null",
            envelope=None,
        )

    target = effective_envelope(envelope)
    if _code_field(target) != OK_CODE:
        raise ApplicationError(
            f"Buzz API call failed. Expected response.code to be {OK_CODE}, "
            f"found: {json.dumps(envelope)}",
            envelope=envelope,
        )

    if check_children:
        for child in child_responses(target):
            verify_response(child, check_children=True)

    return target


def is_auth_expired(envelope: Any) -> bool:
    """True when the server reports that the session token is no longer valid."""
    if not isinstance(envelope, dict):
        return False
    inner = envelope.get("response")
    if not isinstance(inner, dict):
        return False
    return inner.get("code") == NO_AUTHENTICATION_CODE


def extract_token(envelope: Any) -> str | None:
    """
    Pull the session token out of a login envelope.

    Looks at ``user.token`` of the effective envelope.  Absence is not an
    error here; a failed login has already been rejected by
    :func:`verify_response`.
    """
    target = effective_envelope(envelope)
    if not isinstance(target, dict):
        return None
    user = target.get("user")
    if not isinstance(user, dict) or user.get("token") is None:
        return None
    return str(user["token"])
