"""
Canned envelopes and HTTP fakes shared by the test modules.

All HTTP traffic goes through ``httpx.MockTransport``; nothing touches the
network.  Backoff sleeps are recorded instead of awaited so retry tests run
instantly and can assert on the wait schedule.
"""

from __future__ import annotations

import json

import httpx

SERVER_URL = "https://api.buzz.test"
USER_AGENT = "BuzzApiClient/1.0.0 (Python; tests; qa@example.com)"


# ---------------------------------------------------------------------------
# Canned envelopes
# ---------------------------------------------------------------------------

OK_ENVELOPE = {"response": {"code": "OK"}}
NO_AUTH_ENVELOPE = {"response": {"code": "NoAuthentication", "message": "Session expired"}}
ACCESS_DENIED_ENVELOPE = {"response": {"code": "AccessDenied", "message": "Bad password"}}

USER_ENVELOPE = {
    "response": {
        "code": "OK",
        "user": {"userid": "42", "username": "testuser", "domainid": "100"},
    }
}


def login_envelope(token: str | None) -> dict:
    user = {"userid": "1", "domainid": "100"}
    if token is not None:
        user["token"] = token
    return {"response": {"code": "OK", "user": user}}


def json_response(payload, status_code: int = 200, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(status_code, json=payload, headers=headers)


# ---------------------------------------------------------------------------
# Scripted transport for executor tests
# ---------------------------------------------------------------------------

class ScriptedTransport:
    """
    Answer requests from a fixed script of responses / exceptions.

    Each script item is an ``httpx.Response`` or an exception instance to
    raise.  Every received request is kept in ``requests``.
    """

    def __init__(self, script: list) -> None:
        self.script = list(script)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def mock(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ---------------------------------------------------------------------------
# Fake Buzz server for session tests
# ---------------------------------------------------------------------------

class FakeBuzzServer:
    """
    Minimal Buzz API double.

    - ``POST /cmd`` with ``login3`` answers with a fresh token each time
      (``tok-1``, ``tok-2``, ...) unless ``login_result`` overrides it.
    - ``POST /cmd`` with ``logout`` answers OK.
    - ``/cmd/<command>`` pops the next payload queued in ``replies[command]``,
      falling back to ``OK_ENVELOPE``.  A queued ``httpx.Response`` is
      returned as-is.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.logins: list[dict] = []
        self.logouts: list[httpx.Request] = []
        self.replies: dict[str, list] = {}
        self.login_result: dict | None = None
        self._issued = 0

    def queue(self, command: str, *payloads) -> None:
        self.replies.setdefault(command, []).extend(payloads)

    def command_requests(self, command: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == f"/cmd/{command}"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/cmd":
            body = json.loads(request.content)["request"]
            if body["cmd"] == "login3":
                self.logins.append(body)
                if self.login_result is not None:
                    return json_response(self.login_result)
                self._issued += 1
                return json_response(login_envelope(f"tok-{self._issued}"))
            if body["cmd"] == "logout":
                self.logouts.append(request)
                return json_response(OK_ENVELOPE)
            return json_response({"response": {"code": "BadRequest"}})

        command = request.url.path.rsplit("/", 1)[-1]
        queued = self.replies.get(command)
        payload = queued.pop(0) if queued else OK_ENVELOPE
        if isinstance(payload, httpx.Response):
            return payload
        return json_response(payload)

    def mock(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ---------------------------------------------------------------------------
# Sleep recorder
# ---------------------------------------------------------------------------

class SleepRecorder:
    """Async stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
