"""
Fakes for the identity provider and the aiohttp session.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import jwt

from tokenkeeper.auth_token.types import CredentialPair
from tokenkeeper.errors.internal import RenewalError

TEST_SECRET = "tokenkeeper-test-secret-0123456789abcdef"
BASE_URL = "https://api.test"


def make_jwt(expires_in: float = 900, **claims: Any) -> str:
    """Mint an HS256 access token expiring ``expires_in`` seconds from now."""
    payload = {
        "userId": "user-1",
        "type": "access",
        "jti": uuid.uuid4().hex,
        "exp": int(time.time() + expires_in),
        **claims,
    }
    return jwt.encode(payload, TEST_SECRET, algorithm="HS256")


class FakeResp:
    def __init__(
        self,
        status: int,
        payload: Any = None,
        *,
        text: str | None = None,
        delay: float = 0.0,
        raise_exception: Exception | None = None,
    ):
        self.status = status
        self._payload = payload
        self._text = text
        self.delay = delay
        self.raise_exception = raise_exception
        content_type = "application/json" if payload is not None else "text/plain"
        self.headers = {"Content-Type": content_type}

    async def __aenter__(self):
        await asyncio.sleep(self.delay)
        if self.raise_exception:
            raise self.raise_exception
        return self

    async def __aexit__(self, _exc_type, _exc, _tb):
        return False

    async def json(self, content_type: str | None = "application/json"):
        # Simulate asynchronous boundary
        await asyncio.sleep(0)
        if self._payload is None:
            raise ValueError("No JSON payload")
        return self._payload

    async def text(self):
        await asyncio.sleep(0)
        if self._text is not None:
            return self._text
        return json.dumps(self._payload) if self._payload is not None else ""


@dataclass
class RecordedCall:
    method: str
    url: str
    headers: dict[str, str]
    json: Any

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @property
    def authorization(self) -> str | None:
        return self.headers.get("Authorization")


class FakeSession:
    """Stands in for ``aiohttp.ClientSession``; routes every call to ``handler``."""

    def __init__(self, handler):
        self.handler = handler
        self.calls: list[RecordedCall] = []
        self.closed = False

    def request(self, method, url, *, headers=None, json=None, params=None, timeout=None):
        call = RecordedCall(method, url, dict(headers or {}), json)
        self.calls.append(call)
        return self.handler(call)

    def post(self, url, *, json=None, headers=None, timeout=None):
        return self.request("POST", url, headers=headers, json=json, timeout=timeout)

    async def close(self):
        self.closed = True

    def calls_to(self, path: str) -> list[RecordedCall]:
        return [c for c in self.calls if c.path == path]


@dataclass
class FakeIdentityApi:
    """In-memory identity provider plus one protected API.

    Renewal rotates both tokens. Protected paths accept only the current
    access token.
    """

    renew_delay: float = 0.02
    renew_status: int = 200
    renew_exception: Exception | None = None
    revoke_status: int = 200
    access_token: str = field(default_factory=lambda: make_jwt(-10))
    refresh_token: str = "refresh-1"
    generation: int = 1
    always_unauthorized: bool = False
    principal: dict[str, Any] = field(
        default_factory=lambda: {"id": "user-1", "email": "ana@example.com", "role": "student"}
    )

    def __post_init__(self) -> None:
        self.valid_access = {self.access_token}
        self.issued: list[CredentialPair] = []

    def pair(self) -> CredentialPair:
        return CredentialPair(self.access_token, self.refresh_token)

    def rotate(self) -> CredentialPair:
        self.generation += 1
        self.access_token = make_jwt(900)
        self.refresh_token = f"refresh-{self.generation}"
        self.valid_access = {self.access_token}
        pair = self.pair()
        self.issued.append(pair)
        return pair

    def __call__(self, call: RecordedCall) -> FakeResp:
        path = call.path
        if path == "/token/refresh":
            if self.renew_exception is not None:
                return FakeResp(0, raise_exception=self.renew_exception)
            if self.renew_status != 200 or call.json.get("refreshToken") != self.refresh_token:
                status = self.renew_status if self.renew_status != 200 else 401
                return FakeResp(status, {"error": "invalid", "code": "TOKEN_NOT_FOUND"}, delay=self.renew_delay)
            pair = self.rotate()
            return FakeResp(
                200,
                {"accessToken": pair.access_token, "refreshToken": pair.refresh_token, "expiresIn": 900},
                delay=self.renew_delay,
            )
        if path == "/token/logout":
            return FakeResp(self.revoke_status, {"message": "ok"})
        if path in ("/auth/login", "/auth/register"):
            if call.json.get("password") == "wrong":
                return FakeResp(401, {"error": "Invalid credentials"})
            pair = self.rotate()
            status = 201 if path == "/auth/register" else 200
            return FakeResp(
                status,
                {
                    "message": "ok",
                    "accessToken": pair.access_token,
                    "refreshToken": pair.refresh_token,
                    "expiresIn": "15m",
                    "user": self.principal,
                },
            )
        token = (call.authorization or "").removeprefix("Bearer ")
        if not self.always_unauthorized and self.accepts(token):
            return FakeResp(200, {"ok": True, "path": path})
        return FakeResp(401, {"error": "Token expired"})

    def accepts(self, token: str) -> bool:
        if token not in self.valid_access:
            return False
        try:
            jwt.decode(token, TEST_SECRET, algorithms=["HS256"])
        except jwt.PyJWTError:
            return False
        return True

    def count(self, session: FakeSession, path: str) -> int:
        return len(session.calls_to(path))


class GatedRenewalClient:
    """Renewal client whose calls block until the test releases them."""

    def __init__(self, *, fail: Exception | None = None, hang: bool = False):
        self.calls: list[str] = []
        self.release = asyncio.Event()
        self.fail = fail
        self.hang = hang
        self.generation = 1
        self.revoked: list[str] = []

    async def renew(self, refresh_token: str) -> CredentialPair:
        self.calls.append(refresh_token)
        if self.hang:
            await asyncio.Event().wait()
        await self.release.wait()
        if self.fail is not None:
            raise self.fail
        self.generation += 1
        return CredentialPair(make_jwt(900, gen=self.generation), f"refresh-{self.generation}")

    async def revoke(self, refresh_token: str) -> bool:
        self.revoked.append(refresh_token)
        return True


def renewal_failure() -> RenewalError:
    return RenewalError("HTTP 401 during token renewal", data={"status": 401})
