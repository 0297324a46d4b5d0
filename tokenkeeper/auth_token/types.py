"""Shared types for the auth_token package."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlsplit


class TokenKind(str, Enum):
    """Kinds of credential held by the token store.

    The value is the fixed storage key used for persistence.

    Attributes:
        ACCESS: Short-lived bearer credential attached to requests.
        REFRESH: Long-lived credential exchanged for a new pair.
    """

    ACCESS = "accessToken"
    REFRESH = "refreshToken"


class RefreshState(Enum):
    """Renewal state machine states.

    Attributes:
        IDLE: No renewal in flight.
        RENEWING: Exactly one renewal call is in flight.
    """

    IDLE = "idle"
    RENEWING = "renewing"


@dataclass(frozen=True)
class CredentialPair:
    """An access/refresh credential pair that is always replaced together."""

    access_token: str
    refresh_token: str

    def __repr__(self) -> str:  # keep credentials out of logs and tracebacks
        return "CredentialPair(access_token=***, refresh_token=***)"


@dataclass
class IssueResult:
    """Outcome of a successful login or registration.

    Attributes:
        pair: The freshly issued credential pair.
        principal: User record returned by the identity provider.
        expires_in: Access token lifetime in seconds, when reported.
    """

    pair: CredentialPair
    principal: dict[str, Any] = field(default_factory=dict)
    expires_in: int | None = None


def _normalize_path(path: str) -> str:
    return "/" + path.strip("/")


@dataclass
class OutboundRequest:
    """Description of one outbound API call.

    Attributes:
        method: HTTP method.
        path: Path relative to the API base URL, or an absolute URL.
        headers: Request headers; the bearer credential is written here.
        json: JSON body, if any.
        params: Query parameters, if any.
        exempt: Never attach credentials nor trigger renewal (identity calls).
        retried: Set once the request has been replayed after a renewal.
        timeout: Total timeout override in seconds.
    """

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    json: Any = None
    params: dict[str, Any] | None = None
    exempt: bool = False
    retried: bool = False
    timeout: float | None = None

    @property
    def endpoint_path(self) -> str:
        """Path component of the target, normalized with one leading slash."""
        return _normalize_path(urlsplit(self.path).path)

    def targets(self, paths: tuple[str, ...] | list[str]) -> bool:
        """True when the endpoint path ends with one of ``paths``."""
        own = self.endpoint_path
        return any(own.endswith(_normalize_path(p)) for p in paths if p.strip("/"))

    def attach_token(self, access_token: str | None) -> None:
        if access_token:
            self.headers["Authorization"] = f"Bearer {access_token}"
        else:
            self.headers.pop("Authorization", None)


@dataclass
class GatewayResponse:
    """Buffered response of an outbound call.

    Attributes:
        status: HTTP status code.
        headers: Response headers.
        body: Parsed JSON when the server sent JSON, otherwise the text.
    """

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def unauthorized(self) -> bool:
        return self.status == 401
