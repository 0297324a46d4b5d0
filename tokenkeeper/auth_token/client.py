"""Identity provider HTTP clients.

``RenewalClient`` performs the renew and revoke calls, ``IssueClient`` the
login and register calls. None of them attach the stored access token or go
through the request gateway, so a renewal can never recurse into another
renewal.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from ..constants import (
    API_BASE_URL,
    AUTH_LOGIN_PATH,
    AUTH_REGISTER_PATH,
    RENEWAL_TIMEOUT_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
    REVOKE_MAX_ATTEMPTS,
    TOKEN_REFRESH_PATH,
    TOKEN_REVOKE_PATH,
)
from ..errors.internal import (
    IssueError,
    NetworkError,
    ParsingError,
    RenewalError,
)
from ..utils import RetryExhaustedError, mask_token, retry_async
from .types import CredentialPair, IssueResult


def _parse_pair(body: Any) -> CredentialPair:
    """Extract a credential pair from a JSON body.

    Raises:
        ParsingError: If either token is missing or not a string.
    """
    if not isinstance(body, dict):
        raise ParsingError("Response body is not a JSON object")
    access = body.get("accessToken") or body.get("access_token")
    refresh = body.get("refreshToken") or body.get("refresh_token")
    if not isinstance(access, str) or not access:
        raise ParsingError("Missing accessToken in response")
    if not isinstance(refresh, str) or not refresh:
        raise ParsingError("Missing refreshToken in response")
    return CredentialPair(access, refresh)


def _parse_expires_in(body: dict[str, Any]) -> int | None:
    # The backend may report a duration string such as "15m"; only ints are kept.
    value = body.get("expiresIn", body.get("expires_in"))
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class _IdentityClient:
    """Shared plumbing for calls to the identity provider."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        base_url: str = API_BASE_URL,
    ) -> None:
        if http_session is None:
            raise TypeError("http_session cannot be None")
        self.session = http_session
        self.base_url = base_url.rstrip("/")

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _post_json(
        self, path: str, payload: dict[str, Any], timeout: float
    ) -> tuple[int, Any]:
        """POST ``payload`` and return (status, parsed body).

        Raises:
            NetworkError: On timeout or transport failure.
        """
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        try:
            async with self.session.post(
                self.url(path),
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=client_timeout,
            ) as resp:
                try:
                    body = await resp.json(content_type=None)
                except (ValueError, aiohttp.ContentTypeError):
                    body = None
                return resp.status, body
        except TimeoutError as e:
            raise NetworkError(f"Timeout calling {path}") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Network error calling {path}: {e}") from e


class RenewalClient(_IdentityClient):
    """Exchanges a refresh token for a new credential pair.

    Exactly one network call per ``renew``; retry policy belongs to callers.
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        base_url: str = API_BASE_URL,
        *,
        refresh_path: str = TOKEN_REFRESH_PATH,
        revoke_path: str = TOKEN_REVOKE_PATH,
        timeout: float = RENEWAL_TIMEOUT_SECONDS,
        revoke_attempts: int = REVOKE_MAX_ATTEMPTS,
        revoke_backoff: float = 0.5,
    ) -> None:
        super().__init__(http_session, base_url)
        self.refresh_path = refresh_path
        self.revoke_path = revoke_path
        self.timeout = timeout
        self.revoke_attempts = revoke_attempts
        self.revoke_backoff = revoke_backoff

    @property
    def exempt_paths(self) -> tuple[str, ...]:
        return (self.refresh_path, self.revoke_path)

    async def renew(self, refresh_token: str) -> CredentialPair:
        """Return a fresh credential pair for ``refresh_token``.

        Raises:
            RenewalError: On any failure: rejection, timeout, transport error
                or a response missing either token.
        """
        try:
            status, body = await self._post_json(
                self.refresh_path, {"refreshToken": refresh_token}, self.timeout
            )
            if status != 200:
                code = body.get("code") if isinstance(body, dict) else None
                raise RenewalError(
                    f"HTTP {status} during token renewal",
                    data={"status": status, "code": code},
                )
            pair = _parse_pair(body)
        except (NetworkError, ParsingError) as e:
            logging.warning(
                f"💥 Token renewal failed: {type(e).__name__} refresh={mask_token(refresh_token)} error={str(e)}"
            )
            raise RenewalError(str(e)) from e
        logging.debug(f"🔑 Token renewal response ok access={mask_token(pair.access_token)}")
        return pair

    async def revoke(self, refresh_token: str) -> bool:
        """Best-effort revoke of ``refresh_token``; never raises.

        Returns:
            True when the identity provider acknowledged the revoke.
        """

        async def _attempt(attempt: int) -> tuple[bool, bool]:
            status, _ = await self._post_json(
                self.revoke_path, {"refreshToken": refresh_token}, self.timeout
            )
            if 200 <= status < 300:
                return True, False
            # 5xx may be transient; any other status will not change on retry.
            logging.debug(f"Revoke attempt={attempt} status={status}")
            return False, status >= 500

        try:
            acknowledged = await retry_async(
                _attempt,
                max_attempts=self.revoke_attempts,
                multiplier=self.revoke_backoff,
            )
            return bool(acknowledged)
        except RetryExhaustedError as e:
            logging.info(
                f"⚠️ Refresh token revoke gave up after {e.attempts} attempts error={e.final_exception}"
            )
            return False


class IssueClient(_IdentityClient):
    """Login and registration against the identity provider."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        base_url: str = API_BASE_URL,
        *,
        login_path: str = AUTH_LOGIN_PATH,
        register_path: str = AUTH_REGISTER_PATH,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(http_session, base_url)
        self.login_path = login_path
        self.register_path = register_path
        self.timeout = timeout

    @property
    def exempt_paths(self) -> tuple[str, ...]:
        return (self.login_path, self.register_path)

    async def login(self, email: str, password: str, **extra: Any) -> IssueResult:
        return await self.issue(self.login_path, {"email": email, "password": password, **extra})

    async def register(self, payload: dict[str, Any]) -> IssueResult:
        return await self.issue(self.register_path, payload)

    async def issue(self, path: str, payload: dict[str, Any]) -> IssueResult:
        """Call an issue endpoint and return the credential pair and principal.

        Raises:
            IssueError: If the identity provider refuses or the response is malformed.
        """
        try:
            status, body = await self._post_json(path, payload, self.timeout)
        except NetworkError as e:
            raise IssueError(str(e)) from e
        if status not in (200, 201):
            message = body.get("error") if isinstance(body, dict) else None
            raise IssueError(message or f"HTTP {status} from {path}", status=status)
        try:
            pair = _parse_pair(body)
        except ParsingError as e:
            raise IssueError(str(e), status=status) from e
        principal = body.get("user")
        if not isinstance(principal, dict):
            principal = {
                k: v
                for k, v in body.items()
                if k not in ("accessToken", "refreshToken", "access_token", "refresh_token")
            }
        return IssueResult(pair=pair, principal=principal, expires_in=_parse_expires_in(body))
