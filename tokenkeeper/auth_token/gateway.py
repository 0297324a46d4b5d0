"""Outbound request gateway.

Every authenticated API call goes through ``RequestGateway.send``: the current
access token is attached before the call and a 401 triggers exactly one
renewal-and-replay cycle through the coordinator.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from ..constants import API_BASE_URL, REQUEST_TIMEOUT_SECONDS
from ..errors.internal import NetworkError, RenewalError, UnauthorizedResponse
from ..logs import logger
from .coordinator import RefreshCoordinator
from .store import TokenStore
from .types import GatewayResponse, OutboundRequest, RefreshState, TokenKind


class RequestGateway:
    """Wraps outbound calls with credential attachment and one-shot renewal.

    The gateway only reads the token store; writes belong to the coordinator.
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        store: TokenStore,
        coordinator: RefreshCoordinator,
        *,
        base_url: str = API_BASE_URL,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        if http_session is None:
            raise TypeError("http_session cannot be None")
        self.session = http_session
        self.store = store
        self.coordinator = coordinator
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def send(self, request: OutboundRequest) -> GatewayResponse:
        """Execute ``request`` with the current credential.

        Returns:
            The response. Non-401 error statuses are returned untouched, and
            so are 401s of exempt requests (a failed login is the caller's
            business) and of absolute URLs outside ``base_url``, which never
            receive the credential.

        Raises:
            UnauthorizedResponse: The request was still unauthorized after
                one renewal, or the renewal failed (the session is already
                being terminated in that case).
            NetworkError: On transport failure.
        """
        exempt = self.coordinator.is_exempt(request) or not self.targets_api(request)
        sent_token = None
        if not exempt:
            sent_token = self.store.get(TokenKind.ACCESS)
            request.attach_token(sent_token)
        response = await self._execute(request)
        if not response.unauthorized or exempt:
            return response

        if request.retried:
            logger.log_event(
                "gateway", "rejected", level=logging.WARNING, path=request.endpoint_path
            )
            raise UnauthorizedResponse(
                f"Unauthorized after renewal: {request.method} {request.endpoint_path}",
                response=response,
            )

        request.retried = True
        try:
            new_token = await self._fresh_token(request, sent_token)
        except RenewalError as e:
            raise UnauthorizedResponse(
                f"Session could not be renewed: {request.method} {request.endpoint_path}",
                response=response,
            ) from e

        request.attach_token(new_token)
        logger.log_event(
            "gateway", "retry", level=logging.DEBUG, path=request.endpoint_path
        )
        response = await self._execute(request)
        if response.unauthorized:
            logger.log_event(
                "gateway", "rejected", level=logging.WARNING, path=request.endpoint_path
            )
            raise UnauthorizedResponse(
                f"Unauthorized after renewal: {request.method} {request.endpoint_path}",
                response=response,
            )
        return response

    async def _fresh_token(self, request: OutboundRequest, sent_token: str | None) -> str:
        """Token to replay with after a 401.

        A request that left with a token which has since been replaced by a
        completed renewal is replayed with the current one; anything else goes
        through the coordinator.
        """
        current = self.store.get(TokenKind.ACCESS)
        if (
            current
            and current != sent_token
            and self.coordinator.state is RefreshState.IDLE
        ):
            return current
        return await self.coordinator.ensure_fresh_token(request)

    async def request(self, method: str, path: str, **kwargs: Any) -> GatewayResponse:
        return await self.send(OutboundRequest(method=method.upper(), path=path, **kwargs))

    async def get(self, path: str, **kwargs: Any) -> GatewayResponse:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs: Any) -> GatewayResponse:
        return await self.request("POST", path, json=body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs: Any) -> GatewayResponse:
        return await self.request("PUT", path, json=body, **kwargs)

    async def patch(self, path: str, body: Any = None, **kwargs: Any) -> GatewayResponse:
        return await self.request("PATCH", path, json=body, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> GatewayResponse:
        return await self.request("DELETE", path, **kwargs)

    def targets_api(self, request: OutboundRequest) -> bool:
        """True when the request goes to the API behind ``base_url``."""
        url = self.url(request.path)
        return url == self.base_url or url.startswith(f"{self.base_url}/")

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _execute(self, request: OutboundRequest) -> GatewayResponse:
        timeout = aiohttp.ClientTimeout(total=request.timeout or self.timeout)
        headers = {"Content-Type": "application/json", **request.headers}
        try:
            async with self.session.request(
                request.method,
                self.url(request.path),
                headers=headers,
                json=request.json,
                params=request.params,
                timeout=timeout,
            ) as resp:
                body = await self._read_body(resp)
                return GatewayResponse(
                    status=resp.status, headers=dict(resp.headers), body=body
                )
        except TimeoutError as e:
            raise NetworkError(
                f"Timeout during {request.method} {request.endpoint_path}"
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during {request.method} {request.endpoint_path}: {e}"
            ) from e

    @staticmethod
    async def _read_body(resp: Any) -> Any:
        content_type = resp.headers.get("Content-Type", "") if resp.headers else ""
        if "json" in content_type:
            try:
                return await resp.json(content_type=None)
            except ValueError:
                logging.debug("Response declared JSON but did not parse, keeping text")
        return await resp.text()
