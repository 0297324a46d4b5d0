"""Single-flight token renewal.

The coordinator is a two-state machine (IDLE, RENEWING). The first caller to
find it IDLE flips it to RENEWING before its first await and performs the one
renewal call; every caller arriving while RENEWING parks a future in a FIFO
queue. When the call finishes the queue is drained, all waiters receiving the
same outcome, and only then does the state return to IDLE.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import TYPE_CHECKING

from ..constants import RENEWAL_TIMEOUT_SECONDS
from ..errors.internal import NoRefreshCredential, RenewalError
from ..logs import logger
from ..utils import mask_token
from .hook_manager import HookManager
from .store import TokenStore
from .terminator import REASON_NO_REFRESH_TOKEN, REASON_RENEWAL_FAILED, SessionTerminator
from .types import CredentialPair, OutboundRequest, RefreshState, TokenKind

if TYPE_CHECKING:
    from .client import RenewalClient


class RefreshCoordinator:
    """Serializes renewals so that at most one renewal call is ever in flight.

    Args:
        store: Credential store; the coordinator is its only writer after login.
        renewal_client: Client performing the remote renew call.
        terminator: Runs on terminal renewal failure.
        hooks: Receives the new access token after each renewal.
        timeout: Upper bound for one renewal attempt in seconds.
        exempt_paths: Endpoint paths for which renewal is never attempted
            (renew and issue endpoints).
    """

    def __init__(
        self,
        store: TokenStore,
        renewal_client: RenewalClient,
        terminator: SessionTerminator,
        hooks: HookManager,
        *,
        timeout: float = RENEWAL_TIMEOUT_SECONDS,
        exempt_paths: tuple[str, ...] = (),
    ) -> None:
        self.store = store
        self.renewal_client = renewal_client
        self.terminator = terminator
        self.hooks = hooks
        self.timeout = timeout
        self.exempt_paths = tuple(exempt_paths)
        self._state = RefreshState.IDLE
        self._waiters: deque[asyncio.Future[str]] = deque()
        self.renewal_count = 0

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._waiters)

    def is_exempt(self, request: OutboundRequest | None) -> bool:
        if request is None:
            return False
        return request.exempt or request.targets(self.exempt_paths)

    async def ensure_fresh_token(self, request: OutboundRequest | None = None) -> str:
        """Return a freshly renewed access token.

        Args:
            request: The request that triggered the renewal, if any. Requests
                aimed at the renew or issue endpoints never trigger renewal.

        Returns:
            The new access token.

        Raises:
            NoRefreshCredential: No refresh token is stored (session terminated).
            RenewalError: The renewal failed or timed out (session terminated),
                or ``request`` is exempt from renewal.
        """
        if self.is_exempt(request):
            raise RenewalError(
                "Renewal is not attempted for identity endpoints",
                data={"path": request.endpoint_path},
            )
        if self._state is RefreshState.RENEWING:
            return await self._wait_for_renewal()

        refresh_token = self.store.get(TokenKind.REFRESH)
        if not refresh_token:
            error = NoRefreshCredential()
            logging.warning("⚠️ No refresh token available, terminating session")
            await self.terminator.terminate(REASON_NO_REFRESH_TOKEN)
            raise error

        # Must happen before the first suspension point below.
        self._state = RefreshState.RENEWING
        self.renewal_count += 1
        logging.debug(
            f"🔄 Renewal started refresh={mask_token(refresh_token)} attempt={self.renewal_count}"
        )
        try:
            pair = await self._renew(refresh_token)
            self._store_pair(pair)
        except asyncio.CancelledError:
            self._drain(error=RenewalError("Token renewal was cancelled"))
            raise
        except RenewalError as e:
            self._drain(error=e)
            logger.log_event(
                "session", "renewal_failed", level=logging.ERROR, error=str(e)
            )
            await self.terminator.terminate(REASON_RENEWAL_FAILED)
            raise

        self._drain(token=pair.access_token)
        logger.log_event("session", "renewed", level=logging.DEBUG)
        self.hooks.fire_renewal_hooks(pair.access_token)
        return pair.access_token

    async def _renew(self, refresh_token: str) -> CredentialPair:
        """One renewal call bounded by ``timeout``; every failure is a RenewalError."""
        try:
            async with asyncio.timeout(self.timeout):
                return await self.renewal_client.renew(refresh_token)
        except TimeoutError as e:
            raise RenewalError(
                f"Token renewal timed out after {self.timeout}s"
            ) from e
        except RenewalError:
            raise
        except Exception as e:  # noqa: BLE001
            raise RenewalError(
                f"Unexpected renewal failure: {type(e).__name__}: {e}"
            ) from e

    def _store_pair(self, pair: CredentialPair) -> None:
        """Persist the renewed pair; a failed write fails the renewal."""
        try:
            self.store.set_pair(pair)
        except Exception as e:  # noqa: BLE001
            raise RenewalError(
                f"Renewed credentials could not be stored: {type(e).__name__}: {e}"
            ) from e

    async def _wait_for_renewal(self) -> str:
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        logging.debug(f"⏳ Waiting for in-flight renewal queued={len(self._waiters)}")
        return await future

    def _drain(self, *, token: str | None = None, error: Exception | None = None) -> None:
        """Resolve every queued waiter in FIFO order, then return to IDLE."""
        while self._waiters:
            future = self._waiters.popleft()
            if future.done():
                # Waiter was cancelled by its own caller.
                continue
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(token)
        self._state = RefreshState.IDLE
