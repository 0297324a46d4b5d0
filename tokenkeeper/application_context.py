"""Central session context for shared async resources."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from .auth_token.client import IssueClient, RenewalClient
from .auth_token.coordinator import RefreshCoordinator
from .auth_token.gateway import RequestGateway
from .auth_token.hook_manager import HookManager
from .auth_token.store import TokenStore, create_token_store
from .auth_token.terminator import REASON_LOGOUT, Navigator, Notifier, SessionTerminator
from .auth_token.types import IssueResult
from .auth_token.watcher import ExpirationWatcher
from .constants import API_BASE_URL, TOKEN_STORE_PATH
from .logs import logger


class SessionContext:
    """Holds the session components and their shared HTTP session.

    Every component is constructed here and handed its collaborators, so
    tests can build the same graph around fakes.
    """

    session: aiohttp.ClientSession | None
    principal: dict[str, Any] | None

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        *,
        store: TokenStore | None = None,
        base_url: str = API_BASE_URL,
        notify: Notifier | None = None,
        navigate: Navigator | None = None,
        owns_session: bool = False,
    ) -> None:
        self.session = http_session
        self._owns_session = owns_session
        self.principal = None
        self.store = store if store is not None else create_token_store(TOKEN_STORE_PATH)
        self.hooks = HookManager()
        self.renewal_client = RenewalClient(http_session, base_url)
        self.issue_client = IssueClient(http_session, base_url)
        self.terminator = SessionTerminator(
            self.store,
            self.hooks,
            renewal_client=self.renewal_client,
            notify=notify,
            navigate=navigate,
        )
        self.coordinator = RefreshCoordinator(
            self.store,
            self.renewal_client,
            self.terminator,
            self.hooks,
            exempt_paths=self.renewal_client.exempt_paths + self.issue_client.exempt_paths,
        )
        self.gateway = RequestGateway(
            http_session, self.store, self.coordinator, base_url=base_url
        )
        self.watcher = ExpirationWatcher(self.store, self.coordinator)
        self.hooks.register_termination_hook(self._clear_principal)
        self._started = False
        self._lock = asyncio.Lock()

    # ------------------------- Construction ------------------------- #
    @classmethod
    async def create(cls, **kwargs: Any) -> SessionContext:
        """Create a context that owns a fresh ``aiohttp.ClientSession``."""
        logging.debug("🧪 Creating session context")
        http_session = aiohttp.ClientSession()
        return cls(http_session, owns_session=True, **kwargs)

    async def __aenter__(self) -> SessionContext:
        await self.start()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.shutdown()

    # --------------------------- Lifecycle -------------------------- #
    async def start(self) -> None:
        """Start the expiration watcher. Idempotent."""
        async with self._lock:
            if self._started:
                return
            await self.watcher.start()
            self._started = True
            logging.debug("🚀 Session context started")

    async def shutdown(self) -> None:
        """Stop the watcher, cancel hook tasks and close an owned HTTP session."""
        async with self._lock:
            await self.watcher.stop()
            await self.hooks.cancel_all()
            if self._owns_session and self.session is not None and not self.session.closed:
                await self.session.close()
            self._started = False
            logging.debug("🛑 Session context shut down")

    # ---------------------------- Session --------------------------- #
    @property
    def authenticated(self) -> bool:
        return self.store.has_session()

    def start_session(self, result: IssueResult) -> None:
        """Store an issued credential pair and consider the session started."""
        self.store.set_pair(result.pair)
        self.principal = dict(result.principal)
        self.terminator.rearm()
        logger.log_event("session", "started", user=self.principal.get("email"))

    async def login(self, email: str, password: str, **extra: Any) -> dict[str, Any]:
        result = await self.issue_client.login(email, password, **extra)
        self.start_session(result)
        return self.principal or {}

    async def register(self, payload: dict[str, Any]) -> dict[str, Any]:
        result = await self.issue_client.register(payload)
        self.start_session(result)
        return self.principal or {}

    async def logout(self) -> bool:
        return await self.terminator.terminate(REASON_LOGOUT)

    async def _clear_principal(self, _reason: str) -> None:
        self.principal = None
