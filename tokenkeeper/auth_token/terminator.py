"""Session termination."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..constants import REDIRECT_DELAY_SECONDS, UNAUTHENTICATED_ENTRY_POINT
from ..logs import logger
from .hook_manager import HookManager
from .store import TokenStore
from .types import TokenKind

if TYPE_CHECKING:
    from .client import RenewalClient

REASON_RENEWAL_FAILED = "renewal_failed"
REASON_NO_REFRESH_TOKEN = "no_refresh_token"
REASON_LOGOUT = "logout"

_MESSAGES = {
    REASON_LOGOUT: "You have been logged out.",
}
_DEFAULT_MESSAGE = "Session expired. Please log in again."

Notifier = Callable[[str, str], Any]
Navigator = Callable[[str], Any]


class SessionTerminator:
    """Tears the session down exactly once.

    ``terminate`` is idempotent: the first call clears the store, fires the
    termination hooks, shows one notification and schedules the redirect and
    the revoke. Later calls return False without side effects until a new
    session exists, either because credentials were stored again or because
    ``rearm`` was called. The terminator never makes an authenticated call.
    """

    def __init__(
        self,
        store: TokenStore,
        hooks: HookManager,
        *,
        renewal_client: RenewalClient | None = None,
        notify: Notifier | None = None,
        navigate: Navigator | None = None,
        entry_point: str = UNAUTHENTICATED_ENTRY_POINT,
        redirect_delay: float = REDIRECT_DELAY_SECONDS,
    ) -> None:
        self.store = store
        self.hooks = hooks
        self.renewal_client = renewal_client
        self.notify = notify
        self.navigate = navigate
        self.entry_point = entry_point
        self.redirect_delay = redirect_delay
        self._terminated = False
        self.last_reason: str | None = None
        self.termination_count = 0

    @property
    def terminated(self) -> bool:
        return self._terminated

    def rearm(self) -> None:
        """Allow the next ``terminate`` to run again (a new session started)."""
        self._terminated = False

    async def terminate(self, reason: str) -> bool:
        """Terminate the session.

        Args:
            reason: Short machine-readable reason (see ``REASON_*``).

        Returns:
            True if this call performed the teardown, False if it had already run.
        """
        if self._terminated and self._has_credentials():
            # Credentials were stored again since the last teardown: new session.
            self._terminated = False
        # Flag flips before any await so concurrent callers see it.
        if self._terminated:
            logging.debug(f"Session already terminated, ignoring reason={reason}")
            return False
        self._terminated = True
        self.last_reason = reason
        self.termination_count += 1

        refresh_token = self.store.get(TokenKind.REFRESH)
        self.store.clear()
        logger.log_event("session", "terminated", level=logging.WARNING, reason=reason)

        self.hooks.fire_termination_hooks(reason)
        self._notify(reason)
        if self.navigate is not None:
            self.hooks.create_retained_task(self._redirect(), category="redirect")
        if refresh_token and self.renewal_client is not None:
            self.hooks.create_retained_task(
                self._revoke(refresh_token), category="revoke"
            )
        await asyncio.sleep(0)
        return True

    def _has_credentials(self) -> bool:
        return bool(
            self.store.get(TokenKind.ACCESS) or self.store.get(TokenKind.REFRESH)
        )

    def _notify(self, reason: str) -> None:
        if self.notify is None:
            return
        level = "info" if reason == REASON_LOGOUT else "error"
        try:
            result = self.notify(level, _MESSAGES.get(reason, _DEFAULT_MESSAGE))
            if inspect.iscoroutine(result):
                self.hooks.create_retained_task(result, category="notify")
        except Exception as e:  # noqa: BLE001
            logging.warning(f"⚠️ Termination notification failed: {type(e).__name__} {e}")

    async def _redirect(self) -> None:
        await asyncio.sleep(self.redirect_delay)
        result = self.navigate(self.entry_point)
        if inspect.isawaitable(result):
            await result
        logging.debug(f"↩️ Redirected to {self.entry_point}")

    async def _revoke(self, refresh_token: str) -> None:
        if not await self.renewal_client.revoke(refresh_token):
            logger.log_event("session", "revoke_failed", level=logging.DEBUG)
