"""Preemptive renewal loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..constants import PREEMPTIVE_THRESHOLD_SECONDS, WATCHER_INTERVAL_SECONDS
from ..errors.internal import DecodeError, RenewalError
from ..logs import logger
from ..utils import format_duration
from . import expiration
from .coordinator import RefreshCoordinator
from .store import TokenStore
from .types import TokenKind


class ExpirationWatcher:
    """Renews the access token shortly before it expires.

    Every ``interval`` seconds the stored access token is inspected; when less
    than ``threshold`` seconds (but more than zero) remain, the watcher starts
    ``ensure_fresh_token`` in the background like any other caller, so it
    shares the coordinator's single-flight path and a slow renewal never
    delays the next tick. Renewal failures are handled (and the session
    terminated) by the coordinator; the watcher only logs them.
    """

    def __init__(
        self,
        store: TokenStore,
        coordinator: RefreshCoordinator,
        *,
        interval: float = WATCHER_INTERVAL_SECONDS,
        threshold: float = PREEMPTIVE_THRESHOLD_SECONDS,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.store = store
        self.coordinator = coordinator
        self.interval = interval
        self.threshold = threshold
        self.task: asyncio.Task[Any] | None = None
        self.running = False
        self.preemptive_renewals = 0
        self.pending_renewal: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Start the background loop (no-op when already running)."""
        if self.running:
            return
        if self.task and not self.task.done():
            logging.debug("Cancelling stale watcher task before restart")
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            finally:
                self.task = None
        self.running = True
        self.task = asyncio.create_task(self._loop())
        logger.log_event(
            "watcher", "started", level=logging.DEBUG, interval=self.interval
        )

    async def stop(self) -> None:
        """Stop the background loop and wait for it to exit."""
        if not self.running:
            return
        self.running = False
        task, self.task = self.task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.log_event("watcher", "stopped", level=logging.DEBUG)

    async def _loop(self) -> None:
        while self.running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                logging.debug("Expiration watcher loop cancelled")
                raise
            except (RuntimeError, OSError, ValueError) as e:
                logging.error(f"💥 Expiration watcher tick error: {type(e).__name__} {str(e)}")
            await asyncio.sleep(self.interval)

    async def tick(self) -> bool:
        """Inspect the stored access token once.

        Returns:
            True when a preemptive renewal was started by this tick.
        """
        access_token = self.store.get(TokenKind.ACCESS)
        if not access_token:
            return False
        try:
            remaining = expiration.time_remaining(access_token)
        except DecodeError as e:
            logging.debug(f"❔ Access token expiry unreadable, leaving it to the gateway error={e}")
            return False

        logging.debug(
            f"⌛ Access token validity: {format_duration(max(0, remaining))} remaining remaining_seconds={int(remaining)}"
        )
        if not 0 < remaining < self.threshold:
            return False
        if self.pending_renewal is not None and not self.pending_renewal.done():
            logging.debug("Preemptive renewal still in flight, skipping tick")
            return False

        self.preemptive_renewals += 1
        logger.log_event(
            "watcher", "preemptive_renewal", level=logging.INFO, remaining=int(remaining)
        )
        self.pending_renewal = self.coordinator.hooks.create_retained_task(
            self._renew_preemptively(), category="preemptive_renewal"
        )
        return True

    async def _renew_preemptively(self) -> None:
        try:
            await self.coordinator.ensure_fresh_token()
        except RenewalError as e:
            logging.debug(f"Preemptive renewal failed, session handled by coordinator error={e}")
