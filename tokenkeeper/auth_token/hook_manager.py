"""Hook management for token renewals and session termination."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

RenewalHook = Callable[[str], Coroutine[Any, Any, None]]
TerminationHook = Callable[[str], Coroutine[Any, Any, None]]


class HookManager:
    """Manages registration and firing of renewal and termination hooks.

    Hooks are coroutine functions. Firing never awaits them: each one runs as
    a retained background task whose failure is logged and otherwise ignored.
    """

    def __init__(self) -> None:
        # Called with the new access token after a successful renewal.
        self._renewal_hooks: list[RenewalHook] = []
        # Called with the reason once per session termination.
        self._termination_hooks: list[TerminationHook] = []
        # Retained background tasks to prevent premature GC.
        self._hook_tasks: set[asyncio.Task[Any]] = set()

    def register_renewal_hook(self, hook: RenewalHook) -> None:
        """Register a coroutine hook invoked after a successful renewal.

        Hooks are additive (e.g. persist elsewhere + push to a websocket).
        """
        self._renewal_hooks.append(hook)

    def register_termination_hook(self, hook: TerminationHook) -> None:
        """Register a coroutine hook invoked when the session is terminated.

        Typical hooks clear derived user state, show a notification, or
        navigate away from authenticated views.
        """
        self._termination_hooks.append(hook)

    def fire_renewal_hooks(self, access_token: str) -> list[asyncio.Task[Any]]:
        return [
            self.create_retained_task(hook(access_token), category="renewal_hook")
            for hook in list(self._renewal_hooks)
        ]

    def fire_termination_hooks(self, reason: str) -> list[asyncio.Task[Any]]:
        return [
            self.create_retained_task(hook(reason), category="termination_hook")
            for hook in list(self._termination_hooks)
        ]

    def create_retained_task(
        self, coro: Coroutine[Any, Any, Any], *, category: str
    ) -> asyncio.Task[Any]:
        """Create and retain a background task with exception logging.

        Ensures the task handle is stored (preventing premature GC) and any
        exception is surfaced via logging.
        """
        task: asyncio.Task[Any] = asyncio.create_task(coro)  # NOSONAR S7502
        self._hook_tasks.add(task)

        def _cb(t: asyncio.Task[Any]) -> None:
            self._hook_tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logging.warning(
                    f"⚠️ Retained background task error category={category} error={str(exc)} type={type(exc).__name__}"
                )

        task.add_done_callback(_cb)
        return task

    @property
    def pending_tasks(self) -> int:
        return len(self._hook_tasks)

    async def drain(self) -> None:
        """Wait for every retained task to finish (used by tests and shutdown)."""
        while self._hook_tasks:
            tasks = list(self._hook_tasks)
            await asyncio.gather(*tasks, return_exceptions=True)
            # Done callbacks run on the next loop iteration.
            await asyncio.sleep(0)
            self._hook_tasks.difference_update(tasks)

    async def cancel_all(self) -> None:
        tasks = list(self._hook_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            self._hook_tasks.difference_update(tasks)
