import os
from types import SimpleNamespace

# Set test-friendly defaults for constants that affect test performance
os.environ.setdefault("REDIRECT_DELAY_SECONDS", "0")
os.environ.setdefault("WATCHER_INTERVAL_SECONDS", "0.01")

import pytest
import pytest_asyncio

from tests.fixtures.session_fixtures import (
    BASE_URL,
    FakeIdentityApi,
    FakeSession,
)
from tokenkeeper.auth_token.client import RenewalClient
from tokenkeeper.auth_token.coordinator import RefreshCoordinator
from tokenkeeper.auth_token.gateway import RequestGateway
from tokenkeeper.auth_token.hook_manager import HookManager
from tokenkeeper.auth_token.store import MemoryTokenStore
from tokenkeeper.auth_token.terminator import SessionTerminator
from tokenkeeper.auth_token.watcher import ExpirationWatcher


@pytest.fixture
def identity_api():
    return FakeIdentityApi()


@pytest.fixture
def fake_session(identity_api):
    return FakeSession(identity_api)


@pytest.fixture
def store(identity_api):
    return MemoryTokenStore(identity_api.pair())


@pytest_asyncio.fixture
async def graph(fake_session, store):
    """Fully wired session components around the fake identity provider."""
    hooks = HookManager()
    notifications: list[tuple[str, str]] = []
    renewal_client = RenewalClient(fake_session, BASE_URL, timeout=1.0, revoke_backoff=0)
    terminator = SessionTerminator(
        store,
        hooks,
        renewal_client=renewal_client,
        notify=lambda level, message: notifications.append((level, message)),
        redirect_delay=0,
    )
    coordinator = RefreshCoordinator(
        store,
        renewal_client,
        terminator,
        hooks,
        timeout=1.0,
        exempt_paths=renewal_client.exempt_paths + ("/auth/login", "/auth/register"),
    )
    gateway = RequestGateway(fake_session, store, coordinator, base_url=BASE_URL)
    watcher = ExpirationWatcher(store, coordinator, interval=0.01, threshold=300)
    yield SimpleNamespace(
        session=fake_session,
        store=store,
        hooks=hooks,
        renewal_client=renewal_client,
        terminator=terminator,
        coordinator=coordinator,
        gateway=gateway,
        watcher=watcher,
        notifications=notifications,
    )
    await watcher.stop()
    await hooks.cancel_all()
