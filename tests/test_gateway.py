from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from tests.fixtures.session_fixtures import BASE_URL, FakeResp, FakeSession
from tokenkeeper.auth_token.gateway import RequestGateway
from tokenkeeper.auth_token.store import MemoryTokenStore
from tokenkeeper.auth_token.types import CredentialPair, OutboundRequest, RefreshState, TokenKind
from tokenkeeper.errors.internal import (
    NetworkError,
    NoRefreshCredential,
    RenewalError,
    UnauthorizedResponse,
)


@pytest.mark.asyncio
async def test_attaches_current_access_token(graph, identity_api):
    pair = identity_api.rotate()
    graph.store.set_pair(pair)

    response = await graph.gateway.get("/users/me")

    assert response.ok
    assert response.body == {"ok": True, "path": "/users/me"}
    assert graph.session.calls[-1].authorization == f"Bearer {pair.access_token}"
    assert identity_api.count(graph.session, "/token/refresh") == 0


@pytest.mark.asyncio
async def test_five_concurrent_unauthorized_requests_share_one_renewal(graph, identity_api):
    old_access = graph.store.get(TokenKind.ACCESS)

    responses = await asyncio.gather(
        *(graph.gateway.get(f"/lessons/{i}") for i in range(5))
    )

    assert [r.status for r in responses] == [200] * 5
    assert identity_api.count(graph.session, "/token/refresh") == 1
    new_access = graph.store.get(TokenKind.ACCESS)
    assert new_access != old_access
    retried = [
        c for c in graph.session.calls
        if c.path.startswith("/lessons/") and c.authorization == f"Bearer {new_access}"
    ]
    assert len(retried) == 5
    assert graph.coordinator.state is RefreshState.IDLE


@pytest.mark.asyncio
async def test_second_unauthorized_is_not_retried_again(graph, identity_api):
    identity_api.always_unauthorized = True

    request = OutboundRequest("GET", "/users/me")
    with pytest.raises(UnauthorizedResponse) as excinfo:
        await graph.gateway.send(request)

    assert request.retried
    assert excinfo.value.response.status == 401
    assert identity_api.count(graph.session, "/token/refresh") == 1
    assert len(graph.session.calls_to("/users/me")) == 2
    assert not graph.terminator.terminated


@pytest.mark.asyncio
async def test_already_retried_request_fails_on_first_unauthorized(graph, identity_api):
    request = OutboundRequest("GET", "/users/me", retried=True)

    with pytest.raises(UnauthorizedResponse):
        await graph.gateway.send(request)

    assert identity_api.count(graph.session, "/token/refresh") == 0


@pytest.mark.asyncio
async def test_missing_refresh_token_rejects_without_renewal_call(graph, identity_api):
    graph.store.delete(TokenKind.REFRESH)

    with pytest.raises(UnauthorizedResponse) as excinfo:
        await graph.gateway.get("/users/me")

    assert isinstance(excinfo.value.__cause__, NoRefreshCredential)
    assert identity_api.count(graph.session, "/token/refresh") == 0
    assert graph.terminator.terminated
    assert graph.store.get_pair() is None
    assert graph.notifications == [("error", "Session expired. Please log in again.")]


@pytest.mark.asyncio
async def test_failed_renewal_terminates_and_revokes(graph, identity_api):
    identity_api.renew_status = 401

    with pytest.raises(UnauthorizedResponse) as excinfo:
        await graph.gateway.get("/users/me")
    await graph.hooks.drain()

    assert isinstance(excinfo.value.__cause__, RenewalError)
    assert graph.terminator.termination_count == 1
    assert graph.store.get_pair() is None
    revokes = graph.session.calls_to("/token/logout")
    assert len(revokes) == 1
    assert revokes[0].json == {"refreshToken": "refresh-1"}
    assert revokes[0].authorization is None


@pytest.mark.asyncio
async def test_exempt_request_gets_no_credential_and_no_renewal(graph, identity_api):
    request = OutboundRequest("POST", "/auth/login", json={"email": "a@b.c", "password": "wrong"})

    response = await graph.gateway.send(request)

    assert response.status == 401
    assert graph.session.calls[-1].authorization is None
    assert identity_api.count(graph.session, "/token/refresh") == 0
    assert not request.retried


@pytest.mark.asyncio
async def test_late_unauthorized_replays_with_already_renewed_token(graph, identity_api):
    fresh: list[CredentialPair] = []

    def handler(call):
        if call.path == "/users/me" and not fresh:
            # Another caller completed a renewal while this request was in flight.
            pair = identity_api.rotate()
            graph.store.set_pair(pair)
            fresh.append(pair)
            return FakeResp(401, {"error": "Token expired"})
        return identity_api(call)

    graph.session.handler = handler
    response = await graph.gateway.get("/users/me")

    assert response.ok
    assert graph.session.calls[-1].authorization == f"Bearer {fresh[0].access_token}"
    assert identity_api.count(graph.session, "/token/refresh") == 0


@pytest.mark.asyncio
async def test_non_auth_errors_are_returned_untouched():
    session = FakeSession(lambda call: FakeResp(500, {"error": "server"}))
    coordinator = MagicMock()
    coordinator.is_exempt.return_value = False
    coordinator.ensure_fresh_token = AsyncMock()
    gateway = RequestGateway(
        session, MemoryTokenStore(CredentialPair("a", "r")), coordinator, base_url=BASE_URL
    )

    response = await gateway.delete("/friends/42")

    assert response.status == 500
    assert not response.ok
    assert response.body == {"error": "server"}
    coordinator.ensure_fresh_token.assert_not_called()


@pytest.mark.asyncio
async def test_transport_errors_become_network_errors():
    session = FakeSession(
        lambda call: FakeResp(0, raise_exception=aiohttp.ClientConnectionError("reset"))
    )
    coordinator = MagicMock()
    coordinator.is_exempt.return_value = False
    gateway = RequestGateway(session, MemoryTokenStore(), coordinator, base_url=BASE_URL)

    with pytest.raises(NetworkError, match="reset"):
        await gateway.get("/users/me")


@pytest.mark.asyncio
async def test_body_and_absolute_urls(graph, identity_api):
    graph.store.set_pair(identity_api.rotate())

    await graph.gateway.post("/users/1/complete-lesson", {"lessonId": 7})
    await graph.gateway.get("https://cdn.test/lessons.json")

    post, absolute = graph.session.calls[-2:]
    assert post.url == f"{BASE_URL}/users/1/complete-lesson"
    assert post.json == {"lessonId": 7}
    assert post.authorization is not None
    assert absolute.url == "https://cdn.test/lessons.json"


@pytest.mark.asyncio
async def test_credential_only_sent_to_api_host(graph, identity_api):
    pair = identity_api.rotate()
    graph.store.set_pair(pair)

    foreign = await graph.gateway.get("https://cdn.test/private")
    await graph.gateway.get(f"{BASE_URL}/users/me")
    await graph.gateway.get("https://api.test.evil.example/users/me")

    calls = graph.session.calls
    assert calls[0].authorization is None
    assert calls[1].authorization == f"Bearer {pair.access_token}"
    assert calls[2].authorization is None
    # A 401 from a foreign host never triggers renewal.
    assert foreign.status == 401
    assert identity_api.count(graph.session, "/token/refresh") == 0


def test_gateway_requires_session():
    with pytest.raises(TypeError):
        RequestGateway(None, MemoryTokenStore(), MagicMock())
