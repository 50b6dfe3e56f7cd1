"""Tests for the access-token lifecycle."""

import asyncio

import httpx
import pytest

from conftest import FakeNotifier, FakeStore, make_graph_client

from interest_finder.core.exceptions import ConfigurationError, TokenRefreshError, UpstreamError
from interest_finder.services.token_manager import DAY_SECONDS, TokenManager


class FakeGraph:
    """Counts token exchanges; each one returns a new token after a short delay."""

    def __init__(self, error: Exception = None, delay: float = 0.01):
        self.error = error
        self.delay = delay
        self.exchanges = []

    async def exchange_token(self, current_token, app_id, app_secret):
        self.exchanges.append(current_token)
        await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return f"refreshed-{len(self.exchanges)}"


def _manager(clock, graph=None, store=None, notifier=None, **kwargs) -> TokenManager:
    return TokenManager(
        initial_token=kwargs.pop("initial_token", "configured-token"),
        graph=graph or FakeGraph(),
        store=store or FakeStore(),
        notifier=notifier or FakeNotifier(),
        app_id="app-id",
        app_secret="app-secret",
        clock=clock,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_fresh_token_is_returned_without_refresh(clock):
    graph = FakeGraph()
    manager = _manager(clock, graph=graph)
    clock.advance(44 * DAY_SECONDS)

    assert await manager.get_valid_token() == "configured-token"
    assert graph.exchanges == []


@pytest.mark.asyncio
async def test_token_is_refreshed_after_45_days(clock):
    graph, store, notifier = FakeGraph(), FakeStore(), FakeNotifier()
    manager = _manager(clock, graph=graph, store=store, notifier=notifier)
    clock.advance(45 * DAY_SECONDS)

    token = await manager.get_valid_token()

    assert token == "refreshed-1"
    assert graph.exchanges == ["configured-token"]
    assert manager.credential.last_refreshed_at == clock.now
    assert store.saved_credentials == [
        {"key": "facebook_token", "token": "refreshed-1", "last_refreshed_at": clock.now}
    ]
    assert [n["subject"] for n in notifier.sent] == ["Facebook Token Refreshed"]
    assert manager.needs_refresh() is False


@pytest.mark.asyncio
async def test_concurrent_callers_share_a_single_exchange(clock):
    graph = FakeGraph(delay=0.05)
    store, notifier = FakeStore(), FakeNotifier()
    manager = _manager(clock, graph=graph, store=store, notifier=notifier)
    clock.advance(46 * DAY_SECONDS)

    tokens = await asyncio.gather(*(manager.get_valid_token() for _ in range(25)))

    assert len(graph.exchanges) == 1
    assert set(tokens) == {"refreshed-1"}
    assert len(store.saved_credentials) == 1
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_failed_refresh_keeps_old_token_and_notifies_once(clock):
    graph = FakeGraph(error=UpstreamError("Invalid OAuth access token.", upstream_status=400))
    store, notifier = FakeStore(), FakeNotifier()
    manager = _manager(clock, graph=graph, store=store, notifier=notifier)
    before = manager.credential
    clock.advance(45 * DAY_SECONDS)

    with pytest.raises(TokenRefreshError) as exc_info:
        await manager.get_valid_token()

    assert "Invalid OAuth access token." in exc_info.value.message
    assert manager.credential == before
    assert store.saved_credentials == []
    assert [n["subject"] for n in notifier.sent] == ["Token Refresh Failed"]


@pytest.mark.asyncio
async def test_concurrent_callers_all_see_the_refresh_failure(clock):
    graph = FakeGraph(error=UpstreamError("boom"), delay=0.05)
    notifier = FakeNotifier()
    manager = _manager(clock, graph=graph, notifier=notifier)
    clock.advance(45 * DAY_SECONDS)

    results = await asyncio.gather(
        *(manager.get_valid_token() for _ in range(5)), return_exceptions=True
    )

    assert all(isinstance(r, TokenRefreshError) for r in results)
    assert len(graph.exchanges) == 1
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_refresh_is_retried_by_the_next_request_after_a_failure(clock):
    graph = FakeGraph(error=UpstreamError("temporary"))
    manager = _manager(clock, graph=graph)
    clock.advance(45 * DAY_SECONDS)

    with pytest.raises(TokenRefreshError):
        await manager.get_valid_token()

    graph.error = None
    assert await manager.get_valid_token() == "refreshed-2"


@pytest.mark.asyncio
async def test_persistence_failure_keeps_the_new_token(clock):
    notifier = FakeNotifier()
    manager = _manager(clock, store=FakeStore(fail=True), notifier=notifier)
    clock.advance(45 * DAY_SECONDS)

    assert await manager.get_valid_token() == "refreshed-1"
    assert manager.credential.token == "refreshed-1"
    assert len(notifier.sent) == 1
    assert "could not be persisted" in notifier.sent[0]["body"]


@pytest.mark.asyncio
async def test_load_adopts_the_persisted_credential(clock):
    persisted_at = clock.now - 10 * DAY_SECONDS
    store = FakeStore(credential={"token": "persisted-token", "last_refreshed_at": persisted_at})
    manager = _manager(clock, store=store)

    await manager.load()

    assert manager.credential.token == "persisted-token"
    assert manager.credential.last_refreshed_at == persisted_at
    assert await manager.get_valid_token() == "persisted-token"


@pytest.mark.asyncio
async def test_load_failure_keeps_configured_token(clock):
    manager = _manager(clock, store=FakeStore(fail=True))

    await manager.load()

    assert manager.credential.token == "configured-token"


@pytest.mark.asyncio
async def test_missing_token_is_a_configuration_error(clock):
    manager = _manager(clock, initial_token="")

    with pytest.raises(ConfigurationError):
        await manager.get_valid_token()


@pytest.mark.asyncio
async def test_status_never_exposes_the_token(clock):
    manager = _manager(clock)
    clock.advance(5 * DAY_SECONDS)

    status = manager.get_status()

    assert status["age_days"] == 5.0
    assert status["next_refresh_in_days"] == 40.0
    assert "configured-token" not in str(status)


@pytest.mark.asyncio
async def test_refresh_goes_through_the_graph_exchange_endpoint(clock):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"access_token": "from-graph", "token_type": "bearer"})

    graph = make_graph_client(handler)
    manager = _manager(clock, graph=graph)

    assert await manager.refresh() == "from-graph"
    await graph.close()

    assert len(seen) == 1
    assert seen[0].url.path == "/v18.0/oauth/access_token"
    assert seen[0].url.params["grant_type"] == "fb_exchange_token"
    assert seen[0].url.params["fb_exchange_token"] == "configured-token"
    assert seen[0].url.params["client_id"] == "app-id"
    assert seen[0].url.params["client_secret"] == "app-secret"


@pytest.mark.asyncio
async def test_missing_app_credentials_fail_the_refresh_with_a_notification(clock):
    graph, notifier = FakeGraph(), FakeNotifier()
    manager = TokenManager(
        initial_token="configured-token",
        graph=graph,
        store=FakeStore(),
        notifier=notifier,
        app_id="",
        app_secret="",
        clock=clock,
    )
    clock.advance(46 * DAY_SECONDS)

    with pytest.raises(ConfigurationError):
        await manager.get_valid_token()

    assert graph.exchanges == []
    assert manager.credential.token == "configured-token"
    assert [n["subject"] for n in notifier.sent] == ["Token Refresh Failed"]
    assert "FACEBOOK_APP_ID" in notifier.sent[0]["body"]
    assert manager.get_status()["metrics"]["failures"] == 1
