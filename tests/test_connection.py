from __future__ import annotations

import asyncio

import pytest

from mcp_servers.comet.connection import is_connection_error
from mcp_servers.comet.errors import (
    BridgeUnreachableError,
    ConnectionFatalError,
    LaunchError,
    NotConnectedError,
    PageScriptError,
)
from mcp_servers.comet.http_client import HttpClientError

from fakes import HOME, FakeWorld, tab


def test_connect_attaches_and_enables_domains() -> None:
    world = FakeWorld()
    message = asyncio.run(world.bridge.connection.connect())

    assert message == f"Connected to tab: {HOME}"
    state = world.bridge.connection.state
    assert state.connected and state.active_context_id == "A" and state.last_context_id == "A"
    methods = world.channels[0].methods()
    for domain in ("Page", "Runtime", "DOM", "Network"):
        assert f"{domain}.enable" in methods
    assert world.page.window_states == ["normal"]


def test_connect_keeps_single_live_channel() -> None:
    world = FakeWorld([tab("A", HOME), tab("B", "https://github.com/")])

    async def scenario() -> None:
        await world.bridge.connection.connect("A")
        await world.bridge.connection.connect("B")

    asyncio.run(scenario())
    assert len(world.channels) == 2
    assert world.channels[0].closed
    assert world.open_channels == [world.channels[1]]
    assert world.bridge.connection.state.active_context_id == "B"


def test_connect_unknown_context_fails() -> None:
    world = FakeWorld()
    with pytest.raises(HttpClientError, match="Context not found"):
        asyncio.run(world.bridge.connection.connect("missing"))
    assert world.channels == []


def test_probe_failure_blocks_channel_attempt() -> None:
    world = FakeWorld(platform="wsl")
    world.transport.probe_error = BridgeUnreachableError(9223)
    with pytest.raises(BridgeUnreachableError, match="networkingMode=mirrored"):
        asyncio.run(world.bridge.connection.connect())
    assert world.channels == []
    assert not world.bridge.connection.is_connected


def test_advisory_failures_do_not_break_connect() -> None:
    world = FakeWorld()
    original = world.page.handle

    def flaky(method: str, params: dict) -> dict:
        if method.startswith("Browser."):
            raise HttpClientError("CDP error (Browser.getWindowForTarget): not supported")
        return original(method, params)

    world.page.handle = flaky  # type: ignore[method-assign]
    asyncio.run(world.bridge.connection.connect())
    assert world.bridge.connection.is_connected


def test_health_failure_clears_connected_flag() -> None:
    world = FakeWorld()

    async def scenario() -> tuple[bool, bool]:
        await world.bridge.connection.connect()
        healthy = await world.bridge.connection.is_healthy()
        world.page.healthy = False
        return healthy, await world.bridge.connection.is_healthy()

    assert asyncio.run(scenario()) == (True, False)
    assert world.bridge.connection.state.connected is False


def test_evaluate_requires_channel() -> None:
    world = FakeWorld()
    with pytest.raises(NotConnectedError, match="Call connect"):
        asyncio.run(world.bridge.connection.evaluate("1+2"))


def test_evaluate_maps_page_exceptions() -> None:
    world = FakeWorld()
    original = world.page.handle

    def throwing(method: str, params: dict) -> dict:
        if method == "Runtime.evaluate" and params.get("expression") == "boom()":
            return {
                "result": {"type": "object", "subtype": "error"},
                "exceptionDetails": {"text": "Uncaught", "exception": {"description": "ReferenceError: boom"}},
            }
        return original(method, params)

    world.page.handle = throwing  # type: ignore[method-assign]

    async def scenario() -> None:
        await world.bridge.connection.connect()
        await world.bridge.connection.evaluate("boom()")

    with pytest.raises(PageScriptError, match="ReferenceError"):
        asyncio.run(scenario())


def test_is_connection_error_markers() -> None:
    assert is_connection_error(HttpClientError("WebSocket connection closed"))
    assert is_connection_error(Exception("Session closed. Most likely the page has been closed."))
    assert is_connection_error(Exception("Target closed"))
    assert not is_connection_error(HttpClientError("CDP error (Runtime.evaluate): bad expression"))
    assert not is_connection_error(PageScriptError("TypeError: x is undefined"))


def test_transient_loss_triggers_exactly_one_reconnect() -> None:
    world = FakeWorld()
    calls = {"n": 0}

    async def operation() -> int:
        calls["n"] += 1
        if calls["n"] == 2:
            raise HttpClientError("Session closed")
        return calls["n"]

    async def scenario() -> list[int]:
        await world.bridge.connection.connect()
        return [await world.bridge.connection.with_auto_reconnect(operation) for _ in range(5)]

    results = asyncio.run(scenario())
    assert len(results) == 5
    assert len(world.channels) == 2
    assert len(world.open_channels) == 1
    assert world.bridge.connection.state.reconnect_attempts == 0
    assert world.bridge.connection.state.active_context_id == "A"


def test_reconnect_attempts_are_bounded(monkeypatch: pytest.MonkeyPatch) -> None:
    world = FakeWorld()
    connection = world.bridge.connection
    reconnects = {"n": 0}

    async def fake_reconnect() -> str:
        reconnects["n"] += 1
        return "reconnected"

    monkeypatch.setattr(connection, "reconnect", fake_reconnect)

    async def always_lost() -> None:
        raise HttpClientError("WebSocket connection closed")

    async def scenario() -> None:
        for _ in range(connection.config.max_reconnect_attempts + 2):
            with pytest.raises(HttpClientError):
                await connection.with_auto_reconnect(always_lost)

    asyncio.run(scenario())
    assert reconnects["n"] == connection.config.max_reconnect_attempts
    assert connection.state.reconnect_attempts == connection.config.max_reconnect_attempts


def test_success_resets_reconnect_counter(monkeypatch: pytest.MonkeyPatch) -> None:
    world = FakeWorld()
    connection = world.bridge.connection

    async def fake_reconnect() -> str:
        return "reconnected"

    monkeypatch.setattr(connection, "reconnect", fake_reconnect)
    connection.state.reconnect_attempts = 3

    async def ok() -> str:
        return "ok"

    assert asyncio.run(connection.with_auto_reconnect(ok)) == "ok"
    assert connection.state.reconnect_attempts == 0


def test_non_connection_errors_are_not_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    world = FakeWorld()
    connection = world.bridge.connection
    reconnects = {"n": 0}

    async def fake_reconnect() -> str:
        reconnects["n"] += 1
        return "reconnected"

    monkeypatch.setattr(connection, "reconnect", fake_reconnect)

    async def broken() -> None:
        raise PageScriptError("TypeError")

    with pytest.raises(PageScriptError):
        asyncio.run(connection.with_auto_reconnect(broken))
    assert reconnects["n"] == 0


def test_reconnect_prefers_last_context() -> None:
    world = FakeWorld([tab("A", HOME), tab("B", "https://github.com/")])

    async def scenario() -> str:
        await world.bridge.connection.connect("B")
        return await world.bridge.connection.reconnect()

    message = asyncio.run(scenario())
    assert message == "Connected to tab: https://github.com/"
    assert world.bridge.connection.state.active_context_id == "B"
    assert world.open_channels == [world.channels[-1]]
    assert world.channels[-1].ws_url.endswith("/devtools/page/B")


def test_reconnect_falls_back_to_home_page() -> None:
    world = FakeWorld([tab("X", "about:blank"), tab("A", HOME)])
    world.bridge.connection.state.last_context_id = "gone"
    asyncio.run(world.bridge.connection.reconnect())
    assert world.bridge.connection.state.active_context_id == "A"


def test_reconnect_without_candidates_fails() -> None:
    world = FakeWorld([tab("X", "about:blank")])
    with pytest.raises(NotConnectedError, match="No suitable tab"):
        asyncio.run(world.bridge.connection.reconnect())


def test_ensure_healthy_reconnects_when_channel_dead() -> None:
    world = FakeWorld()

    async def scenario() -> None:
        await world.bridge.connection.connect()
        await world.channels[0].close()
        await world.bridge.connection.ensure_healthy()

    asyncio.run(scenario())
    assert len(world.channels) == 2
    assert world.bridge.connection.is_connected


def test_ensure_healthy_escalates_to_fatal(monkeypatch: pytest.MonkeyPatch) -> None:
    world = FakeWorld(tabs=[], running=False)

    async def cannot_start() -> None:
        raise LaunchError("Cannot start MCP Comet after 3 attempts.")

    monkeypatch.setattr(world.bridge.launcher, "ensure_running", cannot_start)

    with pytest.raises(ConnectionFatalError) as exc:
        asyncio.run(world.bridge.connection.ensure_healthy())
    assert "Reconnect error: Cannot connect to Comet on port 9223" in str(exc.value)
    assert "Restart error: Cannot start MCP Comet" in str(exc.value)


def test_navigate_and_screenshot() -> None:
    world = FakeWorld()
    world.page.scripts["__screenshot__"] = "aGVsbG8="

    async def scenario() -> str:
        await world.bridge.connection.connect()
        await world.bridge.connection.navigate("https://www.perplexity.ai/library")
        return await world.bridge.connection.screenshot()

    assert asyncio.run(scenario()) == "aGVsbG8="
    assert world.page.navigations == ["https://www.perplexity.ai/library"]
    assert world.bridge.connection.state.current_url == "https://www.perplexity.ai/library"


def test_new_and_close_context_over_http() -> None:
    world = FakeWorld()

    async def scenario() -> tuple[str, bool]:
        created = await world.bridge.connection.new_context(HOME)
        closed = await world.bridge.connection.close_context(created.id)
        return created.url, closed

    url, closed = asyncio.run(scenario())
    assert url == HOME
    assert closed
    assert [t["id"] for t in world.transport.tabs] == ["A"]
    assert ("PUT", "/json/new?https://www.perplexity.ai/") in world.transport.requests


def test_minimize_is_advisory_and_configurable() -> None:
    world = FakeWorld(minimize_on_complete=False)

    async def scenario() -> None:
        await world.bridge.connection.connect()
        await world.bridge.connection.minimize_window()

    asyncio.run(scenario())
    assert "minimized" not in world.page.window_states

    enabled = FakeWorld()

    async def enabled_scenario() -> None:
        await enabled.bridge.connection.connect()
        await enabled.bridge.connection.minimize_window()

    asyncio.run(enabled_scenario())
    assert enabled.page.window_states[-1] == "minimized"
