from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from mcp_servers.comet import launcher as launcher_module
from mcp_servers.comet.errors import LaunchError
from mcp_servers.comet.launcher import MACOS_MCP_APP_NAME, BrowserLauncher

from fakes import FakeTransport, make_config


@pytest.fixture
def helper_calls(monkeypatch: pytest.MonkeyPatch) -> list[list[str]]:
    calls: list[list[str]] = []

    async def fake_run(argv: list[str], *, timeout: float) -> tuple[int, str]:
        calls.append(argv)
        return 1, ""

    monkeypatch.setattr(launcher_module, "run_command", fake_run)
    return calls


def test_build_launch_command_flags(tmp_path: Path) -> None:
    cfg = make_config(data_dir=str(tmp_path / "profile"), port=9333)
    cmd = BrowserLauncher(cfg, FakeTransport(cfg)).build_launch_command()
    assert cmd[0] == "/opt/comet/comet"
    assert "--remote-debugging-port=9333" in cmd
    assert f"--user-data-dir={tmp_path / 'profile'}" in cmd
    assert "--no-first-run" in cmd


def test_build_launch_command_uses_macos_app_copy(tmp_path: Path) -> None:
    (tmp_path / MACOS_MCP_APP_NAME).mkdir()
    cfg = make_config(platform="darwin", data_dir=str(tmp_path))
    cmd = BrowserLauncher(cfg, FakeTransport(cfg)).build_launch_command()
    assert cmd[:3] == ["open", "-a", str(tmp_path / MACOS_MCP_APP_NAME)]
    assert cmd[3] == "--args"


def test_ensure_running_reuses_live_instance(helper_calls: list[list[str]]) -> None:
    cfg = make_config()
    transport = FakeTransport(cfg, running=True)
    result = asyncio.run(BrowserLauncher(cfg, transport).ensure_running())
    assert not result.started
    assert "already running on port 9223" in result.message
    assert transport.spawned == []
    assert helper_calls == []


def test_ensure_running_starts_browser(tmp_path: Path, helper_calls: list[list[str]]) -> None:
    cfg = make_config(data_dir=str(tmp_path / "profile"))
    transport = FakeTransport(cfg, running=False)
    result = asyncio.run(BrowserLauncher(cfg, transport).ensure_running())
    assert result.started
    assert "started on port 9223" in result.message
    assert len(transport.spawned) == 1
    assert (tmp_path / "profile").is_dir()
    # stale-port cleanup only looks at the listener on our port
    assert helper_calls[0][:2] == ["lsof", "-t"]
    assert "-iTCP:9223" in helper_calls[0]


def test_ensure_running_gives_up_after_retries(tmp_path: Path, helper_calls: list[list[str]]) -> None:
    cfg = make_config(data_dir=str(tmp_path), launch_retries=3)
    transport = FakeTransport(cfg, running=False)
    transport.start_on_spawn = False
    with pytest.raises(LaunchError) as exc:
        asyncio.run(BrowserLauncher(cfg, transport).ensure_running())
    message = str(exc.value)
    assert "after 3 attempts" in message
    assert "Port: 9223" in message
    assert f"Data dir: {tmp_path}" in message
    assert "Timeout waiting" in message
    assert len(transport.spawned) == 3


def test_wsl_resolves_paths_on_host(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("COMET_MCP_DATA_DIR", raising=False)

    async def fake_run(argv: list[str], *, timeout: float) -> tuple[int, str]:
        assert argv[0] == "cmd.exe"
        return 0, "C:\\Users\\dev\\AppData\\Local\r\n"

    monkeypatch.setattr(launcher_module, "run_command", fake_run)
    cfg = make_config(platform="wsl", executable_path="")
    executable, data_dir = asyncio.run(BrowserLauncher(cfg, FakeTransport(cfg)).resolve_paths())
    assert executable == "C:\\Users\\dev\\AppData\\Local\\Perplexity\\Comet\\Application\\Comet.exe"
    assert data_dir == "C:\\Users\\dev\\AppData\\Local\\comet-mcp"
