from __future__ import annotations

import pytest

from mcp_servers.comet import config as config_module
from mcp_servers.comet.config import MCP_PORT, CometConfig

from fakes import make_config


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in (
        "COMET_PATH",
        "COMET_MCP_DATA_DIR",
        "COMET_MCP_PORT",
        "COMET_HOME_URL",
        "COMET_MCP_POLL_INTERVAL",
        "COMET_MCP_MINIMIZE",
        "COMET_MCP_SCREENSHOT_MAX_WIDTH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "detect_platform", lambda: "linux")
    return monkeypatch


def test_from_env_defaults(clean_env: pytest.MonkeyPatch) -> None:
    cfg = CometConfig.from_env()
    assert cfg.port == MCP_PORT
    assert cfg.platform == "linux"
    assert cfg.home_url == "https://www.perplexity.ai/"
    assert cfg.data_dir.endswith(".comet-mcp")
    assert cfg.minimize_on_complete is True
    assert cfg.screenshot_max_width == 1600
    assert cfg.default_ask_timeout_ms == 15_000


def test_from_env_overrides(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("COMET_PATH", "/opt/comet/comet")
    clean_env.setenv("COMET_MCP_DATA_DIR", "/tmp/comet-profile")
    clean_env.setenv("COMET_MCP_PORT", "9333")
    clean_env.setenv("COMET_MCP_POLL_INTERVAL", "0.5")
    clean_env.setenv("COMET_MCP_MINIMIZE", "0")
    clean_env.setenv("COMET_MCP_SCREENSHOT_MAX_WIDTH", "not-a-number")
    cfg = CometConfig.from_env()
    assert cfg.executable_path == "/opt/comet/comet"
    assert cfg.data_dir == "/tmp/comet-profile"
    assert cfg.port == 9333
    assert cfg.poll_interval == 0.5
    assert cfg.minimize_on_complete is False
    assert cfg.screenshot_max_width == 1600


def test_default_user_port_is_never_shared(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("COMET_MCP_PORT", "9222")
    assert CometConfig.from_env().port == MCP_PORT


@pytest.mark.parametrize("raw", [None, "", "abc"])
def test_normalize_port_falls_back(raw: str | None) -> None:
    assert CometConfig.normalize_port(raw) == MCP_PORT


def test_wsl_is_cross_boundary_and_waits_longer(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setattr(config_module, "detect_platform", lambda: "wsl")
    cfg = CometConfig.from_env()
    assert cfg.is_cross_boundary
    assert cfg.executable_path == ""
    assert cfg.launch_initial_delay == 2.0
    assert not make_config(platform="darwin").is_cross_boundary


def test_home_host_and_urls() -> None:
    cfg = make_config()
    assert cfg.home_host == "perplexity.ai"
    assert cfg.library_url == "https://www.perplexity.ai/library"
    assert cfg.absolute_url("/search/abc") == "https://www.perplexity.ai/search/abc"
    assert cfg.absolute_url("https://example.com/x") == "https://example.com/x"
    assert cfg.endpoint_url("/json/version") == "http://127.0.0.1:9223/json/version"


def test_is_home_url_matches_subdomains_only() -> None:
    cfg = make_config()
    assert cfg.is_home_url("https://www.perplexity.ai/search/x")
    assert cfg.is_home_url("https://perplexity.ai/")
    assert not cfg.is_home_url("https://notperplexity.ai/")
    assert not cfg.is_home_url("about:blank")
    assert not cfg.is_home_url(None)
