from __future__ import annotations

import asyncio

import pytest

from mcp_servers.comet import page_scripts
from mcp_servers.comet.monitor import (
    NOT_LOGGED_IN_MESSAGE,
    LoginSignals,
    PageSignals,
    ResponseMarker,
    TaskStatus,
    build_response,
    classify_login,
    classify_status,
    extract_steps,
    is_fresh,
    select_response_blocks,
)

from fakes import FakeWorld, tab

# ---------------------------------------------------------------- status


@pytest.mark.parametrize(
    ("signals", "expected"),
    [
        (PageSignals(text="Searching the web", has_stop_control=False), TaskStatus.WORKING),
        (PageSignals(text="Answer\n3 steps completed"), TaskStatus.COMPLETED),
        (PageSignals(text="Finished"), TaskStatus.COMPLETED),
        (PageSignals(text="Reviewed 12 sources"), TaskStatus.COMPLETED),
        (PageSignals(text="Reviewed 12 sources\nReading page"), TaskStatus.WORKING),
        (PageSignals(text="Ask a follow-up", has_prose=True), TaskStatus.COMPLETED),
        (PageSignals(text="Ask a follow-up", has_prose=False), TaskStatus.IDLE),
        (PageSignals(text="Where knowledge begins"), TaskStatus.IDLE),
    ],
)
def test_classify_status(signals: PageSignals, expected: TaskStatus) -> None:
    assert classify_status(signals) is expected


def test_busy_signals_win_over_completion_text() -> None:
    assert classify_status(PageSignals(text="Finished\n2 steps completed", has_stop_control=True)) is TaskStatus.WORKING
    assert classify_status(PageSignals(text="Reviewed 3 sources", has_spinner=True)) is TaskStatus.WORKING


# ---------------------------------------------------------------- steps


def test_extract_steps_is_idempotent_and_bounded() -> None:
    text = "\n".join(
        [
            "Preparing to assist you",
            "Navigating to github.com",
            "Clicking Sign in",
            "Typing: hello",
            "Reading the page",
            "Clicking Sign in",
            "Found 3 results",
            "Searching " + "x" * 300,
        ]
    )
    first = extract_steps(text, limit=5, max_len=100)
    second = extract_steps(text, limit=5, max_len=100)
    assert first == second

    steps, current = first
    assert len(steps) == 5
    assert len(set(steps)) == len(steps)
    assert all(len(s) <= 100 for s in steps)
    assert current


def test_extract_steps_empty_text() -> None:
    assert extract_steps("", limit=5, max_len=100) == ([], "")


# ---------------------------------------------------------------- response


def test_select_response_blocks_filters_noise() -> None:
    blocks = [
        {"text": "Sidebar prose that should be ignored", "inChrome": True},
        {"text": "Library", "inChrome": False},
        {"text": "What is the capital of France?", "inChrome": False},
        {"text": "short", "inChrome": False},
        {"text": "Paris is the capital of France.", "inChrome": False},
        {"text": "Paris is the capital of France.", "inChrome": False},
    ]
    assert select_response_blocks(blocks) == ["Paris is the capital of France."]


def test_build_response_joins_and_strips_boilerplate() -> None:
    blocks = [
        {"text": "First answer paragraph here. 4 sources", "inChrome": False},
        {"text": "Second answer paragraph here.", "inChrome": False},
    ]
    out = build_response(blocks)
    assert "sources" not in out
    assert "First answer paragraph here." in out
    assert "\n\n---\n\n" in out


def test_build_response_truncates_exactly() -> None:
    blocks = [{"text": "A" * 500, "inChrome": False}]
    assert len(build_response(blocks, max_chars=120)) == 120
    assert build_response([], max_chars=120) == ""


# ---------------------------------------------------------------- freshness


@pytest.mark.parametrize(
    ("baseline", "current", "fresh"),
    [
        (ResponseMarker(1, "old"), ResponseMarker(2, "new"), True),
        (ResponseMarker(1, "old"), ResponseMarker(1, "changed"), True),
        (ResponseMarker(1, "old"), ResponseMarker(1, "old"), False),
        (ResponseMarker(0, ""), ResponseMarker(0, ""), False),
        (ResponseMarker(2, "old"), ResponseMarker(1, ""), False),
    ],
)
def test_is_fresh(baseline: ResponseMarker, current: ResponseMarker, fresh: bool) -> None:
    assert is_fresh(baseline, current) is fresh


# ---------------------------------------------------------------- login


def test_classify_login() -> None:
    assert classify_login(LoginSignals(text="", has_profile=True))
    assert classify_login(LoginSignals(text="Library Spaces Home"))
    assert not classify_login(LoginSignals(text="Sign in Log in Create account", has_login_button=True))
    assert not classify_login(LoginSignals(text=""))


# ---------------------------------------------------------------- sampler


def test_sample_reports_agent_browsing_and_response() -> None:
    world = FakeWorld([tab("A", "https://www.perplexity.ai/"), tab("B", "https://github.com/")])
    world.page.scripts[page_scripts.PAGE_SIGNALS] = {
        "text": "Navigating to github.com\n2 steps completed",
        "hasStopControl": False,
        "hasSpinner": False,
        "hasProse": True,
    }
    world.page.scripts[page_scripts.RESPONSE_BLOCKS] = [{"text": "The repository has 42 stars.", "inChrome": False}]

    async def scenario():
        await world.bridge.connection.connect("A")
        return await world.bridge.monitor.sample()

    snapshot = asyncio.run(scenario())
    assert snapshot.status is TaskStatus.COMPLETED
    assert snapshot.response == "The repository has 42 stars."
    assert snapshot.agent_browsing_url == "https://github.com/"
    assert snapshot.steps == ["Navigating to github.com"]
    assert snapshot.to_dict()["agentBrowsingUrl"] == "https://github.com/"


def test_stop_reports_whether_a_control_was_found() -> None:
    world = FakeWorld()

    async def scenario():
        await world.bridge.connection.connect()
        without = await world.bridge.monitor.stop()
        world.page.scripts[page_scripts.STOP_AGENT] = True
        return without, await world.bridge.monitor.stop()

    assert asyncio.run(scenario()) == (False, True)


def test_check_login_warns_when_logged_out() -> None:
    world = FakeWorld()
    world.page.scripts[page_scripts.LOGIN_SIGNALS] = {
        "text": "Sign in Sign up Get started",
        "hasProfile": False,
        "hasLoginButton": True,
    }

    async def scenario():
        await world.bridge.connection.connect()
        return await world.bridge.monitor.check_login()

    status = asyncio.run(scenario())
    assert not status.logged_in
    assert status.message == NOT_LOGGED_IN_MESSAGE
