"""Tests for the Playwright renderer adapter, driven through a mocked page."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from og_explorer.errors import RendererError
from og_explorer.renderer import (
    LOADING_CHANGED,
    NAVIGATION_FINISHED,
    URL_CHANGED,
    PlaywrightRenderer,
)

A = "https://a.example/"
B = "https://b.example/"


def make_page(url=A):
    page = MagicMock()
    page.url = url
    page.main_frame = MagicMock(name="main_frame")
    page.goto = AsyncMock()
    page.evaluate = AsyncMock()
    page.screenshot = AsyncMock(return_value=b"png")
    handlers = {}
    page.on.side_effect = lambda event, handler: handlers.__setitem__(event, handler)
    return page, handlers


def navigation(frame, status=200, url=A):
    request = MagicMock()
    request.url = url
    request.is_navigation_request.return_value = True
    request.frame = frame
    request.response = AsyncMock(return_value=MagicMock(status=status))
    return request


def recording(renderer):
    events = []
    for name in (NAVIGATION_FINISHED, URL_CHANGED, LOADING_CHANGED):
        renderer.on(name, lambda *args, name=name: events.append((name, *args)))
    return events


def test_navigation_request_load_and_url_change_events():
    page, handlers = make_page()
    renderer = PlaywrightRenderer(page)
    events = recording(renderer)

    handlers["request"](navigation(page.main_frame))
    handlers["request"](navigation(MagicMock(name="iframe")))
    assert renderer.is_loading

    handlers["framenavigated"](page.main_frame)
    handlers["framenavigated"](MagicMock(name="iframe"))
    handlers["load"](page)

    assert events == [
        (LOADING_CHANGED, True),
        (URL_CHANGED, A),
        (NAVIGATION_FINISHED, A),
        (LOADING_CHANGED, False),
    ]
    assert not renderer.is_loading
    page.set_default_navigation_timeout.assert_called_once_with(30000.0)


def test_frameless_requests_are_ignored():
    page, handlers = make_page()
    renderer = PlaywrightRenderer(page)
    request = MagicMock()
    request.is_navigation_request.side_effect = PlaywrightError("Service Worker requests do not have an associated frame")
    handlers["request"](request)
    handlers["requestfailed"](request)
    assert not renderer.is_loading


def test_no_content_navigation_settles_loading():
    async def scenario():
        page, handlers = make_page()
        renderer = PlaywrightRenderer(page)
        events = recording(renderer)
        request = navigation(page.main_frame, status=204)
        handlers["request"](request)
        handlers["requestfinished"](request)
        await renderer.wait_idle()
        return renderer, events

    renderer, events = asyncio.run(scenario())
    assert not renderer.is_loading
    assert events == [(LOADING_CHANGED, True), (LOADING_CHANGED, False)]


def test_committed_navigation_stays_loading_until_load():
    async def scenario():
        page, handlers = make_page()
        renderer = PlaywrightRenderer(page)
        request = navigation(page.main_frame, status=200)
        handlers["request"](request)
        handlers["requestfinished"](request)
        handlers["requestfinished"](navigation(MagicMock(name="iframe"), status=204))
        await renderer.wait_idle()
        return renderer

    assert asyncio.run(scenario()).is_loading


def test_failed_navigation_and_download_settle_loading():
    page, handlers = make_page()
    renderer = PlaywrightRenderer(page)
    request = navigation(page.main_frame)
    handlers["request"](request)
    handlers["requestfailed"](request)
    assert not renderer.is_loading

    handlers["request"](request)
    handlers["download"](MagicMock(url="https://a.example/report.pdf"))
    assert not renderer.is_loading


def test_popup_is_loaded_in_the_main_page():
    async def scenario():
        page, handlers = make_page()
        renderer = PlaywrightRenderer(page)
        popup = MagicMock(url=B)
        popup.wait_for_url = AsyncMock()
        popup.close = AsyncMock()
        blank = MagicMock(url="about:blank")
        blank.wait_for_url = AsyncMock(side_effect=PlaywrightError("Timeout"))
        blank.close = AsyncMock()

        handlers["popup"](popup)
        handlers["popup"](blank)
        await renderer.wait_idle()
        return page, popup, blank

    page, popup, blank = asyncio.run(scenario())
    popup.close.assert_awaited_once()
    blank.close.assert_awaited_once()
    page.goto.assert_awaited_once_with(B, wait_until="commit")


def test_load_failure_raises_and_settles():
    async def scenario():
        page, handlers = make_page()
        renderer = PlaywrightRenderer(page)
        page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        handlers["request"](navigation(page.main_frame))
        with pytest.raises(RendererError):
            await renderer.load("https://nowhere.invalid/")
        return renderer

    assert not asyncio.run(scenario()).is_loading


def test_execute_script_returns_json_text():
    async def scenario():
        page, _ = make_page()
        renderer = PlaywrightRenderer(page)
        page.evaluate.return_value = {"schema": 1}
        as_object = await renderer.execute_script("collect()")
        page.evaluate.return_value = '{"schema": 1}'
        as_text = await renderer.execute_script("collect()")
        page.evaluate.return_value = None
        as_null = await renderer.execute_script("collect()")
        page.evaluate.side_effect = PlaywrightError("Execution context was destroyed")
        with pytest.raises(RendererError):
            await renderer.execute_script("collect()")
        return as_object, as_text, as_null

    as_object, as_text, as_null = asyncio.run(scenario())
    assert json.loads(as_object) == {"schema": 1}
    assert as_text == '{"schema": 1}'
    assert as_null == "null"


def test_history_comes_from_cdp():
    async def scenario():
        page, _ = make_page()
        cdp = MagicMock()
        cdp.send = AsyncMock(return_value={"currentIndex": 1, "entries": [{}, {}]})
        page.context.new_cdp_session = AsyncMock(return_value=cdp)
        renderer = PlaywrightRenderer(page)
        back, forward = await renderer.can_go_back(), await renderer.can_go_forward()
        page.context.new_cdp_session.assert_awaited_once()
        return back, forward, cdp

    back, forward, cdp = asyncio.run(scenario())
    assert (back, forward) == (True, False)
    cdp.send.assert_awaited_with("Page.getNavigationHistory")


def test_channels_and_init_scripts_use_the_page():
    async def scenario():
        page, _ = make_page()
        page.expose_function = AsyncMock()
        page.add_init_script = AsyncMock()
        renderer = PlaywrightRenderer(page)
        handler = MagicMock()
        await renderer.register_message_channel("headChanged", handler)
        await renderer.add_init_script("observe()")
        return page, handler

    page, handler = asyncio.run(scenario())
    page.expose_function.assert_awaited_once_with("headChanged", handler)
    page.add_init_script.assert_awaited_once_with(script="observe()")
