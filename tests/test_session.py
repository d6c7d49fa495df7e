"""Tests for inspect and watch sessions with the browser replaced by a scripted renderer."""

from __future__ import annotations

import asyncio
import dataclasses
from unittest.mock import MagicMock

from conftest import FakeFetcher, FakeRenderer, make_payload, png_bytes, poll
from og_explorer import session
from og_explorer.watcher import HEAD_CHANNEL

A = "https://a.example/"
B = "https://b.example/"


class FakePlaywright:
    async def __aenter__(self):
        return MagicMock()

    async def __aexit__(self, *exc_info):
        return False


def use_renderers(monkeypatch, *renderers):
    queue = list(renderers)

    async def launch(playwright, config):
        return queue.pop(0)

    monkeypatch.setattr(session.PlaywrightRenderer, "launch", launch)
    monkeypatch.setattr(session, "async_playwright", FakePlaywright)
    monkeypatch.setattr(session, "_fetcher", lambda config: FakeFetcher(default=png_bytes(16, 16)))


def page(url, title):
    renderer = FakeRenderer("about:blank")
    renderer.pages[url] = make_payload(url, meta={"og:title": title})
    return renderer


def test_inspect_url_returns_published_state_and_screenshot(monkeypatch, fast_config, tmp_path):
    renderer = page(A, "Hello")
    use_renderers(monkeypatch, renderer)
    target = tmp_path / "shots" / "page-01.png"

    result = asyncio.run(session.inspect_url(MagicMock(), A, fast_config, target))

    assert result.url == A
    assert result.state.metadata.title == "Hello"
    assert result.screenshot_path == target
    assert target.read_bytes().startswith(b"\x89PNG")
    assert renderer.loaded == [A]
    assert renderer.closed


def test_inspect_url_gives_up_without_a_publish(monkeypatch, fast_config):
    renderer = page(A, "Hello")
    renderer.fail_scrape = True
    use_renderers(monkeypatch, renderer)
    config = dataclasses.replace(fast_config, publish_timeout=0.2)

    assert asyncio.run(session.inspect_url(MagicMock(), A, config)) is None
    assert renderer.closed


def test_run_inspect_keeps_successful_pages(monkeypatch, fast_config):
    broken = page(B, "Broken")
    broken.fail_scrape = True
    use_renderers(monkeypatch, page(A, "Fine"), broken)
    config = dataclasses.replace(fast_config, publish_timeout=0.2)

    results = asyncio.run(session.run_inspect(["a.example/", "b.example/"], config))

    assert [r.url for r in results] == [A]
    assert results[0].state.metadata.title == "Fine"


def test_watch_reports_head_mutations(monkeypatch, fast_config):
    renderer = page(A, "First")
    use_renderers(monkeypatch, renderer)
    seen = []

    async def scenario():
        watching = asyncio.ensure_future(session.watch_url("a.example/", fast_config, 0.6, seen.append))
        await poll(lambda: len(seen) >= 1)
        await asyncio.sleep(fast_config.url_change_delay + 0.05)
        renderer.pages[A]["meta"]["og:title"] = "Second"
        renderer.fire_channel(HEAD_CHANNEL)
        return await watching

    count = asyncio.run(scenario())

    assert count == len(seen) >= 2
    assert seen[0].metadata.title == "First"
    assert seen[-1].metadata.title == "Second"
    assert renderer.closed
