"""High-level orchestration for inspecting and watching pages."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import requests
from playwright.async_api import Playwright, async_playwright

from .aggregator import aggregate, image_urls
from .config import ExplorerConfig
from .content import scrape_html
from .coordinator import MetadataExplorer
from .errors import ExplorerError, RendererError
from .images import ImageResolver, RequestsImageFetcher
from .models import PublishedState
from .publisher import MetadataStore
from .renderer import PlaywrightRenderer
from .scraper import build_document, parse_payload
from .utils import normalize_address

logger = logging.getLogger("og_explorer")


@dataclass
class InspectResult:
    """Published state and timing for one inspected URL."""

    url: str
    state: PublishedState
    total_seconds: float
    screenshot_path: Optional[Path] = None


def _fetcher(config: ExplorerConfig) -> RequestsImageFetcher:
    return RequestsImageFetcher(
        timeout=config.fetch_timeout,
        max_bytes=config.max_image_bytes,
        user_agent=config.user_agent,
    )


async def _wait_for_publish(explorer: MetadataExplorer, timeout: float) -> bool:
    published = asyncio.Event()
    unsubscribe = explorer.subscribe(lambda state: published.set())
    try:
        await asyncio.wait_for(published.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False
    finally:
        unsubscribe()


async def inspect_url(
    playwright: Playwright,
    url: str,
    config: ExplorerConfig,
    screenshot_path: Optional[Path] = None,
) -> Optional[InspectResult]:
    """Load a URL in a fresh browser and return the first published metadata."""
    start = time.perf_counter()
    renderer = await PlaywrightRenderer.launch(playwright, config)
    explorer = MetadataExplorer(renderer, config, ImageResolver(_fetcher(config)))
    try:
        await explorer.attach()
        try:
            await explorer.load(url)
        except RendererError as exc:
            logger.error("Failed to load %s: %s", url, exc)
            return None
        if not await _wait_for_publish(explorer, config.publish_timeout):
            logger.error("No metadata published for %s within %.1fs", url, config.publish_timeout)
            return None
        if config.wait_after_load:
            await asyncio.sleep(config.wait_after_load)
        await explorer.wait_idle()
        if screenshot_path is not None:
            screenshot_path.parent.mkdir(parents=True, exist_ok=True)
            screenshot_path.write_bytes(await explorer.screenshot())
            logger.info("Saved screenshot to %s", screenshot_path)
        return InspectResult(
            url=url,
            state=explorer.state,
            total_seconds=time.perf_counter() - start,
            screenshot_path=screenshot_path,
        )
    finally:
        await explorer.close()
        await renderer.close()


async def run_inspect(
    urls: List[str],
    config: ExplorerConfig,
    screenshot_dir: Optional[Path] = None,
) -> List[InspectResult]:
    """Inspect each URL sequentially."""
    results: List[InspectResult] = []
    async with async_playwright() as playwright:
        for index, url in enumerate(urls, start=1):
            screenshot_path = screenshot_dir / f"page-{index:02d}.png" if screenshot_dir else None
            try:
                result = await inspect_url(playwright, normalize_address(url), config, screenshot_path)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Unexpected error inspecting %s", url)
                continue
            if result:
                results.append(result)
    return results


async def watch_url(
    url: str,
    config: ExplorerConfig,
    duration: float,
    on_publish: Callable[[PublishedState], None],
) -> int:
    """Keep a page open for ``duration`` seconds, reporting every publish."""
    count = 0

    def record(state: PublishedState) -> None:
        nonlocal count
        count += 1
        on_publish(state)

    async with async_playwright() as playwright:
        renderer = await PlaywrightRenderer.launch(playwright, config)
        explorer = MetadataExplorer(renderer, config, ImageResolver(_fetcher(config)))
        unsubscribe = explorer.subscribe(record)
        try:
            await explorer.attach()
            await explorer.load(normalize_address(url))
            await asyncio.sleep(duration)
        finally:
            unsubscribe()
            await explorer.close()
            await renderer.close()
    return count


async def inspect_static(url: str, config: ExplorerConfig) -> Optional[InspectResult]:
    """Fetch raw HTML with requests and run it through the same pipeline."""
    start = time.perf_counter()
    url = normalize_address(url)
    loop = asyncio.get_running_loop()
    try:
        resp = await loop.run_in_executor(
            None,
            lambda: requests.get(
                url,
                timeout=config.navigation_timeout,
                headers={"User-Agent": config.user_agent},
            ),
        )
        resp.raise_for_status()
    except requests.RequestException as exc:
        logger.error("Failed to fetch %s: %s", url, exc)
        return None

    try:
        document = build_document(parse_payload(scrape_html(resp.text, resp.url)))
    except ExplorerError as exc:
        logger.error("Could not parse metadata from %s: %s", url, exc)
        return None

    resolver = ImageResolver(_fetcher(config))
    try:
        results = await resolver.resolve(image_urls(document))
    finally:
        resolver.close()
    store = MetadataStore()
    store.publish(aggregate(document, results))
    return InspectResult(url=url, state=store.state, total_seconds=time.perf_counter() - start)
