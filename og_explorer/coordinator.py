"""Navigation lifecycle coordination for metadata extraction runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Set

from .aggregator import aggregate, image_urls
from .config import ExplorerConfig
from .errors import ScrapeError
from .images import ImageResolver, RequestsImageFetcher
from .models import MetadataSnapshot, PageIdentity, PublishedState
from .publisher import LoadGatedPublisher, MetadataStore
from .renderer import LOADING_CHANGED, NAVIGATION_FINISHED, URL_CHANGED, Renderer
from .scraper import scrape
from .staleness import StalenessGuard
from .timers import DelayedTaskScheduler
from .utils import normalize_address
from .watcher import MutationWatcher

logger = logging.getLogger("og_explorer")

URL_CHANGE_KEY = "url-changed"


class MetadataExplorer:
    """Keeps a renderer's published metadata in step with the page it shows.

    Navigation finishes trigger an extraction right away; URL changes (client
    side routing included) trigger one after ``config.url_change_delay``; head
    mutations trigger one after the debounce window. Every run carries the
    page identity it was started for and is dropped if the page moved on.
    """

    def __init__(
        self,
        renderer: Renderer,
        config: Optional[ExplorerConfig] = None,
        resolver: Optional[ImageResolver] = None,
        store: Optional[MetadataStore] = None,
    ) -> None:
        self.renderer = renderer
        self.config = config or ExplorerConfig()
        self.resolver = resolver or ImageResolver(
            RequestsImageFetcher(
                timeout=self.config.fetch_timeout,
                max_bytes=self.config.max_image_bytes,
                user_agent=self.config.user_agent,
            )
        )
        self.store = store or MetadataStore()
        self.current_url = renderer.current_url
        self.guard = StalenessGuard(lambda: PageIdentity(self.current_url))
        self.publisher = LoadGatedPublisher(
            self.store,
            loading=renderer.is_loading,
            is_current=lambda snapshot: self.guard.is_current(PageIdentity(snapshot.metadata.source_url)),
        )
        self.scheduler = DelayedTaskScheduler()
        self.watcher = MutationWatcher(self.scheduler, self.request_extraction, self.config.head_debounce)
        self._runs: Set[asyncio.Task] = set()
        self._detach: list = []

    @property
    def state(self) -> PublishedState:
        return self.store.state

    def subscribe(self, callback: Callable[[PublishedState], None]) -> Callable[[], None]:
        return self.store.subscribe(callback)

    async def attach(self) -> None:
        """Listen to renderer events and install the head observer."""
        self._detach = [
            self.renderer.on(NAVIGATION_FINISHED, self.handle_navigation_finished),
            self.renderer.on(URL_CHANGED, self.handle_url_changed),
            self.renderer.on(LOADING_CHANGED, self.handle_loading_changed),
        ]
        await self.watcher.install(self.renderer)

    async def close(self) -> None:
        for detach in self._detach:
            detach()
        self._detach = []
        self.scheduler.cancel_all()
        await self.wait_idle()
        self.resolver.close()

    # Renderer events

    def handle_navigation_finished(self, url: Optional[str] = None) -> None:
        self.current_url = self.renderer.current_url
        logger.debug("Navigation finished: %s", self.current_url)
        self.request_extraction()

    def handle_url_changed(self, url: str) -> None:
        if url == self.current_url:
            return
        logger.debug("URL changed: %s -> %s", self.current_url, url)
        self.current_url = url
        self.scheduler.schedule(URL_CHANGE_KEY, self.config.url_change_delay, self.request_extraction)

    def handle_loading_changed(self, loading: bool) -> None:
        self.publisher.set_loading(loading)

    # Extraction runs

    def request_extraction(self) -> asyncio.Task:
        """Start one extraction run in the background."""
        task = asyncio.get_running_loop().create_task(self.run_extraction())
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait until every in-flight run has finished."""
        while self._runs:
            await asyncio.gather(*list(self._runs), return_exceptions=True)

    async def run_extraction(self) -> Optional[MetadataSnapshot]:
        """Scrape, prefetch images and submit the result unless it went stale."""
        try:
            document = await scrape(self.renderer)
        except ScrapeError as exc:
            logger.warning("Metadata scrape failed for %s: %s", self.current_url, exc)
            return None

        if not self.guard.accept(document):
            return None

        results = await self.resolver.resolve(image_urls(document))

        if not self.guard.accept(document):
            return None

        snapshot = aggregate(document, results)
        self.publisher.submit(snapshot)
        return snapshot

    # Browser controls

    async def load(self, address: str) -> None:
        url = normalize_address(address)
        if url:
            await self.renderer.load(url)

    async def go_back(self) -> None:
        await self.renderer.go_back()

    async def go_forward(self) -> None:
        await self.renderer.go_forward()

    async def reload(self) -> None:
        await self.renderer.reload()

    async def stop(self) -> None:
        await self.renderer.stop()

    async def screenshot(self) -> bytes:
        return await self.renderer.request_screenshot()
