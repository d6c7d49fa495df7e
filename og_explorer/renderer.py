"""Page renderer capability and its Playwright implementation."""

from __future__ import annotations

import abc
import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, DefaultDict, List, Optional, Set

from playwright.async_api import (
    Browser,
    CDPSession,
    Download,
    Error as PlaywrightError,
    Frame,
    Page,
    Playwright,
    Request,
)

from .config import ExplorerConfig
from .errors import RendererError

logger = logging.getLogger("og_explorer")

NAVIGATION_FINISHED = "navigation-finished"
URL_CHANGED = "url-changed"
LOADING_CHANGED = "loading-changed"

# Responses that end a navigation without replacing the document.
NO_CONTENT_STATUSES = (204, 205)
BLANK_URL = "about:blank"

Handler = Callable[..., None]


class Renderer(abc.ABC):
    """What the metadata pipeline needs from an embedded page renderer.

    Events: ``navigation-finished`` (url), ``url-changed`` (url) and
    ``loading-changed`` (is_loading).
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        self._handlers[event].append(handler)

        def remove() -> None:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return remove

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers[event]):
            try:
                handler(*args)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Handler for %s failed", event)

    @property
    @abc.abstractmethod
    def current_url(self) -> str:
        ...

    @property
    @abc.abstractmethod
    def is_loading(self) -> bool:
        ...

    @abc.abstractmethod
    async def load(self, url: str) -> None:
        ...

    @abc.abstractmethod
    async def go_back(self) -> None:
        ...

    @abc.abstractmethod
    async def go_forward(self) -> None:
        ...

    @abc.abstractmethod
    async def reload(self) -> None:
        ...

    @abc.abstractmethod
    async def stop(self) -> None:
        ...

    @abc.abstractmethod
    async def can_go_back(self) -> bool:
        ...

    @abc.abstractmethod
    async def can_go_forward(self) -> bool:
        ...

    @abc.abstractmethod
    async def execute_script(self, script: str) -> str:
        """Evaluate ``script`` in the page; returns its result as a JSON string."""

    @abc.abstractmethod
    async def request_screenshot(self) -> bytes:
        ...

    @abc.abstractmethod
    async def register_message_channel(self, name: str, handler: Callable[[Any], None]) -> None:
        ...

    @abc.abstractmethod
    async def add_init_script(self, script: str) -> None:
        ...


class PlaywrightRenderer(Renderer):
    """Renderer backed by a Playwright page (Chromium)."""

    def __init__(self, page: Page, navigation_timeout: float = 30.0) -> None:
        super().__init__()
        self.page = page
        self._browser: Optional[Browser] = None
        self._cdp: Optional[CDPSession] = None
        self._loading = False
        self._tasks: Set[asyncio.Task] = set()
        page.set_default_navigation_timeout(navigation_timeout * 1000)
        page.on("request", self._on_request)
        page.on("requestfinished", self._on_request_finished)
        page.on("requestfailed", self._on_request_failed)
        page.on("download", self._on_download)
        page.on("popup", self._on_popup)
        page.on("framenavigated", self._on_frame_navigated)
        page.on("load", self._on_load)

    @classmethod
    async def launch(cls, playwright: Playwright, config: ExplorerConfig) -> "PlaywrightRenderer":
        browser = await playwright.chromium.launch(headless=config.headless)
        context = await browser.new_context(user_agent=config.user_agent)
        page = await context.new_page()
        renderer = cls(page, navigation_timeout=config.navigation_timeout)
        renderer._browser = browser
        return renderer

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.wait_idle()
        if self._browser is not None:
            await self._browser.close()
            self._browser = None

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait for event follow-ups (popup adoption, response checks) to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _is_main_frame(self, frame: Frame) -> bool:
        return frame == self.page.main_frame

    def _is_main_navigation(self, request: Request) -> bool:
        try:
            return request.is_navigation_request() and self._is_main_frame(request.frame)
        except PlaywrightError:
            # Service worker requests have no frame.
            return False

    def _set_loading(self, loading: bool) -> None:
        if loading == self._loading:
            return
        self._loading = loading
        self.emit(LOADING_CHANGED, loading)

    def _on_request(self, request: Request) -> None:
        if self._is_main_navigation(request):
            self._set_loading(True)

    def _on_request_finished(self, request: Request) -> None:
        if self._is_main_navigation(request):
            self._spawn(self._settle_if_uncommitted(request))

    async def _settle_if_uncommitted(self, request: Request) -> None:
        try:
            response = await request.response()
        except PlaywrightError:
            response = None
        if response is None or response.status in NO_CONTENT_STATUSES:
            logger.debug("Navigation to %s did not commit", request.url)
            self._set_loading(False)

    def _on_request_failed(self, request: Request) -> None:
        if self._is_main_navigation(request):
            logger.warning("Navigation to %s failed: %s", request.url, request.failure)
            self._set_loading(False)

    def _on_download(self, download: Download) -> None:
        logger.info("Navigation turned into a download: %s", download.url)
        self._set_loading(False)

    def _on_popup(self, popup: Page) -> None:
        self._spawn(self._adopt_popup(popup))

    async def _adopt_popup(self, popup: Page) -> None:
        """Load a popup or target=_blank navigation in this page instead."""
        try:
            await popup.wait_for_url(lambda url: url != BLANK_URL, wait_until="commit")
        except PlaywrightError as exc:
            logger.debug("Popup never navigated: %s", exc)
        url = popup.url
        try:
            await popup.close()
        except PlaywrightError as exc:
            logger.debug("Could not close popup: %s", exc)
        if not url or url == BLANK_URL:
            return
        try:
            await self.load(url)
        except RendererError as exc:
            logger.warning("%s", exc)

    def _on_frame_navigated(self, frame: Frame) -> None:
        if self._is_main_frame(frame):
            self.emit(URL_CHANGED, frame.url)

    def _on_load(self, page: Page) -> None:
        self.emit(NAVIGATION_FINISHED, page.url)
        self._set_loading(False)

    @property
    def current_url(self) -> str:
        return self.page.url

    @property
    def is_loading(self) -> bool:
        return self._loading

    async def load(self, url: str) -> None:
        logger.info("Loading %s", url)
        try:
            await self.page.goto(url, wait_until="commit")
        except PlaywrightError as exc:
            self._set_loading(False)
            raise RendererError(f"Could not load {url}: {exc}") from exc

    async def go_back(self) -> None:
        await self._navigate(self.page.go_back)

    async def go_forward(self) -> None:
        await self._navigate(self.page.go_forward)

    async def reload(self) -> None:
        await self._navigate(self.page.reload)

    async def _navigate(self, action) -> None:
        try:
            await action(wait_until="commit")
        except PlaywrightError as exc:
            raise RendererError(str(exc)) from exc

    async def stop(self) -> None:
        await self.execute_script("window.stop()")
        self._set_loading(False)

    async def _history(self) -> Optional[dict]:
        try:
            if self._cdp is None:
                self._cdp = await self.page.context.new_cdp_session(self.page)
            return await self._cdp.send("Page.getNavigationHistory")
        except PlaywrightError as exc:
            logger.debug("Navigation history unavailable: %s", exc)
            return None

    async def can_go_back(self) -> bool:
        history = await self._history()
        return bool(history) and history["currentIndex"] > 0

    async def can_go_forward(self) -> bool:
        history = await self._history()
        return bool(history) and history["currentIndex"] < len(history["entries"]) - 1

    async def execute_script(self, script: str) -> str:
        try:
            result = await self.page.evaluate(script)
        except PlaywrightError as exc:
            raise RendererError(f"Script evaluation failed: {exc}") from exc
        return result if isinstance(result, str) else json.dumps(result)

    async def request_screenshot(self) -> bytes:
        try:
            return await self.page.screenshot(type="png")
        except PlaywrightError as exc:
            raise RendererError(f"Screenshot failed: {exc}") from exc

    async def register_message_channel(self, name: str, handler: Callable[[Any], None]) -> None:
        await self.page.expose_function(name, handler)

    async def add_init_script(self, script: str) -> None:
        await self.page.add_init_script(script=script)
