import asyncio
import copy
import io
import json
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import pytest
from PIL import Image

from og_explorer.config import ExplorerConfig
from og_explorer.errors import ImageFetchError, RendererError
from og_explorer.renderer import LOADING_CHANGED, NAVIGATION_FINISHED, URL_CHANGED, Renderer
from og_explorer.scraper import META_NAMES, META_TAG_NAMES, SCRAPE_SCRIPT, SCRAPE_SCHEMA_VERSION
from og_explorer.utils import origin_of


def make_payload(
    page_url: str,
    meta: Optional[Dict[str, str]] = None,
    tags: Optional[Dict[str, str]] = None,
    icons: Optional[List[Dict[str, str]]] = None,
    **fields: Any,
) -> Dict[str, Any]:
    """A schema-1 scrape payload as the in-page script would return it."""
    payload: Dict[str, Any] = {
        "schema": SCRAPE_SCHEMA_VERSION,
        "pageURL": page_url,
        "origin": origin_of(page_url),
        "documentTitle": "",
        "meta": {name: "" for name in META_NAMES},
        "metaTags": {name: "" for name in META_TAG_NAMES},
        "icons": icons or [],
        "canonical": "",
        "lang": "",
        "hasManifest": False,
        "hasViewport": False,
        "framework": "",
        "backgroundColor": "rgb(255, 255, 255)",
    }
    payload["meta"].update(meta or {})
    payload["metaTags"].update(tags or {})
    payload.update(fields)
    return payload


def png_bytes(width: int, height: int, dpi: Optional[tuple] = None) -> bytes:
    buffer = io.BytesIO()
    image = Image.new("RGB", (width, height), (200, 30, 30))
    if dpi:
        image.save(buffer, format="PNG", dpi=dpi)
    else:
        image.save(buffer, format="PNG")
    return buffer.getvalue()


class FakeRenderer(Renderer):
    """Scripted renderer: each URL maps to the payload its page would scrape to."""

    def __init__(self, url: str = "https://example.com/", loading: bool = False) -> None:
        super().__init__()
        self.url = url
        self.loading = loading
        self.pages: Dict[str, Dict[str, Any]] = {}
        self.scrape_calls = 0
        self.scripts: List[str] = []
        self.init_scripts: List[str] = []
        self.channels: Dict[str, Callable[[Any], None]] = {}
        self.fail_scrape = False
        self.raw_result: Optional[str] = None
        self.loaded: List[str] = []
        self.closed = False

    @property
    def current_url(self) -> str:
        return self.url

    @property
    def is_loading(self) -> bool:
        return self.loading

    def navigate(self, url: str, finish: bool = True) -> None:
        self.loading = True
        self.emit(LOADING_CHANGED, True)
        self.url = url
        self.emit(URL_CHANGED, url)
        if finish:
            self.finish()

    def finish(self) -> None:
        self.emit(NAVIGATION_FINISHED, self.url)
        self.loading = False
        self.emit(LOADING_CHANGED, False)

    def fire_channel(self, name: str, message: Any = "changed") -> None:
        self.channels[name](message)

    async def load(self, url: str) -> None:
        self.loaded.append(url)
        self.navigate(url)

    async def go_back(self) -> None:
        pass

    async def go_forward(self) -> None:
        pass

    async def reload(self) -> None:
        self.navigate(self.url)

    async def stop(self) -> None:
        self.loading = False
        self.emit(LOADING_CHANGED, False)

    async def can_go_back(self) -> bool:
        return len(self.loaded) > 1

    async def can_go_forward(self) -> bool:
        return False

    async def execute_script(self, script: str) -> str:
        self.scripts.append(script)
        if script != SCRAPE_SCRIPT:
            return "null"
        self.scrape_calls += 1
        if self.fail_scrape:
            raise RendererError("page crashed")
        if self.raw_result is not None:
            return self.raw_result
        return json.dumps(copy.deepcopy(self.pages[self.url]))

    async def request_screenshot(self) -> bytes:
        return png_bytes(4, 4)

    async def register_message_channel(self, name: str, handler: Callable[[Any], None]) -> None:
        self.channels[name] = handler

    async def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    async def close(self) -> None:
        self.closed = True


class FakeFetcher:
    """Image fetcher serving canned bytes; unknown URLs fail."""

    def __init__(
        self,
        images: Optional[Dict[str, bytes]] = None,
        delays: Optional[Dict[str, float]] = None,
        default: Optional[bytes] = None,
    ) -> None:
        self.images = images or {}
        self.delays = delays or {}
        self.default = default
        self.calls: List[str] = []
        self.finished: List[str] = []
        self._lock = threading.Lock()
        self.closed = False

    def __call__(self, url: str) -> bytes:
        with self._lock:
            self.calls.append(url)
        delay = self.delays.get(url)
        if delay:
            time.sleep(delay)
        try:
            if url in self.images:
                return self.images[url]
            if self.default is not None:
                return self.default
            raise ImageFetchError(f"404 for {url}")
        finally:
            with self._lock:
                self.finished.append(url)

    def close(self) -> None:
        self.closed = True


def icon_entry(href: str, rel: str = "icon", sizes: str = "") -> Dict[str, str]:
    sizes_attr = f' sizes="{sizes}"' if sizes else ""
    return {
        "href": href,
        "sizes": sizes,
        "rel": rel,
        "rawTag": f'<link rel="{rel}" href="{href}"{sizes_attr}>',
    }


async def poll(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate`` holds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture()
def fast_config() -> ExplorerConfig:
    return ExplorerConfig(head_debounce=0.1, url_change_delay=0.05, publish_timeout=2.0)
