"""Image prefetching, decoding and dimension resolution."""

from __future__ import annotations

import asyncio
import io
import logging
import re
import threading
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import requests
from bs4 import BeautifulSoup
from filetype import guess
from PIL import Image, UnidentifiedImageError

from .config import DEFAULT_USER_AGENT
from .errors import ImageDecodeError, ImageFetchError
from .models import ImageResult, ImageStatus
from .utils import is_well_formed_url

logger = logging.getLogger("og_explorer")

SVG_SNIFF_BYTES = 2048
POINTS_PER_INCH = 72.0
LENGTH_PATTERN = re.compile(r"^\s*([0-9]*\.?[0-9]+)\s*(px)?\s*$")

Fetcher = Callable[[str], bytes]


@dataclass(frozen=True)
class DecodedImage:
    """Size information read from image bytes.

    ``pixel_*`` comes from the raster representation and is 0 for vector
    formats. ``point_*`` is the logical size.
    """

    format: str
    pixel_width: int
    pixel_height: int
    point_width: float
    point_height: float


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    if looks_like_svg(data):
        return "svg"
    return None


def looks_like_svg(data: bytes) -> bool:
    head = data[:SVG_SNIFF_BYTES].lstrip().lower()
    if head.startswith(b"<svg"):
        return True
    if not head.startswith((b"<?xml", b"<!doctype svg", b"<!--")):
        return False
    svg_at = head.find(b"<svg")
    if svg_at < 0:
        return False
    # An HTML page with an inline icon is not an SVG document.
    return all(not 0 <= head.find(marker) < svg_at for marker in (b"<html", b"<body"))


def _parse_length(value: Optional[str]) -> float:
    if not value:
        return 0.0
    match = LENGTH_PATTERN.match(value)
    return float(match.group(1)) if match else 0.0


def decode_svg(data: bytes) -> DecodedImage:
    soup = BeautifulSoup(data, "html.parser")
    root = soup.find("svg")
    if root is None:
        raise ImageDecodeError("No <svg> root element")
    width = _parse_length(root.get("width"))
    height = _parse_length(root.get("height"))
    if not (width and height):
        view_box = (root.get("viewbox") or root.get("viewBox") or "").replace(",", " ").split()
        if len(view_box) == 4:
            try:
                width = width or float(view_box[2])
                height = height or float(view_box[3])
            except ValueError:
                pass
    return DecodedImage("svg", 0, 0, max(width, 0.0), max(height, 0.0))


def decode_raster(data: bytes) -> DecodedImage:
    try:
        with Image.open(io.BytesIO(data)) as image:
            width, height = image.size
            image_format = (image.format or "").lower()
            dpi = image.info.get("dpi")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise ImageDecodeError(str(exc)) from exc
    point_width, point_height = float(width), float(height)
    if isinstance(dpi, tuple) and len(dpi) == 2 and all(dpi):
        point_width = width * POINTS_PER_INCH / float(dpi[0])
        point_height = height * POINTS_PER_INCH / float(dpi[1])
    return DecodedImage(image_format or "raster", width, height, point_width, point_height)


def decode_image(data: bytes) -> DecodedImage:
    """Decode image bytes; raises :class:`ImageDecodeError` when undecodable."""
    if not data:
        raise ImageDecodeError("Empty response body")
    if detect_image_format(data) == "svg":
        return decode_svg(data)
    return decode_raster(data)


def resolve_dimensions(decoded: DecodedImage) -> Tuple[Optional[int], Optional[int]]:
    """Pixel size when the raster reports one, else logical size, else None."""

    def axis(pixels: int, points: float) -> Optional[int]:
        if pixels > 0:
            return pixels
        if points > 0:
            return int(points)
        return None

    return (
        axis(decoded.pixel_width, decoded.point_width),
        axis(decoded.pixel_height, decoded.point_height),
    )


class RequestsImageFetcher:
    """Downloads image bytes; each worker thread gets its own requests session."""

    def __init__(
        self,
        timeout: float = 15.0,
        max_bytes: int = 10 * 1024 * 1024,
        user_agent: str = DEFAULT_USER_AGENT,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.user_agent = user_agent
        self.session_factory = session_factory
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self.session_factory()
            session.headers["User-Agent"] = self.user_agent
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def __call__(self, url: str) -> bytes:
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ImageFetchError(f"Failed to fetch {url}: {exc}") from exc
        data = resp.content
        if len(data) > self.max_bytes:
            raise ImageFetchError(f"{url} is larger than {self.max_bytes} bytes")
        return data

    def close(self) -> None:
        """Close every session opened by the worker threads."""
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()


class ImageResolver:
    """Fans out one fetch per unique URL and joins on all of them."""

    def __init__(self, fetcher: Optional[Fetcher] = None, executor: Optional[Executor] = None) -> None:
        self.fetcher = fetcher or RequestsImageFetcher()
        self.executor = executor

    def _load(self, url: str) -> ImageResult:
        # Runs on a worker thread; must not touch shared state.
        try:
            data = self.fetcher(url)
            decoded = decode_image(data)
        except (ImageFetchError, ImageDecodeError) as exc:
            logger.debug("Image %s unresolved: %s", url, exc)
            return ImageResult(url=url, status=ImageStatus.FAILED)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unexpected error prefetching %s", url)
            return ImageResult(url=url, status=ImageStatus.FAILED)
        width, height = resolve_dimensions(decoded)
        return ImageResult(
            url=url,
            status=ImageStatus.LOADED,
            data=data,
            format=decoded.format,
            width=width,
            height=height,
        )

    async def resolve(self, urls: Iterable[str]) -> Dict[str, ImageResult]:
        """Prefetch every URL; returns once all fetches have finished."""
        unique: List[str] = []
        results: Dict[str, ImageResult] = {}
        for url in urls:
            if not url or url in results or url in unique:
                continue
            if not is_well_formed_url(url):
                results[url] = ImageResult(url=url, status=ImageStatus.MALFORMED)
                continue
            unique.append(url)

        if unique:
            loop = asyncio.get_running_loop()
            outcomes = await asyncio.gather(
                *(loop.run_in_executor(self.executor, self._load, url) for url in unique)
            )
            results.update(zip(unique, outcomes))

        failed = sum(1 for result in results.values() if not result.loaded)
        logger.debug("Prefetched %d images (%d unresolved)", len(results), failed)
        return results

    def close(self) -> None:
        close = getattr(self.fetcher, "close", None)
        if close is not None:
            close()


def first_resolved(url: str, results: Dict[str, ImageResult]) -> Optional[ImageResult]:
    """The result for an image slot, only if both dimensions resolved."""
    result = results.get(url) if url else None
    if result is not None and result.loaded and result.has_dimensions:
        return result
    return None
