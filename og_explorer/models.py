"""Data models used throughout the metadata pipeline."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .utils import RGBColor, WHITE, humanize_language


@dataclass(frozen=True)
class PageIdentity:
    """URL of the page an extraction run was issued for."""

    url: str

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class IconDeclaration:
    """One icon-like ``<link>`` tag, or a synthesized default."""

    url: str
    sizes: str
    rel: str
    raw_tag: str


@dataclass(frozen=True)
class RawMetadataDocument:
    """Scraper output for a single extraction run."""

    page_identity: PageIdentity
    title: str = ""
    description: str = ""
    image_url: str = ""
    image_tag: str = ""
    twitter_title: str = ""
    twitter_description: str = ""
    twitter_image: str = ""
    twitter_image_tag: str = ""
    favicon_url: str = ""
    icons: Tuple[IconDeclaration, ...] = ()
    theme_color: str = ""
    canonical: str = ""
    robots: str = ""
    keywords: str = ""
    generator: str = ""
    lang: str = ""
    has_pwa: bool = False
    has_viewport: bool = False
    background_color: str = ""


class ImageStatus(enum.Enum):
    LOADED = "loaded"
    FAILED = "failed"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class ImageResult:
    """Outcome of prefetching one image URL."""

    url: str
    status: ImageStatus
    data: Optional[bytes] = None
    format: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def loaded(self) -> bool:
        return self.status is ImageStatus.LOADED

    @property
    def has_dimensions(self) -> bool:
        return self.width is not None and self.height is not None


@dataclass(eq=False)
class ResolvedIcon:
    """Icon declaration plus whatever the prefetch learned about it.

    Two icons compare equal when their declarations match; the prefetched
    image and resolved dimensions are ignored so repeated extractions of the
    same markup diff as unchanged.
    """

    url: str
    sizes: str
    rel: str
    raw_tag: str
    image: Optional[ImageResult] = None
    pixel_width: Optional[int] = None
    pixel_height: Optional[int] = None
    status: Optional[ImageStatus] = None

    @classmethod
    def from_declaration(
        cls,
        declaration: IconDeclaration,
        result: Optional[ImageResult] = None,
    ) -> "ResolvedIcon":
        icon = cls(
            url=declaration.url,
            sizes=declaration.sizes,
            rel=declaration.rel,
            raw_tag=declaration.raw_tag,
        )
        if result is None:
            return icon
        icon.status = result.status
        if result.loaded:
            icon.image = result
            icon.pixel_width = result.width
            icon.pixel_height = result.height
        return icon

    def _key(self) -> Tuple[str, str, str, str]:
        return (self.url, self.sizes, self.rel, self.raw_tag)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResolvedIcon):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "sizes": self.sizes,
            "rel": self.rel,
            "raw_tag": self.raw_tag,
            "loaded": self.image is not None,
            "status": self.status.value if self.status else None,
            "pixel_width": self.pixel_width,
            "pixel_height": self.pixel_height,
        }


@dataclass
class OGMetadata:
    """Canonical metadata model observed by the presentation layer."""

    title: str = ""
    description: str = ""
    image_url: str = ""
    image_tag: str = ""
    twitter_title: str = ""
    twitter_description: str = ""
    twitter_image: str = ""
    twitter_image_tag: str = ""
    favicon_url: str = ""
    icons: List[ResolvedIcon] = field(default_factory=list)
    theme_color: str = ""
    canonical: str = ""
    robots: str = ""
    keywords: str = ""
    generator: str = ""
    lang: str = ""
    has_pwa: bool = False
    has_viewport: bool = False
    host: str = ""
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    twitter_image_width: Optional[int] = None
    twitter_image_height: Optional[int] = None
    source_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["icons"] = [icon.to_dict() for icon in self.icons]
        data["language"] = humanize_language(self.lang)
        return data


@dataclass(frozen=True)
class MetadataSnapshot:
    """Everything one accepted extraction run hands to the publisher."""

    metadata: OGMetadata
    background_color: Optional[RGBColor] = None
    og_image: Optional[ImageResult] = None
    twitter_image: Optional[ImageResult] = None
    favicon_image: Optional[ImageResult] = None


@dataclass(frozen=True)
class PublishedState:
    """The state presentation code reads; replaced wholesale on every publish."""

    metadata: OGMetadata = field(default_factory=OGMetadata)
    background_color: RGBColor = WHITE
    og_image: Optional[ImageResult] = None
    twitter_image: Optional[ImageResult] = None
    favicon_image: Optional[ImageResult] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = self.metadata.to_dict()
        data["background_color"] = self.background_color.hex
        return data


@dataclass(frozen=True)
class HoverInfo:
    """Tooltip content for an icon or share image."""

    type: str
    size: str
    raw_tag: str
    warning: Optional[str] = None
    image: Optional[ImageResult] = None
    image_url: Optional[str] = None
    display_size: Optional[int] = None
