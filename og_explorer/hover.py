"""Tooltip descriptions for icons and share images."""

from __future__ import annotations

from typing import List, Optional, Sequence

from .models import HoverInfo, ImageStatus, OGMetadata, PublishedState, ResolvedIcon
from .utils import is_well_formed_url

FAILED_TO_LOAD = "Failed to load"
MALFORMED_URL = "Malformed URL"
UNKNOWN_SIZE = "unknown size"
NOT_DEFINED = "Not defined"


def format_size(width: int, height: int) -> str:
    return f"{width}×{height}"


def icon_type_label(rel: str) -> str:
    rel = rel.lower()
    if "apple-touch-icon" in rel:
        return "Apple Touch Icon"
    if rel == "shortcut icon":
        return "Shortcut Icon"
    return "Icon"


def icon_display_size(icon: ResolvedIcon) -> int:
    return 48 if "apple-touch-icon" in icon.rel.lower() else 16


def parse_declared_size(sizes: str) -> Optional[int]:
    """Width from a ``sizes`` attribute such as ``180x180``; None for ``any``."""
    if not sizes or sizes.lower() == "any":
        return None
    parts = sizes.lower().split("x")
    if len(parts) != 2 or not parts[0].isdigit():
        return None
    return int(parts[0])


def sort_icons(icons: Sequence[ResolvedIcon]) -> List[ResolvedIcon]:
    """Touch icons before favicons, each group largest first.

    Icons that did not load are ranked by their declared ``sizes``.
    """

    def width(icon: ResolvedIcon) -> int:
        return icon.pixel_width or parse_declared_size(icon.sizes) or 0

    touch = [icon for icon in icons if icon_display_size(icon) == 48]
    favicons = [icon for icon in icons if icon_display_size(icon) != 48]
    return sorted(touch, key=width, reverse=True) + sorted(favicons, key=width, reverse=True)


def hover_for_icon(icon: ResolvedIcon) -> HoverInfo:
    if icon.pixel_width is not None and icon.pixel_height is not None:
        size, warning = format_size(icon.pixel_width, icon.pixel_height), None
    elif icon.status is ImageStatus.MALFORMED:
        size, warning = "", MALFORMED_URL
    elif icon.image is None:
        size, warning = "", FAILED_TO_LOAD
    else:
        size, warning = UNKNOWN_SIZE, None
    return HoverInfo(
        type=icon_type_label(icon.rel),
        size=size,
        raw_tag=icon.raw_tag,
        warning=warning,
        image=icon.image,
        display_size=icon_display_size(icon),
    )


def _share_image_size(src: str, metadata: OGMetadata) -> str:
    if src == metadata.twitter_image and metadata.twitter_image_width is not None \
            and metadata.twitter_image_height is not None:
        return format_size(metadata.twitter_image_width, metadata.twitter_image_height)
    if src == metadata.image_url and metadata.image_width is not None \
            and metadata.image_height is not None:
        return format_size(metadata.image_width, metadata.image_height)
    return UNKNOWN_SIZE


def hover_for_share_image(state: PublishedState, twitter: bool = False) -> HoverInfo:
    """Tooltip for the og:image (or twitter:image) of the published page."""
    metadata = state.metadata
    if twitter:
        kind, src, tag = "twitter:image", metadata.twitter_image, metadata.twitter_image_tag
        prefetched = state.twitter_image
    else:
        kind, src, tag = "og:image", metadata.image_url, metadata.image_tag
        prefetched = state.og_image

    if not src and not tag:
        return HoverInfo(type=kind, size="", raw_tag=NOT_DEFINED)
    raw_tag = tag or src
    if not is_well_formed_url(src):
        return HoverInfo(type=kind, size="", raw_tag=raw_tag, warning=MALFORMED_URL)
    if prefetched is None:
        return HoverInfo(type=kind, size="", raw_tag=raw_tag, warning=FAILED_TO_LOAD, image_url=src)
    return HoverInfo(
        type=kind,
        size=_share_image_size(src, metadata),
        raw_tag=raw_tag,
        image=prefetched,
        image_url=src,
    )
