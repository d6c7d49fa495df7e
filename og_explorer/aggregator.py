"""Builds the published metadata model from a scrape and its prefetched images."""

from __future__ import annotations

from typing import Dict, List, Optional

from .images import first_resolved
from .models import ImageResult, MetadataSnapshot, OGMetadata, RawMetadataDocument, ResolvedIcon
from .utils import host_of, parse_css_color


def _loaded(results: Dict[str, ImageResult], url: str) -> Optional[ImageResult]:
    result = results.get(url) if url else None
    return result if result is not None and result.loaded else None


def image_urls(document: RawMetadataDocument) -> List[str]:
    """Every URL a run prefetches: share images, favicon, then each icon."""
    urls = [document.image_url, document.twitter_image, document.favicon_url]
    urls.extend(icon.url for icon in document.icons)
    return [url for url in urls if url]


def aggregate(document: RawMetadataDocument, results: Dict[str, ImageResult]) -> MetadataSnapshot:
    icons = [ResolvedIcon.from_declaration(icon, results.get(icon.url)) for icon in document.icons]
    source_url = document.page_identity.url
    metadata = OGMetadata(
        title=document.title,
        description=document.description,
        image_url=document.image_url,
        image_tag=document.image_tag,
        twitter_title=document.twitter_title,
        twitter_description=document.twitter_description,
        twitter_image=document.twitter_image,
        twitter_image_tag=document.twitter_image_tag,
        favicon_url=document.favicon_url,
        icons=icons,
        theme_color=document.theme_color,
        canonical=document.canonical,
        robots=document.robots,
        keywords=document.keywords,
        generator=document.generator,
        lang=document.lang,
        has_pwa=document.has_pwa,
        has_viewport=document.has_viewport,
        host=host_of(source_url),
        source_url=source_url,
    )

    sized = first_resolved(document.image_url, results)
    if sized is not None:
        metadata.image_width, metadata.image_height = sized.width, sized.height
    sized = first_resolved(document.twitter_image, results)
    if sized is not None:
        metadata.twitter_image_width, metadata.twitter_image_height = sized.width, sized.height

    return MetadataSnapshot(
        metadata=metadata,
        background_color=parse_css_color(document.background_color),
        og_image=_loaded(results, document.image_url),
        twitter_image=_loaded(results, document.twitter_image),
        favicon_image=_loaded(results, document.favicon_url),
    )
