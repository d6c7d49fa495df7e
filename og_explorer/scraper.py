"""In-page metadata scrape and the schema it returns.

The script executed inside the page only collects raw values: meta contents,
icon links, a framework fingerprint and the sampled background colour. Field
precedence, icon defaults and URL resolution happen in :func:`build_document`
so the same rules apply to payloads produced from static HTML
(:mod:`og_explorer.content`).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping

from .errors import RendererError, ScrapeError, ScrapeSchemaError
from .models import IconDeclaration, PageIdentity, RawMetadataDocument
from .utils import origin_of, resolve_href

logger = logging.getLogger("og_explorer")

SCRAPE_SCHEMA_VERSION = 1

META_NAMES = (
    "og:title",
    "og:description",
    "og:image",
    "description",
    "twitter:title",
    "twitter:description",
    "twitter:image",
    "twitter:image:src",
    "theme-color",
    "robots",
    "googlebot",
    "keywords",
    "generator",
)
META_TAG_NAMES = ("og:image", "twitter:image", "twitter:image:src")
ICON_RELS = ("icon", "shortcut icon", "apple-touch-icon", "apple-touch-icon-precomposed")
FAVICON_RELS = ("icon", "shortcut icon")

DEFAULT_FAVICON = IconDeclaration(
    url="/favicon.ico",
    sizes="",
    rel="shortcut icon",
    raw_tag='<link rel="shortcut icon" href="/favicon.ico">',
)
DEFAULT_TOUCH_ICON = IconDeclaration(
    url="/apple-touch-icon.png",
    sizes="180x180",
    rel="apple-touch-icon",
    raw_tag='<link rel="apple-touch-icon" href="/apple-touch-icon.png">',
)
DEFAULT_BACKGROUND = "rgb(255, 255, 255)"

SCRAPE_SCRIPT = """
(() => {
    const META_NAMES = %(meta_names)s;
    const META_TAG_NAMES = %(meta_tag_names)s;
    const ICON_RELS = %(icon_rels)s;
    function metaElement(name) {
        return document.querySelector('meta[property="' + name + '"]') ||
               document.querySelector('meta[name="' + name + '"]');
    }
    const meta = {};
    META_NAMES.forEach((name) => {
        const el = metaElement(name);
        meta[name] = el ? (el.getAttribute('content') || '') : '';
    });
    const metaTags = {};
    META_TAG_NAMES.forEach((name) => {
        const el = metaElement(name);
        metaTags[name] = el ? el.outerHTML : '';
    });
    const selector = ICON_RELS.map((rel) => 'link[rel="' + rel + '"]').join(', ');
    const icons = Array.from(document.querySelectorAll(selector)).map((el) => ({
        href: el.getAttribute('href') || '',
        sizes: el.getAttribute('sizes') || '',
        rel: el.getAttribute('rel') || '',
        rawTag: el.outerHTML,
    }));
    const q = (s) => document.querySelector(s);
    let framework = '';
    if (!meta['generator']) {
        if (q('script#__NEXT_DATA__') || q('script[src*="/_next/"]') ||
            typeof self.__next_f !== 'undefined' ||
            (document.getElementById('__next') && (q('link[href*="/_next/"]') || q('script[src*="/_next/"]')))) {
            framework = 'Next.js';
        } else if (typeof window.__remixContext !== 'undefined' ||
            (q('script[src*="/build/"]') && q('link[href*="/build/"]') && q('meta[name="viewport"]'))) {
            framework = 'Remix';
        } else if (q('meta[name="nuxt"]') || q('script#__NUXT_DATA__') || q('[id^="__nuxt"]')) {
            framework = 'Nuxt';
        } else if (q('#__gatsby')) {
            framework = 'Gatsby';
        } else if (q('[data-svelte-h]') || q('[class*="svelte-"]')) {
            framework = 'Svelte';
        } else if (q('[ng-version]')) {
            framework = 'Angular';
        } else if (q('[data-v-]') || q('[data-vue-app]') || document.getElementById('__vue-content')) {
            framework = 'Vue';
        } else if (q('[data-reactroot]') || document.getElementById('__next')) {
            framework = 'React';
        }
    }
    let backgroundColor = '';
    let el = document.body;
    while (el) {
        const bg = window.getComputedStyle(el).backgroundColor;
        if (bg && bg !== 'rgba(0, 0, 0, 0)' && bg !== 'transparent') {
            backgroundColor = bg;
            break;
        }
        el = el.parentElement;
    }
    const canonicalEl = q('link[rel="canonical"]');
    return JSON.stringify({
        schema: %(schema)d,
        pageURL: document.location.href,
        origin: document.location.origin,
        documentTitle: document.title || '',
        meta: meta,
        metaTags: metaTags,
        icons: icons,
        canonical: canonicalEl ? (canonicalEl.getAttribute('href') || '') : '',
        lang: document.documentElement.getAttribute('lang') || '',
        hasManifest: !!q('link[rel="manifest"]'),
        hasViewport: !!q('meta[name="viewport"]'),
        framework: framework,
        backgroundColor: backgroundColor || '%(background)s',
    });
})()
""" % {
    "meta_names": json.dumps(list(META_NAMES)),
    "meta_tag_names": json.dumps(list(META_TAG_NAMES)),
    "icon_rels": json.dumps(list(ICON_RELS)),
    "schema": SCRAPE_SCHEMA_VERSION,
    "background": DEFAULT_BACKGROUND,
}

_STRING_FIELDS = ("pageURL", "origin", "documentTitle", "canonical", "lang", "framework", "backgroundColor")
_BOOL_FIELDS = ("hasManifest", "hasViewport")
_ICON_FIELDS = ("href", "sizes", "rel", "rawTag")


def parse_payload(raw: Any) -> Dict[str, Any]:
    """Decode and validate a scrape payload; raises :class:`ScrapeSchemaError`."""
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise ScrapeSchemaError(f"Scrape result is not valid JSON: {exc}") from exc
    else:
        payload = raw
    if not isinstance(payload, dict):
        raise ScrapeSchemaError("Scrape result is not a JSON object")

    version = payload.get("schema")
    if version != SCRAPE_SCHEMA_VERSION:
        raise ScrapeSchemaError(
            f"Unsupported scrape schema {version!r} (expected {SCRAPE_SCHEMA_VERSION})"
        )
    for key in _STRING_FIELDS:
        if not isinstance(payload.get(key), str):
            raise ScrapeSchemaError(f"Field {key!r} must be a string")
    for key in _BOOL_FIELDS:
        if not isinstance(payload.get(key), bool):
            raise ScrapeSchemaError(f"Field {key!r} must be a boolean")
    if not payload["pageURL"]:
        raise ScrapeSchemaError("Field 'pageURL' must not be empty")

    for key in ("meta", "metaTags"):
        mapping = payload.get(key)
        if not isinstance(mapping, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in mapping.items()
        ):
            raise ScrapeSchemaError(f"Field {key!r} must map strings to strings")

    icons = payload.get("icons")
    if not isinstance(icons, list):
        raise ScrapeSchemaError("Field 'icons' must be a list")
    for index, icon in enumerate(icons):
        if not isinstance(icon, dict) or not all(
            isinstance(icon.get(name), str) for name in _ICON_FIELDS
        ):
            raise ScrapeSchemaError(f"Icon entry {index} is malformed")
    return payload


def _first(values: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = values.get(name) or ""
        if value:
            return value
    return ""


def collect_icons(raw_icons: Iterable[Mapping[str, str]], origin: str) -> List[IconDeclaration]:
    """Resolve icon links against the origin and append missing defaults."""
    icons: List[IconDeclaration] = []
    for raw in raw_icons:
        rel = raw.get("rel", "")
        href = raw.get("href", "")
        if rel.lower() not in ICON_RELS or not href:
            continue
        icons.append(
            IconDeclaration(
                url=resolve_href(href, origin),
                sizes=raw.get("sizes", ""),
                rel=rel,
                raw_tag=raw.get("rawTag", ""),
            )
        )

    has_favicon = any(icon.rel.lower() in FAVICON_RELS for icon in icons)
    has_touch = any("apple-touch-icon" in icon.rel.lower() for icon in icons)
    for present, default in ((has_favicon, DEFAULT_FAVICON), (has_touch, DEFAULT_TOUCH_ICON)):
        if not present:
            icons.append(
                IconDeclaration(
                    url=origin + default.url,
                    sizes=default.sizes,
                    rel=default.rel,
                    raw_tag=default.raw_tag,
                )
            )
    return icons


def build_document(payload: Mapping[str, Any]) -> RawMetadataDocument:
    """Apply field precedence to a validated payload."""
    meta: Mapping[str, str] = payload["meta"]
    tags: Mapping[str, str] = payload["metaTags"]
    page_url = payload["pageURL"]
    origin = payload["origin"] or origin_of(page_url)
    document_title = payload["documentTitle"]

    icons = collect_icons(payload["icons"], origin)
    favicon = icons[0].url if icons else origin + DEFAULT_FAVICON.url

    return RawMetadataDocument(
        page_identity=PageIdentity(page_url),
        title=_first(meta, "og:title") or document_title,
        description=_first(meta, "og:description", "description"),
        image_url=_first(meta, "og:image"),
        image_tag=_first(tags, "og:image"),
        twitter_title=_first(meta, "twitter:title", "og:title") or document_title,
        twitter_description=_first(meta, "twitter:description", "og:description", "description"),
        twitter_image=_first(meta, "twitter:image", "twitter:image:src", "og:image"),
        twitter_image_tag=_first(tags, "twitter:image", "twitter:image:src"),
        favicon_url=favicon,
        icons=tuple(icons),
        theme_color=_first(meta, "theme-color"),
        canonical=payload["canonical"],
        robots=_first(meta, "robots", "googlebot"),
        keywords=_first(meta, "keywords"),
        generator=_first(meta, "generator") or payload["framework"],
        lang=payload["lang"],
        has_pwa=payload["hasManifest"],
        has_viewport=payload["hasViewport"],
        background_color=payload["backgroundColor"] or DEFAULT_BACKGROUND,
    )


async def scrape(renderer) -> RawMetadataDocument:
    """Run the scrape script once in the renderer's page.

    Raises :class:`ScrapeError` when the script fails or returns something that
    does not match the schema. There are no retries.
    """
    try:
        raw = await renderer.execute_script(SCRAPE_SCRIPT)
    except RendererError as exc:
        raise ScrapeError(f"Scrape script failed: {exc}") from exc
    payload = parse_payload(raw)
    document = build_document(payload)
    logger.debug(
        "Scraped %s (%d icons, generator=%r)",
        document.page_identity,
        len(document.icons),
        document.generator,
    )
    return document
