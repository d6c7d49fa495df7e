"""Static HTML rendition of the in-page scrape, built with BeautifulSoup."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from .scraper import DEFAULT_BACKGROUND, ICON_RELS, META_NAMES, META_TAG_NAMES, SCRAPE_SCHEMA_VERSION
from .utils import origin_of

Probe = Callable[[BeautifulSoup], bool]


def _find_meta(soup: BeautifulSoup, name: str) -> Optional[Tag]:
    return soup.find("meta", attrs={"property": name}) or soup.find("meta", attrs={"name": name})


def _rel_value(tag: Tag) -> str:
    rel = tag.get("rel")
    if isinstance(rel, list):
        return " ".join(rel)
    return rel or ""


def _has(selector: str) -> Probe:
    return lambda soup: soup.select_one(selector) is not None


def _any(*probes: Probe) -> Probe:
    return lambda soup: any(probe(soup) for probe in probes)


def _all(*probes: Probe) -> Probe:
    return lambda soup: all(probe(soup) for probe in probes)


# DOM-marker subset of the in-page fingerprints; script globals are not visible here.
FRAMEWORK_PROBES = (
    ("Next.js", _any(_has("script#__NEXT_DATA__"), _has('script[src*="/_next/"]'),
                     _all(_has("#__next"), _has('link[href*="/_next/"]')))),
    ("Remix", _all(_has('script[src*="/build/"]'), _has('link[href*="/build/"]'),
                   _has('meta[name="viewport"]'))),
    ("Nuxt", _any(_has('meta[name="nuxt"]'), _has("script#__NUXT_DATA__"), _has('[id^="__nuxt"]'))),
    ("Gatsby", _has("#__gatsby")),
    ("Svelte", _any(_has("[data-svelte-h]"), _has('[class*="svelte-"]'))),
    ("Angular", _has("[ng-version]")),
    ("Vue", _any(_has("[data-v-]"), _has("[data-vue-app]"), _has("#__vue-content"))),
    ("React", _any(_has("[data-reactroot]"), _has("#__next"))),
)


def detect_framework(soup: BeautifulSoup) -> str:
    """Return the first matching framework name, in fixed priority order."""
    for name, probe in FRAMEWORK_PROBES:
        if probe(soup):
            return name
    return ""


def scrape_html(html: str, page_url: str) -> Dict[str, Any]:
    """Build a scrape payload from raw HTML as the in-page script would."""
    soup = BeautifulSoup(html, "html.parser")

    meta: Dict[str, str] = {}
    for name in META_NAMES:
        tag = _find_meta(soup, name)
        meta[name] = (tag.get("content") or "") if tag else ""

    meta_tags: Dict[str, str] = {}
    for name in META_TAG_NAMES:
        tag = _find_meta(soup, name)
        meta_tags[name] = str(tag) if tag else ""

    icons: List[Dict[str, str]] = []
    for link in soup.find_all("link"):
        rel = _rel_value(link)
        if rel.lower() not in ICON_RELS:
            continue
        icons.append(
            {
                "href": link.get("href") or "",
                "sizes": link.get("sizes") or "",
                "rel": rel,
                "rawTag": str(link),
            }
        )

    canonical = ""
    for link in soup.find_all("link"):
        if _rel_value(link).lower() == "canonical":
            canonical = link.get("href") or ""
            break

    html_tag = soup.find("html")
    lang = (html_tag.get("lang") or "") if html_tag else ""
    title = soup.title.string.strip() if soup.title and soup.title.string else ""

    return {
        "schema": SCRAPE_SCHEMA_VERSION,
        "pageURL": page_url,
        "origin": origin_of(page_url),
        "documentTitle": title,
        "meta": meta,
        "metaTags": meta_tags,
        "icons": icons,
        "canonical": canonical,
        "lang": lang,
        "hasManifest": any(_rel_value(link).lower() == "manifest" for link in soup.find_all("link")),
        "hasViewport": soup.find("meta", attrs={"name": "viewport"}) is not None,
        "framework": "" if meta["generator"] else detect_framework(soup),
        "backgroundColor": DEFAULT_BACKGROUND,
    }
