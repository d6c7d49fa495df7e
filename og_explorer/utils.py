"""Utility helpers for URL normalisation, hosts, colours and display text."""

from __future__ import annotations

import html
import re
from typing import NamedTuple, Optional
from urllib.parse import urljoin, urlparse

from babel import Locale, UnknownLocaleError

DISPLAY_LOCALE = "en"
RGB_PATTERN = re.compile(r"^rgba?\(([^)]*)\)$")


class RGBColor(NamedTuple):
    red: int
    green: int
    blue: int

    @property
    def hex(self) -> str:
        return f"#{self.red:02X}{self.green:02X}{self.blue:02X}"


WHITE = RGBColor(255, 255, 255)


def normalize_address(value: str) -> str:
    """Turn address-bar input into a loadable URL (bare hosts get https)."""
    address = value.strip()
    if not address:
        return address
    if address.startswith("about:") or "://" in address:
        return address
    return "https://" + address


def strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def host_of(url: str) -> str:
    """Return the www.-stripped host of ``url`` or an empty string."""
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    return strip_www(host)


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def resolve_href(href: str, origin: str) -> str:
    """Resolve an icon href against the page origin; absolute http(s) hrefs pass through."""
    if href.startswith("http"):
        return href
    return urljoin(origin + "/", href)


def is_well_formed_url(value: str) -> bool:
    """True when ``value`` parses with an http(s) scheme and a host."""
    if not value:
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme.startswith("http") and bool(parsed.hostname)


def parse_css_color(value: str) -> Optional[RGBColor]:
    """Parse ``rgb()``/``rgba()`` or ``#rrggbb`` strings; alpha is ignored."""
    cleaned = (value or "").replace(" ", "").lower()
    if cleaned.startswith("#"):
        digits = cleaned[1:]
        if len(digits) != 6:
            return None
        try:
            number = int(digits, 16)
        except ValueError:
            return None
        return RGBColor((number >> 16) & 0xFF, (number >> 8) & 0xFF, number & 0xFF)
    match = RGB_PATTERN.match(cleaned)
    if not match:
        return None
    parts = []
    for part in match.group(1).split(","):
        try:
            parts.append(float(part))
        except ValueError:
            continue
    if len(parts) < 3:
        return None
    red, green, blue = (max(0, min(255, int(round(p)))) for p in parts[:3])
    return RGBColor(red, green, blue)


def decode_entities(value: str) -> str:
    """Decode HTML entities left in meta content (``&amp;`` and friends)."""
    if "&" not in value:
        return value
    return html.unescape(value)


def _display_name(identifier: str) -> Optional[str]:
    try:
        return Locale.parse(identifier, sep="-").get_display_name(DISPLAY_LOCALE)
    except (ValueError, UnknownLocaleError):
        return None


def humanize_language(code: str) -> str:
    """Readable name for a ``lang`` attribute: ``en-US`` -> ``English (United States)``.

    Unknown regions fall back to the bare language; unknown codes come back as given.
    """
    code = code.strip().replace("_", "-")
    if not code:
        return ""
    return _display_name(code) or _display_name(code.split("-")[0]) or code
