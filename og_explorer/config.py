"""Configuration objects and constants for the metadata explorer."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

logger = logging.getLogger("og_explorer")

DEFAULT_HEAD_DEBOUNCE = 0.3
DEFAULT_URL_CHANGE_DELAY = 0.5
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
ENV_PREFIX = "OG_EXPLORER_"


@dataclass
class ExplorerConfig:
    """Top-level settings that control extraction timing and image prefetching."""

    head_debounce: float = DEFAULT_HEAD_DEBOUNCE
    url_change_delay: float = DEFAULT_URL_CHANGE_DELAY
    fetch_timeout: float = 15.0
    max_image_bytes: int = 10 * 1024 * 1024
    navigation_timeout: float = 30.0
    publish_timeout: float = 20.0
    wait_after_load: float = 0.0
    user_agent: str = DEFAULT_USER_AGENT
    headless: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ExplorerConfig":
        """Build a config, applying ``OG_EXPLORER_*`` overrides from the environment."""
        environ = os.environ if environ is None else environ
        config = cls()
        overrides = {}
        for field in fields(cls):
            raw = environ.get(ENV_PREFIX + field.name.upper())
            if raw is None or raw == "":
                continue
            default = getattr(config, field.name)
            try:
                overrides[field.name] = _coerce(raw, default)
            except ValueError:
                logger.warning(
                    "%s%s=%r is not valid; keeping %r",
                    ENV_PREFIX,
                    field.name.upper(),
                    raw,
                    default,
                )
        return replace(config, **overrides)


def _coerce(raw: str, default: object) -> object:
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError(raw)
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        value = float(raw)
        if value < 0:
            raise ValueError(raw)
        return value
    return raw
