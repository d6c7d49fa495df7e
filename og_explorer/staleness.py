"""Page-identity checks that keep stale extraction results out of the model."""

from __future__ import annotations

import logging
from typing import Callable

from .models import PageIdentity, RawMetadataDocument

logger = logging.getLogger("og_explorer")


class StalenessGuard:
    """Compares a run's captured identity with the page currently displayed."""

    def __init__(self, live_identity: Callable[[], PageIdentity]) -> None:
        self._live_identity = live_identity

    def is_current(self, identity: PageIdentity) -> bool:
        return identity == self._live_identity()

    def accept(self, document: RawMetadataDocument) -> bool:
        """Return False, and log, when the document belongs to another page."""
        live = self._live_identity()
        if document.page_identity == live:
            return True
        logger.debug(
            "Discarding stale metadata for %s (page is now %s)",
            document.page_identity,
            live,
        )
        return False
