"""Published metadata state and the load-gated publisher that updates it."""

from __future__ import annotations

import enum
import logging
from typing import Callable, List, Optional

from .models import MetadataSnapshot, PublishedState

logger = logging.getLogger("og_explorer")

Subscriber = Callable[[PublishedState], None]


class MetadataStore:
    """Holds the one metadata state the presentation layer observes."""

    def __init__(self) -> None:
        self._state = PublishedState()
        self._subscribers: List[Subscriber] = []

    @property
    def state(self) -> PublishedState:
        return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for every publish; returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, snapshot: MetadataSnapshot) -> PublishedState:
        previous = self._state
        self._state = PublishedState(
            metadata=snapshot.metadata,
            background_color=snapshot.background_color or previous.background_color,
            og_image=snapshot.og_image,
            twitter_image=snapshot.twitter_image,
            favicon_image=snapshot.favicon_image,
            version=previous.version + 1,
        )
        logger.info(
            "Published metadata for %s (version %d)",
            snapshot.metadata.source_url,
            self._state.version,
        )
        for callback in list(self._subscribers):
            try:
                callback(self._state)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Metadata subscriber %r failed", callback)
        return self._state


class LoadState(enum.Enum):
    LOADING = "loading"
    SETTLED = "settled"


class LoadGatedPublisher:
    """Defers publishes while the page is loading.

    A result completed during loading is buffered (latest wins) and published
    when loading ends, so the observable state changes once per page.
    """

    def __init__(
        self,
        store: MetadataStore,
        loading: bool = False,
        is_current: Optional[Callable[[MetadataSnapshot], bool]] = None,
    ) -> None:
        self.store = store
        self.is_current = is_current
        self._state = LoadState.LOADING if loading else LoadState.SETTLED
        self._pending: Optional[MetadataSnapshot] = None

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def pending(self) -> Optional[MetadataSnapshot]:
        return self._pending

    def submit(self, snapshot: MetadataSnapshot) -> bool:
        """Publish now if settled, else buffer. Returns whether it was published."""
        if self._state is LoadState.LOADING:
            if self._pending is not None:
                logger.debug("Replacing buffered metadata for %s", self._pending.metadata.source_url)
            self._pending = snapshot
            return False
        self.store.publish(snapshot)
        return True

    def set_loading(self, loading: bool) -> None:
        previous = self._state
        self._state = LoadState.LOADING if loading else LoadState.SETTLED
        if previous is LoadState.LOADING and self._state is LoadState.SETTLED:
            self.flush()

    def flush(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None:
            return
        if self.is_current is not None and not self.is_current(pending):
            logger.debug("Dropping buffered metadata for %s", pending.metadata.source_url)
            return
        self.store.publish(pending)
