"""Head mutation observer and the debounce that collapses its bursts."""

from __future__ import annotations

import logging
from typing import Callable

from .config import DEFAULT_HEAD_DEBOUNCE
from .timers import DelayedTaskScheduler

logger = logging.getLogger("og_explorer")

HEAD_CHANNEL = "headChanged"
HEAD_DEBOUNCE_KEY = "head-changed"

HEAD_OBSERVER_SCRIPT = """
(() => {
    if (window.__ogExplorerHeadObserver) return;
    const install = () => {
        if (window.__ogExplorerHeadObserver || !document.head) return;
        window.__ogExplorerHeadObserver = true;
        const isTracked = (node) => !!node && (node.tagName === 'META' || node.tagName === 'LINK');
        const observer = new MutationObserver((mutations) => {
            const relevant = mutations.some((m) => {
                if (m.type === 'attributes') return isTracked(m.target);
                return Array.from(m.addedNodes).some(isTracked) ||
                       Array.from(m.removedNodes).some(isTracked);
            });
            if (relevant && typeof window.%(channel)s === 'function') {
                window.%(channel)s('changed');
            }
        });
        observer.observe(document.head, { childList: true, attributes: true, subtree: true });
    };
    if (document.readyState === 'loading') {
        document.addEventListener('DOMContentLoaded', install, { once: true });
    } else {
        install();
    }
})();
""" % {"channel": HEAD_CHANNEL}


class MutationWatcher:
    """Installs the head observer and debounces its change signal."""

    def __init__(
        self,
        scheduler: DelayedTaskScheduler,
        on_settled: Callable[[], None],
        delay: float = DEFAULT_HEAD_DEBOUNCE,
    ) -> None:
        self.scheduler = scheduler
        self.on_settled = on_settled
        self.delay = delay
        self._installed = False

    async def install(self, renderer) -> None:
        """Register the message channel and observer script once per renderer."""
        if self._installed:
            return
        await renderer.register_message_channel(HEAD_CHANNEL, self.handle_message)
        await renderer.add_init_script(HEAD_OBSERVER_SCRIPT)
        # Cover the document that is already loaded; the script guards itself.
        await renderer.execute_script(HEAD_OBSERVER_SCRIPT)
        self._installed = True

    def handle_message(self, message: object = None) -> None:
        logger.debug("Head changed (%s); debouncing", message)
        self.notify()

    def notify(self) -> None:
        """Restart the debounce window; only the last event in a burst fires."""
        self.scheduler.schedule(HEAD_DEBOUNCE_KEY, self.delay, self.on_settled)
