"""Progress event stream fed by sweeps and health checks.

A :class:`ProgressBus` has one producer (the tracker) and any number of
subscribers.  :meth:`ProgressBus.subscribe` returns an unsubscribe handle;
the producer never sees who is listening.  A subscriber that raises is
logged and skipped: it cannot break the sweep or starve other subscribers.

Typical usage::

    def on_progress(event: ProgressEvent) -> None:
        print(f"{event.index} of {event.total}: {event.node}")

    unsubscribe = tracker.progress.subscribe(on_progress)
    await tracker.ping_all()
    unsubscribe()
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable

from nodetracker.core.models import ProgressEvent

__all__ = ["ProgressListener", "Unsubscribe", "ProgressBus"]

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]
Unsubscribe = Callable[[], None]


class ProgressBus:
    """Single-producer, multi-subscriber progress stream."""

    def __init__(self) -> None:
        self._listeners: dict[int, ProgressListener] = {}
        self._ids = itertools.count()

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: ProgressListener) -> Unsubscribe:
        """Register *listener*; call the returned function to detach it.

        The handle is idempotent.
        """
        key = next(self._ids)
        self._listeners[key] = listener

        def _unsubscribe() -> None:
            self._listeners.pop(key, None)

        return _unsubscribe

    def publish(self, event: ProgressEvent) -> None:
        # Copy so listeners may unsubscribe from inside their callback.
        for listener in list(self._listeners.values()):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("Progress listener raised for %s — ignored.", event.node.control_url)
