"""Read-through cache for API query results.

Keys are tuples whose first element is the collection path, e.g.
``("/api/courses",)``, ``("/api/courses", 5)`` or
``("/api/courses", 5, "reviews")``. Invalidating a prefix drops every entry
under it and notifies the subscribers watching any overlapping prefix, so a
view subscribed to ``("/api/courses",)`` hears about a change to course 5
and a view subscribed to course 5 hears about the whole collection being
dropped.

Each MarketplaceClient owns its own cache instance.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

QueryKey = tuple[Any, ...]
Listener = Callable[[QueryKey], None]

T = TypeVar("T")


def _overlaps(a: QueryKey, b: QueryKey) -> bool:
    n = min(len(a), len(b))
    return a[:n] == b[:n]


class QueryCache:
    def __init__(self) -> None:
        self._store: dict[QueryKey, Any] = {}
        self._listeners: list[tuple[QueryKey, Listener]] = []

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._store

    def get(self, key: QueryKey) -> Any | None:
        return self._store.get(key)

    def fetch(self, key: QueryKey, loader: Callable[[], T]) -> T:
        """Return the cached value for ``key``, calling ``loader`` on a miss.

        A loader that raises caches nothing.
        """
        if key in self._store:
            return self._store[key]
        value = loader()
        self._store[key] = value
        return value

    def invalidate(self, prefix: QueryKey) -> int:
        """Drop every entry whose key starts with ``prefix``.

        Returns the number of entries dropped. Subscribers are notified even
        when nothing was cached, since a view may be showing data it fetched
        itself.
        """
        doomed = [k for k in self._store if k[: len(prefix)] == prefix]
        for k in doomed:
            del self._store[k]
        logger.debug("Invalidated %d cache entries under %r", len(doomed), prefix)
        for watched, listener in list(self._listeners):
            if _overlaps(watched, prefix):
                listener(prefix)
        return len(doomed)

    def subscribe(self, prefix: QueryKey, listener: Listener) -> Callable[[], None]:
        """Call ``listener(invalidated_prefix)`` on overlapping invalidations.

        Returns a function that removes the subscription; calling it twice is
        harmless.
        """
        entry = (prefix, listener)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def clear(self) -> None:
        self._store.clear()
