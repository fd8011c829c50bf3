"""
Store handle cache.

Keeps exactly one live StoreHandle per storage location for the lifetime
of the service. Handles are created on first access and never released by
callers; close_all() at shutdown is the only place they are closed.

Race resolution is optimistic: a caller that misses the cache opens a new
handle without holding any lock, then tries to register it with
dict.setdefault. If another caller registered first, the freshly opened
handle is closed on the spot and the winner's handle is returned. An
occasional redundant open is the price for never blocking unrelated
tenants behind a shared mutex.

Invariants:
    - At most one handle per location is ever retained
    - A losing duplicate is closed immediately and never returned
    - No lock is held while a store is being opened
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..errors import StorageError
from .handle import StoreHandle

logger = logging.getLogger(__name__)


class StoreHandleCache:
    """Process-lifetime map from storage location to live handle.

    Thread safety:
        Lookups and registration rely on dict.get / dict.setdefault, which
        are atomic for str keys. No lock is taken.

    Example:
        >>> cache = StoreHandleCache(opener=stores.open)
        >>> handle = cache.acquire("5f0c...e1.db")
        >>> handle is cache.acquire("5f0c...e1.db")
        True
    """

    def __init__(self, opener: Callable[[str], StoreHandle]) -> None:
        """Initialize the cache.

        Args:
            opener: Opens a new handle for a storage location
        """
        self._opener = opener
        self._handles: dict[str, StoreHandle] = {}
        self._closed = False
        self._discarded = 0

    def acquire(self, location: str) -> StoreHandle:
        """Return the shared handle for a location, opening it on first use.

        Raises:
            StorageError: If the cache has been closed or the open fails
            StoreNotFoundError: If the store does not exist
        """
        if self._closed:
            raise StorageError("Store handle cache is closed", location=location)

        handle = self._handles.get(location)
        if handle is not None:
            return handle

        fresh = self._opener(location)
        winner = self._handles.setdefault(location, fresh)
        if winner is not fresh:
            fresh.close()
            self._discarded += 1
            logger.debug("Discarded duplicate store handle", extra={"location": location})
            return winner

        if self._closed:
            # close_all() ran while we were opening; do not leak the handle
            self._handles.pop(location, None)
            fresh.close()
            raise StorageError("Store handle cache is closed", location=location)

        logger.info("Cached store handle", extra={"location": location})
        return fresh

    def get(self, location: str) -> StoreHandle | None:
        """Return the cached handle for a location without opening one."""
        return self._handles.get(location)

    def handles(self) -> list[StoreHandle]:
        """Snapshot of the currently cached handles."""
        return list(self._handles.values())

    def close_all(self) -> int:
        """Close every cached handle and refuse further acquires.

        Returns:
            Number of handles closed
        """
        self._closed = True
        closed = 0
        while self._handles:
            _, handle = self._handles.popitem()
            try:
                handle.close()
            except Exception as e:
                logger.error(f"Failed to close store handle {handle.path}: {e}", exc_info=True)
                continue
            closed += 1
        logger.info(f"Closed {closed} cached store handles")
        return closed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stats(self) -> dict[str, int]:
        return {"cached": len(self._handles), "discarded": self._discarded}

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, location: object) -> bool:
        return location in self._handles
