"""
SCRFD anchor centers.

Anchor centers for one stride level are laid out row-major over the
feature grid, with ``num_anchors`` consecutive copies of each cell's
center::

    for row in range(height // stride):
        for col in range(width // stride):
            for _ in range(num_anchors):
                yield (col * stride, row * stride)
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

import numpy as np
import numpy.typing as npt

from ..geometry import Size

logger = logging.getLogger(__name__)

DEFAULT_SLIDING_EXPIRATION_SECONDS = 20 * 60

V = TypeVar("V")


class SlidingExpirationCache(Generic[V]):
    """Thread-safe in-memory cache whose entries expire after a period of inactivity.

    Every successful lookup renews the entry's lease. Expired entries are
    evicted lazily on access and during ``purge_expired``.
    """

    def __init__(
        self,
        sliding_expiration: float = DEFAULT_SLIDING_EXPIRATION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if sliding_expiration <= 0:
            raise ValueError("sliding_expiration must be positive")
        self._ttl = float(sliding_expiration)
        self._clock = clock
        self._entries: dict[Hashable, tuple[V, float]] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[Hashable, threading.Lock] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable) -> V | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, last_access = entry
            if now - last_access >= self._ttl:
                del self._entries[key]
                return None
            self._entries[key] = (value, now)
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())

    def get_or_create(self, key: Hashable, factory: Callable[[], V]) -> V:
        """Return the cached value, building it with ``factory`` on a miss.

        Concurrent misses on the same key run ``factory`` once.
        """
        value = self.get(key)
        if value is not None:
            return value

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        try:
            with key_lock:
                value = self.get(key)
                if value is None:
                    value = factory()
                    self.set(key, value)
        finally:
            # late arrivals find the entry before they ever need a lock
            with self._lock:
                if self._key_locks.get(key) is key_lock:
                    del self._key_locks[key]
        return value

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, ts) in self._entries.items() if now - ts >= self._ttl]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._key_locks.clear()


def generate_anchor_centers(
    input_size: Size | tuple[int, int], stride: int, num_anchors: int
) -> npt.NDArray[np.float32]:
    """All anchor centers of one stride level as an (N, 2) float32 array of (x, y).

    ``N == (height // stride) * (width // stride) * num_anchors``.
    """
    width, height = input_size
    grid_h = height // stride
    grid_w = width // stride
    grid_y, grid_x = np.mgrid[:grid_h, :grid_w]
    centers = np.stack((grid_x, grid_y), axis=-1).reshape(-1, 2).astype(np.float32)
    centers *= np.float32(stride)
    if num_anchors > 1:
        centers = np.repeat(centers, num_anchors, axis=0)
    return centers


def get_anchor_center(
    input_size: Size | tuple[int, int], stride: int, num_anchors: int, anchor_index: int
) -> tuple[float, float]:
    """Anchor center at ``anchor_index`` without materializing the whole level."""
    width = input_size[0] // stride
    row = anchor_index // (width * num_anchors)
    col = (anchor_index % (width * num_anchors)) // num_anchors
    return (float(col * stride), float(row * stride))


class AnchorCenterCache:
    """Anchor centers keyed by (input size, stride, anchors per cell).

    Cached arrays are read-only; callers index into them but never mutate.
    """

    def __init__(
        self, sliding_expiration: float = DEFAULT_SLIDING_EXPIRATION_SECONDS
    ) -> None:
        self._cache: SlidingExpirationCache[npt.NDArray[np.float32]] = (
            SlidingExpirationCache(sliding_expiration)
        )

    def __len__(self) -> int:
        return len(self._cache)

    def get(
        self, input_size: Size | tuple[int, int], stride: int, num_anchors: int
    ) -> npt.NDArray[np.float32]:
        key = (tuple(input_size), int(stride), int(num_anchors))

        def _build() -> npt.NDArray[np.float32]:
            logger.debug(
                "Generating anchor centers (size=%s stride=%d anchors=%d)",
                key[0],
                stride,
                num_anchors,
            )
            centers = generate_anchor_centers(input_size, stride, num_anchors)
            centers.flags.writeable = False
            return centers

        return self._cache.get_or_create(key, _build)

    def clear(self) -> None:
        self._cache.clear()


# Shared by every detector that is not given its own cache.
default_anchor_cache = AnchorCenterCache()
