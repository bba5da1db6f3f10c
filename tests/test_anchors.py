"""
Tests for anchor center generation and the sliding-expiration cache.
"""

from __future__ import annotations

import threading
import time

import numpy as np
import pytest

from faceai.detection.anchors import (
    AnchorCenterCache,
    SlidingExpirationCache,
    generate_anchor_centers,
    get_anchor_center,
)
from faceai.geometry import Size


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestGenerateAnchorCenters:
    """Layout and size of generated anchor centers."""

    @pytest.mark.parametrize(
        "size,stride,num_anchors",
        [
            (Size(320, 240), 8, 2),
            (Size(640, 480), 16, 2),
            (Size(640, 640), 32, 1),
            (Size(100, 60), 8, 3),
        ],
    )
    def test_count(self, size, stride, num_anchors):
        centers = generate_anchor_centers(size, stride, num_anchors)
        expected = (size.height // stride) * (size.width // stride) * num_anchors
        assert centers.shape == (expected, 2)
        assert centers.size == 2 * expected
        assert centers.dtype == np.float32

    def test_row_major_with_repeated_cells(self):
        centers = generate_anchor_centers(Size(32, 16), 8, 2)
        expected = [
            (0, 0), (0, 0), (8, 0), (8, 0), (16, 0), (16, 0), (24, 0), (24, 0),
            (0, 8), (0, 8), (8, 8), (8, 8), (16, 8), (16, 8), (24, 8), (24, 8),
        ]
        np.testing.assert_array_equal(centers, np.array(expected, dtype=np.float32))

    def test_single_anchor_per_cell(self):
        centers = generate_anchor_centers(Size(24, 16), 8, 1)
        np.testing.assert_array_equal(
            centers, [[0, 0], [8, 0], [16, 0], [0, 8], [8, 8], [16, 8]]
        )

    def test_partial_cells_are_dropped(self):
        centers = generate_anchor_centers(Size(20, 9), 8, 1)
        np.testing.assert_array_equal(centers, [[0, 0], [8, 0]])


class TestGetAnchorCenter:
    """Direct indexing agrees with the materialized sequence."""

    @pytest.mark.parametrize(
        "size,stride,num_anchors",
        [
            (Size(320, 240), 8, 2),
            (Size(640, 480), 16, 2),
            (Size(640, 640), 128, 1),
            (Size(96, 64), 8, 3),
        ],
    )
    def test_matches_generated_sequence(self, size, stride, num_anchors):
        centers = generate_anchor_centers(size, stride, num_anchors)
        for idx in range(centers.shape[0]):
            assert get_anchor_center(size, stride, num_anchors, idx) == tuple(
                float(v) for v in centers[idx]
            )


class TestSlidingExpirationCache:
    """Expiry, renewal and single creation under concurrency."""

    def test_entry_expires_after_inactivity(self):
        clock = FakeClock()
        cache = SlidingExpirationCache(10, clock=clock)
        cache.set("k", 1)

        clock.now = 9.0
        assert cache.get("k") == 1
        clock.now = 18.0
        assert cache.get("k") == 1, "lookup should renew the lease"
        clock.now = 30.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_get_or_create_rebuilds_after_expiry(self):
        clock = FakeClock()
        cache = SlidingExpirationCache(5, clock=clock)
        calls = []

        def factory():
            calls.append(clock.now)
            return len(calls)

        assert cache.get_or_create("k", factory) == 1
        assert cache.get_or_create("k", factory) == 1
        clock.now = 6.0
        assert cache.get_or_create("k", factory) == 2
        assert calls == [0.0, 6.0]

    def test_purge_expired(self):
        clock = FakeClock()
        cache = SlidingExpirationCache(5, clock=clock)
        cache.set("old", 1)
        clock.now = 4.0
        cache.set("new", 2)
        clock.now = 6.0

        assert cache.purge_expired() == 1
        assert cache.get("new") == 2
        assert cache.get("old") is None

    def test_rejects_non_positive_expiration(self):
        with pytest.raises(ValueError):
            SlidingExpirationCache(0)

    def test_concurrent_misses_create_once(self):
        cache = SlidingExpirationCache(60)
        created = []
        barrier = threading.Barrier(8)
        results = []

        def factory():
            created.append(1)
            time.sleep(0.05)
            return object()

        def worker():
            barrier.wait()
            results.append(cache.get_or_create(("k", 1), factory))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(created) == 1
        assert len(results) == 8
        assert all(r is results[0] for r in results)
        assert cache._key_locks == {}

    def test_creation_locks_do_not_accumulate(self):
        cache = SlidingExpirationCache(60)
        for size in range(100):
            cache.get_or_create(("k", size), object)

        assert len(cache) == 100
        assert cache._key_locks == {}

    def test_failed_factory_releases_its_lock(self):
        cache = SlidingExpirationCache(60)

        def factory():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            cache.get_or_create("k", factory)
        assert cache._key_locks == {}
        assert cache.get_or_create("k", lambda: 7) == 7


class TestAnchorCenterCache:
    def test_returns_cached_read_only_array(self):
        cache = AnchorCenterCache()
        first = cache.get(Size(64, 64), 8, 2)
        second = cache.get((64, 64), 8, 2)

        assert first is second
        assert len(cache) == 1
        assert not first.flags.writeable
        with pytest.raises(ValueError):
            first[0, 0] = 1.0

    def test_distinct_keys(self):
        cache = AnchorCenterCache()
        cache.get(Size(64, 64), 8, 2)
        cache.get(Size(64, 64), 16, 2)
        cache.get(Size(64, 64), 8, 1)
        assert len(cache) == 3

        cache.clear()
        assert len(cache) == 0
