"""Tests for StackCacheManager."""

import gc
import json
import threading
import time

import pytest

from ecochange.domain.resampling import StackCacheManager, stack_fingerprint


@pytest.fixture
def memory_cache(tmp_path):
    return StackCacheManager(cache_dir=tmp_path / "stacks", persist=False, enabled=True)


@pytest.fixture
def disk_cache(tmp_path):
    return StackCacheManager(cache_dir=tmp_path / "stacks", persist=True, enabled=True)


class TestCacheKeys:
    def test_key_is_deterministic(self, memory_cache):
        key = memory_cache.get_cache_key("testland-abc", ["a", "b"], "EPSG:32618", (30.0, 30.0))
        assert key == memory_cache.get_cache_key("testland-abc", ["a", "b"], "EPSG:32618", (30.0, 30.0))

    def test_key_depends_on_every_part(self, memory_cache):
        base = memory_cache.get_cache_key("r", ["a", "b"], "EPSG:32618", None)
        assert base != memory_cache.get_cache_key("r2", ["a", "b"], "EPSG:32618", None)
        assert base != memory_cache.get_cache_key("r", ["b", "a"], "EPSG:32618", None)
        assert base != memory_cache.get_cache_key("r", ["a", "b"], "EPSG:4326", None)
        assert base != memory_cache.get_cache_key("r", ["a", "b"], "EPSG:32618", (60.0, 60.0))
        assert base != memory_cache.get_cache_key("r", ["a", "b"], "EPSG:32618", None,
                                                  ["continuous:ecosystem", "categorical:change"])


class TestStackCacheManager:
    """Test memory and disk caching."""

    def test_memory_hit(self, memory_cache, forest_stack):
        assert memory_cache.get("k") is None
        memory_cache.put("k", forest_stack)

        assert memory_cache.get("k") is forest_stack
        stats = memory_cache.get_cache_stats()
        assert stats['hits'] == 1
        assert stats['misses'] == 1
        assert stats['entries'] == 1

    def test_disabled_cache_always_builds(self, tmp_path, forest_stack):
        cache = StackCacheManager(cache_dir=tmp_path, enabled=False)
        calls = []

        def factory():
            calls.append(1)
            return forest_stack

        cache.get_or_create("k", factory)
        cache.get_or_create("k", factory)
        assert len(calls) == 2

    def test_persisted_stack_survives_new_manager(self, tmp_path, disk_cache, forest_stack):
        disk_cache.put("k", forest_stack, region_identity="testland-abc")

        sidecar = json.loads((tmp_path / "stacks" / "k.json").read_text())
        assert sidecar['region'] == "testland-abc"
        assert sidecar['layers'] == ["treecover2000", "lossyear"]
        assert sidecar['fingerprint'] == stack_fingerprint(forest_stack)

        reloaded = StackCacheManager(cache_dir=tmp_path / "stacks", persist=True).get("k")
        assert reloaded is not None
        assert reloaded.equals(forest_stack)

    def test_fingerprint_mismatch_is_a_miss(self, tmp_path, disk_cache, forest_stack):
        disk_cache.put("k", forest_stack)
        sidecar_path = tmp_path / "stacks" / "k.json"
        sidecar = json.loads(sidecar_path.read_text())
        sidecar['fingerprint'] = "0" * 64
        sidecar_path.write_text(json.dumps(sidecar))

        fresh = StackCacheManager(cache_dir=tmp_path / "stacks", persist=True)
        assert fresh.get("k") is None
        assert fresh.get_cache_stats()['corrupted'] == 1

    def test_unreadable_raster_is_a_miss(self, tmp_path, disk_cache, forest_stack):
        disk_cache.put("k", forest_stack)
        (tmp_path / "stacks" / "k.tif").write_bytes(b"not a tiff")

        fresh = StackCacheManager(cache_dir=tmp_path / "stacks", persist=True)
        assert fresh.get("k") is None
        assert fresh.get_cache_stats()['corrupted'] == 1

    def test_invalidate(self, tmp_path, disk_cache, forest_stack):
        disk_cache.put("k", forest_stack)
        disk_cache.put("other", forest_stack)

        assert disk_cache.invalidate("k") == 1
        assert not (tmp_path / "stacks" / "k.tif").exists()
        assert (tmp_path / "stacks" / "other.tif").exists()

        assert disk_cache.invalidate() == 1
        assert list((tmp_path / "stacks").iterdir()) == []

    def test_concurrent_requests_build_once(self, memory_cache, forest_stack):
        """Test that simultaneous misses on one key run the factory once."""
        calls = []
        results = []
        barrier = threading.Barrier(4)

        def factory():
            calls.append(1)
            time.sleep(0.05)
            return forest_stack

        def worker():
            barrier.wait()
            results.append(memory_cache.get_or_create("shared", factory))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(calls) == 1
        assert len(results) == 4
        assert all(r is forest_stack for r in results)

    def test_key_locks_are_released(self, memory_cache, forest_stack):
        """Test that per-key locks do not outlive their users."""
        for key in ("a", "b", "c"):
            memory_cache.get_or_create(key, lambda: forest_stack)
        memory_cache.invalidate()
        gc.collect()

        assert len(memory_cache._key_locks) == 0
        lock = memory_cache.key_lock("a")
        assert memory_cache.key_lock("a") is lock
