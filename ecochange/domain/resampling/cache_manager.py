# ecochange/domain/resampling/cache_manager.py
"""Cache management for integrated raster stacks."""

import hashlib
import json
import threading
import weakref
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from rasterio.errors import RasterioIOError

from ...abstractions.types import EcoChangeError, RasterStack
from ...config import config as global_config
from ...infrastructure.logging import get_logger
from ...raster_data.loaders import read_stack, write_stack

logger = get_logger(__name__)


def stack_fingerprint(stack: RasterStack) -> str:
    """sha256 over layer names, dtypes and cell values."""
    digest = hashlib.sha256()
    for layer in stack:
        digest.update(layer.name.encode())
        digest.update(layer.data.dtype.str.encode())
        digest.update(layer.data.tobytes())
    return digest.hexdigest()


class StackCacheManager:
    """In-memory stack cache with optional GeoTIFF persistence.

    Entries are keyed by ``get_cache_key``. ``get_or_create`` holds a
    per-key lock while the factory runs, so concurrent requests for one key
    produce a single fetch and the others block until it lands.

    Persisted entries live at ``<cache_dir>/<key>.tif`` with a JSON sidecar
    ``<key>.json``. A sidecar whose fingerprint disagrees with the raster
    on disk is treated as a miss.
    """

    def __init__(self, config=None, cache_dir: Optional[Path] = None,
                 persist: Optional[bool] = None, enabled: Optional[bool] = None):
        self.config = config or global_config
        self.enabled = self.config.get('cache.enabled', True) if enabled is None else enabled
        self.persist = self.config.get('cache.persist', False) if persist is None else persist
        self.cache_dir = Path(cache_dir or self.config.get('cache.cache_dir', 'cache/stacks'))
        self.compress = self.config.get('cache.compress', 'lzw')

        self._memory: Dict[str, RasterStack] = {}
        # Locks live only while some caller holds them
        self._key_locks = weakref.WeakValueDictionary()
        self._registry_lock = threading.Lock()

        self._cache_stats = {
            'hits': 0,
            'misses': 0,
            'stores': 0,
            'disk_hits': 0,
            'corrupted': 0,
        }
        self._stats_lock = threading.RLock()

    def get_cache_key(self,
                      region_identity: str,
                      layer_names: Sequence[str],
                      crs: Optional[str],
                      resolution: Optional[Tuple[float, float]],
                      declarations: Sequence[str] = ()) -> str:
        """Generate the cache key for an integrated stack.

        ``declarations`` carries anything else that changes the built stack,
        such as the kind and role given to each layer.
        """
        key_parts = [
            region_identity,
            ",".join(layer_names),
            crs or "none",
            json.dumps([round(r, 9) for r in resolution]) if resolution else "native",
            ",".join(declarations),
        ]
        key_string = "_".join(str(p) for p in key_parts)
        return hashlib.md5(key_string.encode()).hexdigest()

    def key_lock(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _record(self, stat: str):
        with self._stats_lock:
            self._cache_stats[stat] += 1

    def get(self, key: str) -> Optional[RasterStack]:
        """Look a stack up in memory, then on disk."""
        if not self.enabled:
            return None

        with self._registry_lock:
            stack = self._memory.get(key)
        if stack is not None:
            self._record('hits')
            logger.debug(f"Stack cache hit (memory) for {key}")
            return stack

        if self.persist:
            stack = self._load_from_disk(key)
            if stack is not None:
                with self._registry_lock:
                    self._memory[key] = stack
                self._record('hits')
                self._record('disk_hits')
                return stack

        self._record('misses')
        return None

    def put(self, key: str, stack: RasterStack, region_identity: Optional[str] = None):
        if not self.enabled:
            return
        with self._registry_lock:
            self._memory[key] = stack
        if self.persist:
            self._store_on_disk(key, stack, region_identity)
        self._record('stores')

    def get_or_create(self, key: str, factory: Callable[[], RasterStack],
                      region_identity: Optional[str] = None) -> RasterStack:
        """Return the cached stack for ``key``, building it at most once."""
        if not self.enabled:
            return factory()

        with self.key_lock(key):
            stack = self.get(key)
            if stack is not None:
                return stack
            stack = factory()
            self.put(key, stack, region_identity)
            return stack

    def invalidate(self, key: Optional[str] = None) -> int:
        """Drop one key (or everything) from memory and disk."""
        with self._registry_lock:
            keys = [key] if key is not None else list(self._memory)
            removed = sum(1 for k in keys if self._memory.pop(k, None) is not None)

        if self.persist and self.cache_dir.exists():
            pattern = f"{key}.*" if key is not None else "*.*"
            for path in self.cache_dir.glob(pattern):
                if path.suffix in ('.tif', '.json'):
                    path.unlink()

        logger.info(f"Invalidated {removed} cached stacks")
        return removed

    def get_cache_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = self._cache_stats.copy()
        with self._registry_lock:
            stats['entries'] = len(self._memory)
        total_requests = stats['hits'] + stats['misses']
        if total_requests > 0:
            stats['hit_rate'] = stats['hits'] / total_requests * 100
        stats['cache_directory'] = str(self.cache_dir)
        stats['persist'] = self.persist
        return stats

    def _paths(self, key: str) -> Tuple[Path, Path]:
        return self.cache_dir / f"{key}.tif", self.cache_dir / f"{key}.json"

    def _store_on_disk(self, key: str, stack: RasterStack, region_identity: Optional[str]):
        raster_path, sidecar_path = self._paths(key)
        write_stack(stack, raster_path, compress=self.compress)

        # Fingerprint what was written, since GeoTIFF unifies dtype and no-data
        persisted = read_stack(raster_path)
        sidecar = {
            'region': region_identity,
            'layers': list(stack.names),
            'crs': stack.crs,
            'resolution': list(stack.resolution),
            'fingerprint': stack_fingerprint(persisted),
            'created_at': datetime.now(timezone.utc).isoformat(),
        }
        with sidecar_path.open('w', encoding='utf-8') as f:
            json.dump(sidecar, f, indent=2)
        logger.debug(f"Persisted stack {key} to {raster_path}")

    def _load_from_disk(self, key: str) -> Optional[RasterStack]:
        raster_path, sidecar_path = self._paths(key)
        if not raster_path.exists() or not sidecar_path.exists():
            return None

        try:
            with sidecar_path.open('r', encoding='utf-8') as f:
                sidecar = json.load(f)
            stack = read_stack(raster_path)
        except (OSError, ValueError, RasterioIOError, EcoChangeError) as e:
            logger.warning(f"Cached stack {key} unreadable, treating as miss: {e}")
            self._record('corrupted')
            return None

        if sidecar.get('fingerprint') != stack_fingerprint(stack):
            logger.warning(f"Fingerprint mismatch for cached stack {key}, treating as miss")
            self._record('corrupted')
            return None

        logger.debug(f"Stack cache hit (disk) for {key}")
        return stack
