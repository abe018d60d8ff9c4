# ecochange/raster_data/catalog.py
"""Local, directory-backed source catalog."""

import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..abstractions.interfaces import ISourceCatalog
from ..abstractions.types import LayerNotFound
from ..config import config as global_config
from ..infrastructure.logging import get_logger

logger = get_logger(__name__)


class LocalSourceCatalog(ISourceCatalog):
    """Resolve products to rasters under ``<root>/<region>/``.

    Each product has a filename glob (``products.<name>.pattern`` in the
    configuration, ``*<name>*.tif`` otherwise). Regions are listed from
    ``<root>/regions.yml`` shaped as ``{country: {level: [names]}}``, or
    from the region directories when that file is absent.

    Resolved paths are memoised, so repeated fetches for the same pair do
    not touch the filesystem again.
    """

    def __init__(self, root: Optional[Path] = None,
                 products: Optional[Dict[str, Dict[str, Any]]] = None,
                 regions_file: Optional[str] = None,
                 config=None):
        self.config = config or global_config
        self.root = Path(root or self.config.get('catalog.root', 'data'))
        self.products = products if products is not None else self.config.get('products', {})
        self.regions_file = regions_file or self.config.get('catalog.regions_file', 'regions.yml')
        self._resolved: Dict[Tuple[str, str], Path] = {}
        self._lock = threading.Lock()

    def _pattern_for(self, layer_name: str) -> str:
        product = self.products.get(layer_name) or {}
        return product.get('pattern') or f"*{layer_name}*.tif"

    def fetch(self, region_name: str, layer_name: str) -> Path:
        key = (region_name, layer_name)
        with self._lock:
            if key in self._resolved:
                return self._resolved[key]

        region_dir = self.root / region_name
        if not region_dir.is_dir():
            raise LayerNotFound(
                f"Region '{region_name}' has no data directory under {self.root} "
                f"(requested layer '{layer_name}')"
            )

        pattern = self._pattern_for(layer_name)
        matches = sorted(p for p in region_dir.glob(pattern) if p.is_file())
        if not matches:
            raise LayerNotFound(
                f"Layer '{layer_name}' not found for region '{region_name}' "
                f"(pattern '{pattern}' in {region_dir})"
            )
        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} files match '{pattern}' for region '{region_name}', "
                f"using {matches[0].name}"
            )

        with self._lock:
            self._resolved[key] = matches[0]
        logger.debug(f"Resolved {region_name}/{layer_name} -> {matches[0]}")
        return matches[0]

    def list_layers(self) -> List[str]:
        return sorted(self.products)

    def list_regions(self, level: Optional[int] = None,
                     country: Optional[str] = None) -> List[str]:
        regions_path = self.root / self.regions_file
        if not regions_path.exists():
            if not self.root.is_dir():
                return []
            return sorted(p.name for p in self.root.iterdir() if p.is_dir())

        with regions_path.open('r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{regions_path} must map countries to levels")

        names: List[str] = []
        for country_name, levels in data.items():
            if country is not None and str(country_name).lower() != str(country).lower():
                continue
            for level_key, entries in (levels or {}).items():
                if level is not None and int(level_key) != int(level):
                    continue
                names.extend(str(entry) for entry in entries or [])
        return sorted(set(names))
