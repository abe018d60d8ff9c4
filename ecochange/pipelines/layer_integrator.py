# ecochange/pipelines/layer_integrator.py
"""Assemble aligned layer stacks for a region from a source catalog."""

import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..abstractions.interfaces import ISourceCatalog
from ..abstractions.types import (
    LayerKind, LayerNotFound, LayerRole, RasterStack, Region
)
from ..config import config as global_config
from ..domain.resampling import StackCacheManager
from ..infrastructure.logging import get_logger, log_operation
from ..processors.data_preparation import AlignmentConfig, GridAligner
from ..raster_data.loaders import read_layer

logger = get_logger(__name__)


class LayerIntegrator:
    """Fetch, read and align named layers for one region.

    Kinds and roles not given by the caller come from the ``products``
    configuration section. Integrated stacks are cached by region identity,
    layer names, CRS, resolution and the kind and role of each layer.
    """

    def __init__(self, catalog: ISourceCatalog,
                 aligner: Optional[GridAligner] = None,
                 cache: Optional[StackCacheManager] = None,
                 config=None):
        self.catalog = catalog
        self.config = config or global_config
        self.aligner = aligner or GridAligner(AlignmentConfig.from_config(self.config))
        self.cache = cache or StackCacheManager(self.config)

        self._fetched: Dict[Tuple[str, str, str], Path] = {}
        self._fetch_lock = threading.Lock()

    @log_operation("integrate", stage=True)
    def integrate(self, region: Region, layer_names: Sequence[str],
                  kinds=None, roles=None) -> RasterStack:
        """
        Build an aligned stack of ``layer_names`` over ``region``.

        Args:
            region: Area of interest
            layer_names: Product names, in output order
            kinds: Optional kinds, as a mapping by name or a sequence
                parallel to ``layer_names``
            roles: Optional roles, same shapes as ``kinds``

        Returns:
            RasterStack in request order

        Raises:
            LayerNotFound: If any layer cannot be resolved; nothing is
                aligned in that case
        """
        names = list(layer_names)
        if not names:
            raise ValueError("At least one layer name is required")
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate layer names requested: {names}")

        layer_kinds = self._declarations(names, kinds, 'kind', LayerKind)
        layer_roles = self._declarations(names, roles, 'role', LayerRole)

        key = self.cache.get_cache_key(
            region.identity, names, region.crs, self._resolution_key(),
            [f"{kind.value}:{role.value}" for kind, role in zip(layer_kinds, layer_roles)],
        )
        return self.cache.get_or_create(
            key,
            lambda: self._build(region, names, layer_kinds, layer_roles),
            region.identity,
        )

    def _build(self, region: Region, names: List[str],
               kinds: List[LayerKind], roles: List[LayerRole]) -> RasterStack:
        # Resolve everything before reading so a missing layer aborts early
        paths = [self.fetch(region, name) for name in names]

        layers = [
            read_layer(path, name=name, kind=kind, role=role)
            for path, name, kind, role in zip(paths, names, kinds, roles)
        ]
        logger.info(f"Aligning {len(layers)} layers for region '{region.name or region.identity}'")
        return self.aligner.align(layers, region)

    def fetch(self, region: Region, layer_name: str) -> Path:
        """Resolve one layer path, memoised per region, layer and resolution."""
        key = (region.identity, layer_name, str(self._resolution_key()))
        with self._fetch_lock:
            if key in self._fetched:
                return self._fetched[key]

        region_name = region.name or region.identity
        try:
            path = self.catalog.fetch(region_name, layer_name)
        except LayerNotFound:
            raise
        except (OSError, KeyError) as e:
            raise LayerNotFound(
                f"Layer '{layer_name}' could not be fetched for region '{region_name}': {e}", e
            )

        with self._fetch_lock:
            self._fetched[key] = Path(path)
        return Path(path)

    def _resolution_key(self) -> Optional[Tuple[float, float]]:
        resolution = self.aligner.config.target_resolution
        if resolution:
            return (float(resolution), float(resolution))
        return None

    def _declarations(self, names: List[str], given, field_name: str, enum_type) -> list:
        products = self.config.get('products', {}) or {}
        default = LayerKind.CATEGORICAL if enum_type is LayerKind else LayerRole.OTHER

        if given is None:
            values = [(products.get(name) or {}).get(field_name) for name in names]
        elif isinstance(given, Mapping):
            values = [
                given.get(name, (products.get(name) or {}).get(field_name))
                for name in names
            ]
        else:
            values = list(given)
            if len(values) != len(names):
                raise ValueError(
                    f"Got {len(values)} {field_name}s for {len(names)} layers"
                )

        return [enum_type(value) if value is not None else default for value in values]
