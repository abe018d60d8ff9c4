# ecochange/abstractions/types/raster_types.py
"""Raster data model: layers, stacks, change maps and regions."""

import hashlib
import json
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np
import xarray as xr
from rasterio.crs import CRS
from rasterio.transform import Affine, array_bounds
from rasterio.warp import transform_geom
from shapely import wkt as shapely_wkt
from shapely.geometry import box, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from .errors import GeometryMismatch, LayerNotFound

# Mean earth radius (IUGG) used for geographic cell areas
EARTH_RADIUS_M = 6371008.8


class LayerKind(Enum):
    """Value semantics of a layer; drives the resampling method."""
    CATEGORICAL = "categorical"
    CONTINUOUS = "continuous"


class LayerRole(Enum):
    """Declared role of a layer within a stack."""
    ECOSYSTEM = "ecosystem"
    CHANGE = "change"
    OTHER = "other"


def normalize_crs(crs: Any) -> Optional[str]:
    """Return a canonical string for any CRS input, or None when unset."""
    if crs is None or crs == "":
        return None
    return CRS.from_user_input(crs).to_string()


def crs_equal(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return a is b
    return CRS.from_user_input(a) == CRS.from_user_input(b)


def default_nodata(dtype) -> float:
    """Pick a no-data sentinel representable in ``dtype``."""
    dtype = np.dtype(dtype)
    if dtype.kind == 'u':
        return float(np.iinfo(dtype).max)
    if dtype.kind == 'i':
        return float(max(np.iinfo(dtype).min, -9999))
    if dtype.kind == 'b':
        return 0.0
    return -9999.0


def format_label(value: float) -> str:
    """Render a threshold or class value without a trailing ``.0``."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


@dataclass(frozen=True, eq=False)
class RasterLayer:
    """A single immutable raster band with its grid geometry.

    The array is copied on construction and marked read-only, so a layer
    can be shared freely between workers.
    """
    data: np.ndarray
    transform: Affine
    crs: Optional[str]
    nodata: float
    name: str
    kind: LayerKind = LayerKind.CATEGORICAL
    role: LayerRole = LayerRole.OTHER

    def __post_init__(self):
        array = np.array(self.data, copy=True)
        if array.ndim != 2:
            raise ValueError(f"Layer '{self.name}' must be 2-D, got shape {array.shape}")
        array.flags.writeable = False
        object.__setattr__(self, 'data', array)
        object.__setattr__(self, 'crs', normalize_crs(self.crs))
        object.__setattr__(self, 'nodata', float(self.nodata))
        object.__setattr__(self, 'kind', LayerKind(self.kind))
        object.__setattr__(self, 'role', LayerRole(self.role))

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def resolution(self) -> Tuple[float, float]:
        """Cell size as positive (x, y) distances in CRS units."""
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Extent as (minx, miny, maxx, maxy)."""
        return _bounds(self)

    @property
    def valid_mask(self) -> np.ndarray:
        """Boolean array, True where the cell holds a measurement."""
        valid = self.data != self.nodata
        if self.data.dtype.kind == 'f':
            valid &= np.isfinite(self.data)
        return valid

    @property
    def valid_count(self) -> int:
        return int(self.valid_mask.sum())

    @property
    def is_geographic(self) -> bool:
        return self.crs is not None and CRS.from_user_input(self.crs).is_geographic

    def cell_areas_m2(self) -> np.ndarray:
        """Area of each row's cells in square metres, broadcastable to ``shape``.

        Projected (or undefined) CRS: planar area in squared CRS units.
        Geographic CRS: exact spherical area of each latitude band.
        """
        xres, yres = self.resolution
        if not self.is_geographic:
            return np.full((self.height, 1), xres * yres, dtype=np.float64)

        top = self.transform.f
        step = self.transform.e
        edges = top + step * np.arange(self.height + 1)
        lat = np.radians(np.clip(edges, -90.0, 90.0))
        band = np.abs(np.sin(lat[:-1]) - np.sin(lat[1:]))
        areas = EARTH_RADIUS_M ** 2 * math.radians(xres) * band
        return areas.reshape(-1, 1)

    def geometry_key(self) -> Tuple:
        """Hashable description of the grid for alignment checks."""
        return (self.shape, tuple(round(v, 9) for v in self.transform[:6]), self.crs)

    def with_data(self, data: np.ndarray, **changes) -> 'RasterLayer':
        """Return a new layer on the same grid with different cell values."""
        return replace(self, data=data, **changes)

    def with_name(self, name: str) -> 'RasterLayer':
        return replace(self, name=name)

    def window(self, row: int, col: int, height: int, width: int) -> 'RasterLayer':
        """Return the sub-layer starting at (row, col), clipped to the grid."""
        data = self.data[row:row + height, col:col + width]
        transform = self.transform * Affine.translation(col, row)
        return replace(self, data=data, transform=transform)

    def __repr__(self) -> str:
        return (f"RasterLayer(name={self.name!r}, shape={self.shape}, crs={self.crs!r}, "
                f"kind={self.kind.value}, role={self.role.value})")


def _bounds(layer: RasterLayer) -> Tuple[float, float, float, float]:
    west, south, east, north = array_bounds(layer.height, layer.width, layer.transform)
    return (min(west, east), min(south, north), max(west, east), max(south, north))


@dataclass(frozen=True, eq=False)
class RasterStack:
    """Ordered, pixel-aligned sequence of named layers."""
    layers: Tuple[RasterLayer, ...]

    def __post_init__(self):
        layers = tuple(self.layers)
        if not layers:
            raise ValueError("A raster stack needs at least one layer")
        object.__setattr__(self, 'layers', layers)

        reference = layers[0]
        for layer in layers[1:]:
            if layer.geometry_key() != reference.geometry_key():
                raise GeometryMismatch(
                    f"Layer '{layer.name}' is not pixel-aligned with '{reference.name}': "
                    f"{layer.shape}/{layer.transform}/{layer.crs} vs "
                    f"{reference.shape}/{reference.transform}/{reference.crs}"
                )

        names = [layer.name for layer in layers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate layer names in stack: {duplicates}")

    def __len__(self) -> int:
        return len(self.layers)

    def __iter__(self) -> Iterator[RasterLayer]:
        return iter(self.layers)

    def __getitem__(self, key: Union[int, str]) -> RasterLayer:
        if isinstance(key, str):
            for layer in self.layers:
                if layer.name == key:
                    return layer
            raise LayerNotFound(f"No layer named '{key}' in stack {self.names}")
        return self.layers[key]

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(layer.name for layer in self.layers)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.layers[0].shape

    @property
    def transform(self) -> Affine:
        return self.layers[0].transform

    @property
    def crs(self) -> Optional[str]:
        return self.layers[0].crs

    @property
    def resolution(self) -> Tuple[float, float]:
        return self.layers[0].resolution

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return self.layers[0].bounds

    def geometry_equals(self, other: 'RasterStack') -> bool:
        return self.layers[0].geometry_key() == other.layers[0].geometry_key()

    def equals(self, other: 'RasterStack') -> bool:
        """Cell-for-cell equality including names and geometry."""
        if self.names != other.names or not self.geometry_equals(other):
            return False
        return all(
            a.nodata == b.nodata and np.array_equal(a.data, b.data)
            for a, b in zip(self.layers, other.layers)
        )

    def to_xarray(self) -> xr.DataArray:
        """Export as a (layer, y, x) DataArray with no-data as NaN."""
        arrays = []
        for layer in self.layers:
            values = layer.data.astype(np.float64)
            values[~layer.valid_mask] = np.nan
            arrays.append(values)

        transform = self.transform
        xs = transform.c + transform.a * (np.arange(self.shape[1]) + 0.5)
        ys = transform.f + transform.e * (np.arange(self.shape[0]) + 0.5)
        return xr.DataArray(
            np.stack(arrays),
            dims=('layer', 'y', 'x'),
            coords={'layer': list(self.names), 'y': ys, 'x': xs},
            attrs={'crs': self.crs, 'transform': tuple(transform)[:6]},
        )


@dataclass(frozen=True, eq=False)
class ChangeMap(RasterStack):
    """Stack of masked ecosystem layers, one per change threshold."""
    thresholds: Tuple[float, ...] = ()
    binary: bool = False
    cumulative: bool = True
    eco_layer: Optional[str] = None
    change_layer: Optional[str] = None

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, 'thresholds', tuple(float(t) for t in self.thresholds))
        if self.thresholds and len(self.thresholds) != len(self.layers):
            raise ValueError(
                f"Change map has {len(self.layers)} layers but {len(self.thresholds)} thresholds"
            )


@dataclass(frozen=True)
class Region:
    """Target polygon used to crop and align rasters."""
    geometry: BaseGeometry
    crs: Optional[str] = None
    name: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        if self.geometry is None or self.geometry.is_empty:
            raise GeometryMismatch(f"Region '{self.name}' has an empty geometry")
        geometry = self.geometry
        if not geometry.is_valid:
            geometry = geometry.buffer(0)
        object.__setattr__(self, 'geometry', geometry)
        object.__setattr__(self, 'crs', normalize_crs(self.crs))

    @classmethod
    def from_bounds(cls, bounds: Sequence[float], crs: Any = None,
                    name: Optional[str] = None) -> 'Region':
        xmin, ymin, xmax, ymax = map(float, bounds)
        if xmin >= xmax or ymin >= ymax:
            raise GeometryMismatch(f"Invalid region bounds {bounds} for '{name}'")
        return cls(box(xmin, ymin, xmax, ymax), crs=crs, name=name)

    @classmethod
    def from_wkt(cls, text: str, crs: Any = None, name: Optional[str] = None) -> 'Region':
        return cls(shapely_wkt.loads(text), crs=crs, name=name)

    @classmethod
    def from_geojson(cls, source: Union[str, Path, Dict[str, Any]], crs: Any = "EPSG:4326",
                     name: Optional[str] = None) -> 'Region':
        """Build a region from a GeoJSON mapping or file.

        Feature collections are dissolved into one geometry. GeoJSON is
        WGS84 unless the caller says otherwise.
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            with path.open('r', encoding='utf-8') as f:
                data = json.load(f)
            name = name or path.stem
        else:
            data = source

        kind = data.get('type')
        if kind == 'FeatureCollection':
            geometry = unary_union([shape(f['geometry']) for f in data.get('features', [])])
        elif kind == 'Feature':
            geometry = shape(data['geometry'])
        else:
            geometry = shape(data)
        return cls(geometry, crs=crs, name=name)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return tuple(self.geometry.bounds)

    @property
    def identity(self) -> str:
        """Stable identity: name plus a digest of the geometry."""
        digest = hashlib.md5(self.geometry.wkb).hexdigest()[:12]
        return f"{self.name or 'region'}-{digest}"

    def to_crs(self, crs: Any) -> 'Region':
        """Return the region reprojected to ``crs``."""
        target = normalize_crs(crs)
        if self.crs is None or target is None or crs_equal(self.crs, target):
            return replace(self, crs=target or self.crs)
        geometry = shape(transform_geom(self.crs, target, mapping(self.geometry)))
        return replace(self, geometry=geometry, crs=target)
