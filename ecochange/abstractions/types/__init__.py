# ecochange/abstractions/types/__init__.py
"""Type definitions for the abstractions layer."""

# Errors
from .errors import (
    EcoChangeError, LayerNotFound, AmbiguousLayerMatch, GeometryMismatch,
    CRSUndefined, EmptyIntersection, UnknownMetric, GridSizeUnresolved
)

# Raster types
from .raster_types import (
    LayerKind, LayerRole, RasterLayer, RasterStack, ChangeMap, Region,
    default_nodata, format_label, normalize_crs, crs_equal
)

# Indicator types
from .indicator_types import IndicatorRecord, IndicatorTable

__all__ = [
    # Errors
    'EcoChangeError', 'LayerNotFound', 'AmbiguousLayerMatch', 'GeometryMismatch',
    'CRSUndefined', 'EmptyIntersection', 'UnknownMetric', 'GridSizeUnresolved',

    # Raster
    'LayerKind', 'LayerRole', 'RasterLayer', 'RasterStack', 'ChangeMap', 'Region',
    'default_nodata', 'format_label', 'normalize_crs', 'crs_equal',

    # Indicators
    'IndicatorRecord', 'IndicatorTable',
]
