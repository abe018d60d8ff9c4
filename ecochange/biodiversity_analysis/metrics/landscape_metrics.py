# ecochange/biodiversity_analysis/metrics/landscape_metrics.py
"""Built-in class-level landscape metrics.

Areas come from ``RasterLayer.cell_areas_m2`` so geographic layers are
measured on the sphere. Patches are connected components of the class
cells (8-neighbour by default, see ``indicators.patch_connectivity``).
"""

import math
from typing import Optional, Tuple

import numpy as np
from scipy import ndimage

from ...abstractions.interfaces import IMetricProvider
from ...abstractions.types import RasterLayer
from ...abstractions.types.raster_types import EARTH_RADIUS_M
from ...config import config as global_config
from .registry import MetricRegistry

M2_PER_HA = 10000.0


def class_mask(layer: RasterLayer, class_value: float) -> np.ndarray:
    return layer.valid_mask & (layer.data == class_value)


def cell_area_grid(layer: RasterLayer) -> np.ndarray:
    """Per-cell area in square metres with the layer's full shape."""
    return np.broadcast_to(layer.cell_areas_m2(), layer.shape)


def label_patches(mask: np.ndarray, connectivity: int = 8) -> Tuple[np.ndarray, int]:
    """Label connected patches of a boolean mask."""
    if connectivity not in (4, 8):
        raise ValueError(f"Patch connectivity must be 4 or 8, got {connectivity}")
    structure = ndimage.generate_binary_structure(2, 2 if connectivity == 8 else 1)
    labels, count = ndimage.label(mask, structure=structure)
    return labels, int(count)


def patch_areas_m2(layer: RasterLayer, class_value: float, connectivity: int = 8) -> np.ndarray:
    labels, count = label_patches(class_mask(layer, class_value), connectivity)
    if count == 0:
        return np.zeros(0)
    return np.asarray(
        ndimage.sum(cell_area_grid(layer), labels=labels, index=np.arange(1, count + 1))
    )


def _edge_lengths_m(layer: RasterLayer) -> Tuple[np.ndarray, np.ndarray]:
    """Lengths of shared cell edges.

    Returns the vertical edge length per row (between left/right
    neighbours) and the horizontal edge length per interior row boundary
    (between upper/lower neighbours).
    """
    xres, yres = layer.resolution
    if not layer.is_geographic:
        return (np.full(layer.height, yres), np.full(max(layer.height - 1, 0), xres))

    top, step = layer.transform.f, layer.transform.e
    boundaries = top + step * np.arange(1, layer.height)
    vertical = np.full(layer.height, EARTH_RADIUS_M * math.radians(yres))
    horizontal = EARTH_RADIUS_M * math.radians(xres) * np.cos(np.radians(boundaries))
    return vertical, horizontal


class _PatchMetric(IMetricProvider):
    def __init__(self, connectivity: Optional[int] = None):
        self.connectivity = connectivity or global_config.get('indicators.patch_connectivity', 8)


class ClassArea(IMetricProvider):
    """Total class area in hectares."""
    name = "area_ha"
    unit = "ha"

    def compute(self, layer: RasterLayer, class_value: float) -> float:
        mask = class_mask(layer, class_value)
        return float((cell_area_grid(layer) * mask).sum() / M2_PER_HA)


class CellCount(IMetricProvider):
    """Number of class cells."""
    name = "ncells"
    unit = "cells"

    def compute(self, layer: RasterLayer, class_value: float) -> float:
        return float(class_mask(layer, class_value).sum())


class PercentageOfLandscape(IMetricProvider):
    """Class area as a percentage of the valid landscape area."""
    name = "pland"
    unit = "%"

    def compute(self, layer: RasterLayer, class_value: float) -> float:
        areas = cell_area_grid(layer)
        total = (areas * layer.valid_mask).sum()
        if total == 0:
            return math.nan
        return float((areas * class_mask(layer, class_value)).sum() / total * 100.0)


class NumberOfPatches(_PatchMetric):
    name = "np"
    unit = "patches"

    def compute(self, layer: RasterLayer, class_value: float) -> float:
        _, count = label_patches(class_mask(layer, class_value), self.connectivity)
        return float(count)


class MeanPatchArea(_PatchMetric):
    name = "area_mn"
    unit = "ha"

    def compute(self, layer: RasterLayer, class_value: float) -> float:
        areas = patch_areas_m2(layer, class_value, self.connectivity)
        if areas.size == 0:
            return math.nan
        return float(areas.mean() / M2_PER_HA)


class LargestPatchIndex(_PatchMetric):
    """Largest patch area as a percentage of the valid landscape area."""
    name = "lpi"
    unit = "%"

    def compute(self, layer: RasterLayer, class_value: float) -> float:
        areas = patch_areas_m2(layer, class_value, self.connectivity)
        total = (cell_area_grid(layer) * layer.valid_mask).sum()
        if areas.size == 0 or total == 0:
            return math.nan
        return float(areas.max() / total * 100.0)


class TotalEdge(IMetricProvider):
    """Length of edges between class cells and any other cell, in metres.

    The outer boundary of the grid is not counted.
    """
    name = "te"
    unit = "m"

    def compute(self, layer: RasterLayer, class_value: float) -> float:
        mask = class_mask(layer, class_value)
        vertical, horizontal = _edge_lengths_m(layer)

        lateral = (mask[:, :-1] != mask[:, 1:]).sum(axis=1)
        stacked = (mask[:-1, :] != mask[1:, :]).sum(axis=1)
        return float((lateral * vertical).sum() + (stacked * horizontal).sum())


BUILTIN_METRICS = (
    ClassArea,
    CellCount,
    PercentageOfLandscape,
    NumberOfPatches,
    MeanPatchArea,
    LargestPatchIndex,
    TotalEdge,
)


def build_default_registry(config=None) -> MetricRegistry:
    """Registry holding every built-in metric, patch metrics using
    ``indicators.patch_connectivity`` from ``config`` (global settings by default)."""
    connectivity = (config or global_config).get('indicators.patch_connectivity', 8)
    registry = MetricRegistry("landscape")
    for provider_cls in BUILTIN_METRICS:
        if issubclass(provider_cls, _PatchMetric):
            registry.register(provider_cls(connectivity))
        else:
            registry.register(provider_cls())
    return registry


metric_registry = build_default_registry()
