# ecochange/spatial_analysis/grid_sampler.py
"""
Block sampling of layers into a coarser grid of metric values.

Each output cell summarises a square block of input pixels with a sample
metric. The block size is either given or searched for by doubling from
the native resolution until every block holding data yields a metric.
"""

import math
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

import numpy as np
from rasterio.transform import Affine

from ..abstractions.types import (
    GridSizeUnresolved, LayerKind, RasterLayer, RasterStack
)
from ..biodiversity_analysis.metrics import get_sample_metric
from ..config import config as global_config
from ..infrastructure.logging import get_logger, layer_scope, log_operation
from ..utils.parallel import run_parallel

logger = get_logger(__name__)

MetricSpec = Union[str, Callable[[RasterLayer], float]]


@dataclass(frozen=True)
class SampleGrid:
    """Block geometry of a sampled layer."""
    pixels: int
    cell_size: Tuple[float, float]
    shape: Tuple[int, int]
    transform: Affine

    @classmethod
    def for_layer(cls, layer: RasterLayer, pixels: int) -> 'SampleGrid':
        xres, yres = layer.resolution
        shape = (math.ceil(layer.height / pixels), math.ceil(layer.width / pixels))
        return cls(
            pixels=pixels,
            cell_size=(xres * pixels, yres * pixels),
            shape=shape,
            transform=layer.transform * Affine.scale(pixels),
        )


@dataclass
class SamplingConfig:
    """Configuration for grid sampling."""
    max_doublings: int = 10
    default_metric: str = 'condent'
    output_nodata: float = -9999.0
    entropy_base: Optional[float] = None

    @classmethod
    def from_config(cls, config=None) -> 'SamplingConfig':
        config = config or global_config
        return cls(
            max_doublings=config.get('sampling.max_doublings', 10),
            default_metric=config.get('sampling.default_metric', 'condent'),
            output_nodata=config.get('sampling.output_nodata', -9999.0),
            entropy_base=config.get('sampling.entropy_base'),
        )


class GridSampler:
    """Sample every layer of a stack on a grid of square blocks.

    ``settings`` is the configuration the worker pool reads its ceiling from.
    """

    def __init__(self, config: Optional[SamplingConfig] = None, settings=None):
        self.settings = settings or global_config
        self.config = config or SamplingConfig.from_config(self.settings)

    @log_operation("sampleIndicator", log_args=True, stage=True)
    def sample(self, stack: RasterStack, cell_size: Optional[float] = None,
               metric: Optional[MetricSpec] = None, parallelism: int = 1) -> RasterStack:
        """
        Sample a metric on square cells over every layer.

        Args:
            stack: Aligned stack to sample
            cell_size: Cell side in CRS units, rounded to whole pixels;
                None searches for the smallest workable size
            metric: Callable taking a layer window, or a built-in name
                (``condent``, ``ent``, ``joinent``, ``mutinf``, ``mean``)
            parallelism: Worker threads for per-layer work

        Returns:
            Stack of float64 layers on the block grid, no-data where a cell
            held no valid pixel or the metric was not finite

        Raises:
            UnknownMetric: If ``metric`` names no built-in metric
            GridSizeUnresolved: If no cell size satisfies the search
        """
        func, metric_name = self._metric(metric)
        layers = list(stack)

        if cell_size is None:
            pixels, sampled = self._search(stack, func, parallelism)
        else:
            if cell_size <= 0:
                raise ValueError(f"cell_size must be positive, got {cell_size}")
            pixels = max(1, int(round(cell_size / stack.resolution[0])))
            sampled = run_parallel(
                lambda layer: self._sample_values(layer, pixels, func),
                layers, max_workers=parallelism, config=self.settings
            )

        grid = SampleGrid.for_layer(layers[0], pixels)
        logger.info(
            f"Sampled {metric_name} over {len(layers)} layers with {pixels}-pixel cells "
            f"({grid.cell_size[0]:g} units, grid {grid.shape})"
        )
        return RasterStack(tuple(
            self._to_layer(layer, grid, values)
            for layer, (values, _) in zip(layers, sampled)
        ))

    def _metric(self, metric: Optional[MetricSpec]) -> Tuple[Callable[[RasterLayer], float], str]:
        if metric is None:
            metric = self.config.default_metric
        if callable(metric):
            return metric, getattr(metric, '__name__', 'custom')
        return get_sample_metric(metric, base=self.config.entropy_base), metric

    def _search(self, stack: RasterStack, func, parallelism: int):
        for layer in stack:
            if layer.valid_count == 0:
                raise GridSizeUnresolved(
                    f"Layer '{layer.name}' has no valid cells, no cell size can be resolved"
                )

        largest = max(stack.shape)
        pixels = 1
        for doubling in range(self.config.max_doublings + 1):
            sampled = run_parallel(
                lambda layer: self._sample_values(layer, pixels, func),
                list(stack), max_workers=parallelism, config=self.settings
            )
            failing = [
                layer.name for layer, (values, bearing) in zip(stack, sampled)
                if not self._acceptable(values, bearing)
            ]
            if not failing:
                logger.debug(f"Cell size resolved at {pixels} pixels after {doubling} doublings")
                return pixels, sampled

            logger.debug(f"{pixels}-pixel cells rejected for layers {failing}")
            if pixels >= largest:
                raise GridSizeUnresolved(
                    f"Cells of {pixels} pixels already cover the {stack.shape} grid "
                    f"and layers {failing} still lack valid values"
                )
            pixels *= 2

        raise GridSizeUnresolved(
            f"No workable cell size within {self.config.max_doublings} doublings "
            f"of the native resolution {stack.resolution}"
        )

    @staticmethod
    def _acceptable(values: np.ndarray, bearing: np.ndarray) -> bool:
        """Every block holding at least one valid pixel has a finite metric."""
        return bool(bearing.any()) and bool(np.isfinite(values[bearing]).all())

    def _sample_values(self, layer: RasterLayer, pixels: int, func) -> Tuple[np.ndarray, np.ndarray]:
        """Metric per block (NaN where undefined) and the data-bearing block mask."""
        with layer_scope(layer.name):
            rows = math.ceil(layer.height / pixels)
            cols = math.ceil(layer.width / pixels)
            values = np.full((rows, cols), np.nan)
            bearing = np.zeros((rows, cols), dtype=bool)

            for r in range(rows):
                for c in range(cols):
                    window = layer.window(r * pixels, c * pixels, pixels, pixels)
                    if window.valid_count == 0:
                        continue
                    bearing[r, c] = True
                    value = func(window)
                    values[r, c] = np.nan if value is None else float(value)

            values[~np.isfinite(values)] = np.nan
            return values, bearing

    def _to_layer(self, layer: RasterLayer, grid: SampleGrid, values: np.ndarray) -> RasterLayer:
        nodata = self.config.output_nodata
        data = np.where(np.isfinite(values), values, nodata).astype(np.float64)
        return RasterLayer(
            data=data,
            transform=grid.transform,
            crs=layer.crs,
            nodata=nodata,
            name=layer.name,
            kind=LayerKind.CONTINUOUS,
            role=layer.role,
        )
