# ecochange/processors/data_preparation/raster_alignment.py
"""
Raster alignment onto a shared grid derived from a target region.

Every layer is reprojected to one common CRS, cropped to the region and
resampled onto the same origin, resolution and shape, so downstream
masking can combine layers cell by cell.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from rasterio.features import geometry_mask
from rasterio.transform import Affine
from rasterio.warp import Resampling, calculate_default_transform, reproject, transform_bounds
from shapely.geometry import box, mapping

from ...abstractions.types import (
    CRSUndefined, GeometryMismatch, LayerKind, RasterLayer, RasterStack, Region, crs_equal
)
from ...config import config as global_config
from ...infrastructure.logging import get_logger, layer_scope
from ...infrastructure.logging.decorators import log_operation

logger = get_logger(__name__)


class ResamplingMethod(Enum):
    """Resampling methods used for reprojection."""
    NEAREST = Resampling.nearest
    BILINEAR = Resampling.bilinear


RESAMPLING_BY_KIND = {
    LayerKind.CATEGORICAL: ResamplingMethod.NEAREST,
    LayerKind.CONTINUOUS: ResamplingMethod.BILINEAR,
}


@dataclass
class AlignmentIssue:
    """Description of one alignment issue between two layers."""
    type: str
    description: str
    values: Dict[str, Any]


@dataclass
class AlignmentReport:
    """Alignment analysis of a set of layers against a reference layer."""
    aligned: bool
    issues: List[AlignmentIssue]
    reference_layer: str
    compared_layers: List[str]

    def issue_types(self) -> List[str]:
        return sorted({issue.type for issue in self.issues})


@dataclass
class AlignmentConfig:
    """Configuration for grid alignment."""
    target_resolution: Optional[float] = None
    mask_outside_region: bool = True
    all_touched: bool = False
    snap_to_resolution: bool = True
    resolution_tolerance: float = 1e-9

    @classmethod
    def from_config(cls, config=None) -> 'AlignmentConfig':
        config = config or global_config
        return cls(
            target_resolution=config.get('alignment.target_resolution'),
            mask_outside_region=config.get('alignment.mask_outside_region', True),
            all_touched=config.get('alignment.all_touched', False),
            snap_to_resolution=config.get('alignment.snap_to_resolution', True),
        )


@dataclass(frozen=True)
class TargetGrid:
    """The shared output grid."""
    crs: str
    transform: Affine
    width: int
    height: int

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def resolution(self) -> Tuple[float, float]:
        return (abs(self.transform.a), abs(self.transform.e))


class GridAligner:
    """Reproject, crop and resample layers onto one grid for a region."""

    def __init__(self, config: Optional[AlignmentConfig] = None):
        self.config = config or AlignmentConfig.from_config()

    @log_operation("align")
    def align(self, layers: Sequence[RasterLayer], target: Region) -> RasterStack:
        """
        Align layers onto a single grid derived from ``target``.

        Args:
            layers: Layers to align; each declares its kind, which picks
                nearest (categorical) or bilinear (continuous) resampling
            target: Region whose geometry bounds the output grid

        Returns:
            Stack of new layers in input order sharing one grid

        Raises:
            CRSUndefined: If neither the region nor any layer has a CRS
            GeometryMismatch: If the region misses a layer's extent
        """
        layers = list(layers)
        if not layers:
            raise ValueError("No layers given to align")

        dst_crs = self.common_crs(layers, target)
        region = target.to_crs(dst_crs) if target.crs else replace(target, crs=dst_crs)

        # Validate every layer before doing any work
        for layer in layers:
            self._check_overlap(layer, region, dst_crs)

        grid = self.target_grid(layers[0], region, dst_crs)
        logger.info(
            f"Target grid for '{region.name}': {grid.width}x{grid.height} @ "
            f"{grid.resolution} in {grid.crs}"
        )

        inside = None
        if self.config.mask_outside_region:
            inside = geometry_mask(
                [mapping(region.geometry)],
                out_shape=grid.shape,
                transform=grid.transform,
                all_touched=self.config.all_touched,
                invert=True,
            )

        aligned = []
        for layer in layers:
            with layer_scope(layer.name):
                aligned.append(self._reproject_layer(layer, grid, inside))

        report = self.check_alignment(aligned)
        if not report.aligned:
            raise GeometryMismatch(
                f"Alignment for region '{region.name}' left issues: {report.issue_types()}"
            )
        return RasterStack(tuple(aligned))

    def common_crs(self, layers: Sequence[RasterLayer], target: Region) -> str:
        """Region CRS when set, otherwise the CRS of the first layer that has one."""
        if target.crs:
            return target.crs
        for layer in layers:
            if layer.crs:
                return layer.crs
        raise CRSUndefined(
            f"Neither region '{target.name}' nor any of layers "
            f"{[layer.name for layer in layers]} defines a CRS"
        )

    def target_grid(self, reference: RasterLayer, region: Region, dst_crs: str) -> TargetGrid:
        """Derive the output grid from the reference layer and region bounds."""
        src_crs = reference.crs or dst_crs
        if crs_equal(src_crs, dst_crs):
            ref_transform = reference.transform
        else:
            ref_transform, _, _ = calculate_default_transform(
                src_crs, dst_crs, reference.width, reference.height, *reference.bounds
            )

        if self.config.target_resolution:
            xres = yres = float(self.config.target_resolution)
        else:
            xres, yres = abs(ref_transform.a), abs(ref_transform.e)

        minx, miny, maxx, maxy = region.bounds
        if self.config.snap_to_resolution:
            # Snap outward onto the reference layer's pixel lattice
            x0, y0 = ref_transform.c, ref_transform.f
            minx = x0 + math.floor((minx - x0) / xres + 1e-9) * xres
            maxx = x0 + math.ceil((maxx - x0) / xres - 1e-9) * xres
            maxy = y0 - math.floor((y0 - maxy) / yres + 1e-9) * yres
            miny = y0 - math.ceil((y0 - miny) / yres - 1e-9) * yres

        width = max(1, int(round((maxx - minx) / xres)))
        height = max(1, int(round((maxy - miny) / yres)))
        transform = Affine(xres, 0.0, minx, 0.0, -yres, maxy)
        return TargetGrid(crs=dst_crs, transform=transform, width=width, height=height)

    def _check_overlap(self, layer: RasterLayer, region: Region, dst_crs: str):
        src_crs = layer.crs
        if src_crs is None:
            logger.warning(f"Layer '{layer.name}' has no CRS, assuming {dst_crs}")
            src_crs = dst_crs

        bounds = layer.bounds
        if not crs_equal(src_crs, dst_crs):
            bounds = transform_bounds(src_crs, dst_crs, *bounds)

        footprint = box(*bounds)
        if not footprint.intersects(region.geometry) or footprint.touches(region.geometry):
            raise GeometryMismatch(
                f"Region '{region.name}' {tuple(round(v, 6) for v in region.bounds)} does not "
                f"intersect layer '{layer.name}' extent {tuple(round(v, 6) for v in bounds)}"
            )

    def _reproject_layer(self, layer: RasterLayer, grid: TargetGrid,
                         inside: Optional[np.ndarray]) -> RasterLayer:
        method = RESAMPLING_BY_KIND[layer.kind]
        source = np.array(layer.data)
        if source.dtype == np.bool_:
            source = source.astype(np.uint8)

        if method is ResamplingMethod.BILINEAR:
            source = source.astype(np.float64)
            dtype = np.float64
        else:
            dtype = source.dtype

        destination = np.full(grid.shape, layer.nodata, dtype=dtype)
        with logger.timed(f"reproject:{layer.name}") as timer:
            timer.metrics['cells_processed'] = grid.width * grid.height
            reproject(
                source=source,
                destination=destination,
                src_transform=layer.transform,
                src_crs=layer.crs or grid.crs,
                src_nodata=layer.nodata,
                dst_transform=grid.transform,
                dst_crs=grid.crs,
                dst_nodata=layer.nodata,
                resampling=method.value,
            )

        if inside is not None:
            destination[~inside] = layer.nodata

        logger.debug(
            f"Reprojected '{layer.name}' with {method.name.lower()} resampling: "
            f"{layer.shape} -> {grid.shape}"
        )
        return replace(layer, data=destination, transform=grid.transform, crs=grid.crs)

    def check_alignment(self, layers: Sequence[RasterLayer]) -> AlignmentReport:
        """Compare every layer's grid with the first one."""
        layers = list(layers)
        if len(layers) < 2:
            return AlignmentReport(
                aligned=True, issues=[],
                reference_layer=layers[0].name if layers else "",
                compared_layers=[]
            )

        reference = layers[0]
        issues: List[AlignmentIssue] = []
        for layer in layers[1:]:
            issues.extend(self._compare(reference, layer))

        return AlignmentReport(
            aligned=not issues,
            issues=issues,
            reference_layer=reference.name,
            compared_layers=[layer.name for layer in layers[1:]],
        )

    def _compare(self, ref: RasterLayer, other: RasterLayer) -> List[AlignmentIssue]:
        issues = []
        pair = f"{ref.name} and {other.name}"

        if not crs_equal(ref.crs, other.crs):
            issues.append(AlignmentIssue(
                "crs_mismatch", f"CRS mismatch between {pair}",
                {'reference': ref.crs, 'layer': other.crs}
            ))

        res_diff = max(abs(a - b) for a, b in zip(ref.resolution, other.resolution))
        if res_diff > self.config.resolution_tolerance:
            issues.append(AlignmentIssue(
                "resolution_mismatch", f"Resolution mismatch between {pair}",
                {'reference': ref.resolution, 'layer': other.resolution}
            ))

        if ref.shape != other.shape:
            issues.append(AlignmentIssue(
                "shape_mismatch", f"Shape mismatch between {pair}",
                {'reference': ref.shape, 'layer': other.shape}
            ))

        origin_diff = max(abs(ref.transform.c - other.transform.c),
                          abs(ref.transform.f - other.transform.f))
        if origin_diff > self.config.resolution_tolerance:
            issues.append(AlignmentIssue(
                "grid_misalignment", f"Pixel grid origin differs between {pair}",
                {'origin_difference': origin_diff}
            ))

        return issues
