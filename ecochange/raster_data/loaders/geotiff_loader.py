# ecochange/raster_data/loaders/geotiff_loader.py
"""GeoTIFF reading and writing for layers and stacks."""

from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
import rasterio
from rasterio.errors import RasterioIOError

from ...abstractions.types import (
    LayerKind, LayerRole, LayerNotFound, RasterLayer, RasterStack, default_nodata
)
from ...infrastructure.logging import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]

# Tag keys used to round-trip layer semantics through GeoTIFF band tags
KIND_TAG = 'ECOCHANGE_KIND'
ROLE_TAG = 'ECOCHANGE_ROLE'


def can_handle(file_path: Path) -> bool:
    """Check if a path looks like a GeoTIFF."""
    return Path(file_path).suffix.lower() in ('.tif', '.tiff', '.gtiff')


def read_layer(file_path: PathLike,
               name: Optional[str] = None,
               kind: Optional[Union[LayerKind, str]] = None,
               role: Optional[Union[LayerRole, str]] = None,
               band: int = 1) -> RasterLayer:
    """Read one band of a raster file into a RasterLayer.

    Missing no-data values get a dtype-appropriate sentinel. Kind and role
    fall back to band tags written by ``write_stack``, then to
    categorical / other.
    """
    file_path = Path(file_path)
    try:
        with rasterio.open(file_path) as src:
            if band < 1 or band > src.count:
                raise LayerNotFound(f"Band {band} not in {file_path.name} ({src.count} bands)")
            data = src.read(band)
            tags = src.tags(band)
            nodata = src.nodatavals[band - 1]
            if nodata is None:
                nodata = default_nodata(data.dtype)
                logger.debug(f"{file_path.name}: no nodata set, using {nodata}")
            description = src.descriptions[band - 1]
            layer = RasterLayer(
                data=data,
                transform=src.transform,
                crs=src.crs.to_string() if src.crs else None,
                nodata=nodata,
                name=name or description or file_path.stem,
                kind=kind or tags.get(KIND_TAG, LayerKind.CATEGORICAL.value),
                role=role or tags.get(ROLE_TAG, LayerRole.OTHER.value),
            )
    except RasterioIOError as e:
        raise LayerNotFound(f"Cannot open raster {file_path}: {e}", e)

    logger.debug(f"Read {layer!r} from {file_path.name}")
    return layer


def read_stack(file_path: PathLike) -> RasterStack:
    """Read every band of a multi-band raster as one stack."""
    file_path = Path(file_path)
    try:
        with rasterio.open(file_path) as src:
            count = src.count
    except RasterioIOError as e:
        raise LayerNotFound(f"Cannot open raster {file_path}: {e}", e)
    return RasterStack(tuple(read_layer(file_path, band=b) for b in range(1, count + 1)))


def _common_dtype(stack: RasterStack) -> np.dtype:
    dtype = np.result_type(*[layer.data.dtype for layer in stack])
    if dtype == np.bool_:
        return np.dtype('uint8')
    return dtype


def _fits(value: float, dtype: np.dtype) -> bool:
    if dtype.kind in 'iu':
        info = np.iinfo(dtype)
        return float(value).is_integer() and info.min <= value <= info.max
    return True


def _free_nodata(stack: RasterStack, dtype: np.dtype) -> Optional[float]:
    """A sentinel no valid cell of any layer holds once cast to ``dtype``."""
    taken = np.unique(np.concatenate([
        layer.data[layer.valid_mask].astype(dtype, copy=False).ravel() for layer in stack
    ]))
    candidates = [layer.nodata for layer in stack] + [default_nodata(dtype)]
    if dtype.kind in 'iu':
        info = np.iinfo(dtype)
        candidates += [info.max, info.min]
    else:
        candidates.append(np.nan)

    for value in candidates:
        if _fits(value, dtype) and not np.isin(np.asarray([value], dtype=dtype), taken).any():
            return float(value)

    if dtype.kind in 'iu':
        # Both ends are taken, so any gap inside the taken range will do
        gaps = np.nonzero(np.diff(taken) > 1)[0]
        if gaps.size:
            return float(taken[gaps[-1] + 1] - 1)
    return None


def _band_encoding(stack: RasterStack) -> Tuple[np.dtype, float]:
    dtype = _common_dtype(stack)
    while True:
        nodata = _free_nodata(stack, dtype)
        if nodata is not None:
            return dtype, nodata
        # Every value of the integer type holds data
        dtype = np.dtype('float64') if dtype.itemsize >= 8 else np.dtype(f'int{dtype.itemsize * 16}')


def write_stack(stack: RasterStack, file_path: PathLike, compress: Optional[str] = 'lzw') -> Path:
    """Write a stack as a multi-band GeoTIFF.

    Band descriptions carry layer names and band tags carry kind and role.
    GeoTIFF stores one no-data value per dataset. Invalid cells of every
    layer are written with the first candidate (the layers' own no-data
    values, then dtype sentinels) that no valid cell of any layer holds,
    widening an integer dtype when all of its values are in use.
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    dtype, nodata = _band_encoding(stack)
    height, width = stack.shape

    profile = {
        'driver': 'GTiff',
        'height': height,
        'width': width,
        'count': len(stack),
        'dtype': dtype.name,
        'crs': stack.crs,
        'transform': stack.transform,
        'nodata': nodata,
    }
    if compress:
        profile['compress'] = compress

    with rasterio.open(file_path, 'w', **profile) as dst:
        for band, layer in enumerate(stack, start=1):
            data = np.where(layer.valid_mask, layer.data.astype(dtype, copy=False),
                            np.asarray(nodata, dtype=dtype))
            dst.write(data, band)
            dst.set_band_description(band, layer.name)
            dst.update_tags(band, **{
                KIND_TAG: layer.kind.value,
                ROLE_TAG: layer.role.value,
            })

    logger.info(f"Wrote {len(stack)} layers to {file_path}")
    return file_path


def write_layer(layer: RasterLayer, file_path: PathLike, compress: Optional[str] = 'lzw') -> Path:
    return write_stack(RasterStack((layer,)), file_path, compress=compress)
