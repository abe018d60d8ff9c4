# tests/conftest.py
import os

# Keep user config files out of the test run
os.environ.setdefault('FORCE_TEST_MODE', 'true')

from pathlib import Path
from typing import Dict

import numpy as np
import pytest
import rasterio
import yaml
from rasterio.transform import from_origin

from ecochange.abstractions.interfaces import ISourceCatalog
from ecochange.abstractions.types import (
    LayerKind, LayerNotFound, LayerRole, RasterLayer, RasterStack, Region
)

UTM_CRS = "EPSG:32618"
ORIGIN = (500000.0, 1000000.0)
RES = 30.0


def build_layer(data, name="layer", kind=LayerKind.CATEGORICAL, role=LayerRole.OTHER,
                nodata=255, res=RES, origin=ORIGIN, crs=UTM_CRS):
    return RasterLayer(
        data=np.asarray(data),
        transform=from_origin(origin[0], origin[1], res, res),
        crs=crs,
        nodata=nodata,
        name=name,
        kind=kind,
        role=role,
    )


def layer_region(layer: RasterLayer, name="testland") -> Region:
    return Region.from_bounds(layer.bounds, crs=layer.crs, name=name)


def write_geotiff(path: Path, data: np.ndarray, nodata=255, res=RES,
                  origin=ORIGIN, crs=UTM_CRS) -> Path:
    """Write a single-band GeoTIFF with rasterio."""
    data = np.asarray(data)
    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(
        path, 'w', driver='GTiff',
        height=data.shape[0], width=data.shape[1], count=1,
        dtype=data.dtype.name, crs=crs,
        transform=from_origin(origin[0], origin[1], res, res),
        nodata=nodata,
    ) as dst:
        dst.write(data, 1)
    return path


class CountingCatalog(ISourceCatalog):
    """In-memory catalog that records every fetch."""

    def __init__(self, paths: Dict[str, Path]):
        self.paths = dict(paths)
        self.fetch_calls = []

    def fetch(self, region_name, layer_name):
        self.fetch_calls.append((region_name, layer_name))
        if layer_name not in self.paths:
            raise LayerNotFound(f"Layer '{layer_name}' not found for region '{region_name}'")
        return self.paths[layer_name]

    def list_layers(self):
        return sorted(self.paths)

    def list_regions(self, level=None, country=None):
        return ["testland"]


@pytest.fixture
def make_layer():
    """Factory for synthetic layers on a 30 m UTM grid."""
    return build_layer


@pytest.fixture
def eco_values():
    return np.array([
        [100, 96, 50],
        [97, 99, 100],
        [255, 95, 94],
    ], dtype=np.uint8)


@pytest.fixture
def change_values():
    return np.array([
        [0, 3, 5],
        [7, 12, 20],
        [1, 0, 8],
    ], dtype=np.uint8)


@pytest.fixture
def eco_layer(eco_values):
    return build_layer(eco_values, name="treecover2000", role=LayerRole.ECOSYSTEM)


@pytest.fixture
def change_layer(change_values):
    return build_layer(change_values, name="lossyear", role=LayerRole.CHANGE)


@pytest.fixture
def forest_stack(eco_layer, change_layer):
    """3x3 treecover / loss-year stack with one no-data ecosystem cell."""
    return RasterStack((eco_layer, change_layer))


@pytest.fixture
def random_stack():
    """40x40 treecover and loss-year layers drawn from a fixed seed."""
    rng = np.random.default_rng(42)
    treecover = rng.integers(0, 101, size=(40, 40)).astype(np.uint8)
    treecover[:3, :3] = 255
    lossyear = rng.integers(0, 21, size=(40, 40)).astype(np.uint8)
    return RasterStack((
        build_layer(treecover, name="treecover2000", role=LayerRole.ECOSYSTEM),
        build_layer(lossyear, name="lossyear", role=LayerRole.CHANGE),
    ))


@pytest.fixture
def region(eco_layer):
    return layer_region(eco_layer)


@pytest.fixture
def catalog_root(tmp_path):
    """Catalog directory with one region holding two products."""
    root = tmp_path / "catalog"
    rng = np.random.default_rng(7)
    write_geotiff(root / "testland" / "hansen_treecover2000_v1.tif",
                  rng.integers(0, 101, size=(20, 20)).astype(np.uint8))
    write_geotiff(root / "testland" / "hansen_lossyear_v1.tif",
                  rng.integers(0, 21, size=(20, 20)).astype(np.uint8))
    (root / "otherland").mkdir(parents=True)

    with (root / "regions.yml").open('w') as f:
        yaml.safe_dump({
            'Colombia': {1: ['testland', 'antioquia'], 2: ['medellin']},
            'Peru': {1: ['loreto']},
        }, f)
    return root


@pytest.fixture
def catalog_region():
    """Region matching the 20x20 rasters written by ``catalog_root``."""
    minx, maxy = ORIGIN
    return Region.from_bounds(
        (minx, maxy - 20 * RES, minx + 20 * RES, maxy), crs=UTM_CRS, name="testland"
    )


@pytest.fixture
def counting_catalog(catalog_root):
    return CountingCatalog({
        'treecover2000': catalog_root / "testland" / "hansen_treecover2000_v1.tif",
        'lossyear': catalog_root / "testland" / "hansen_lossyear_v1.tif",
    })
