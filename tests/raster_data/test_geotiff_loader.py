"""Tests for GeoTIFF reading and writing."""

import numpy as np
import pytest
import rasterio

from ecochange.abstractions.types import (
    LayerKind, LayerNotFound, LayerRole, RasterStack
)
from ecochange.raster_data.loaders import can_handle, read_layer, read_stack, write_layer, write_stack

from conftest import UTM_CRS, write_geotiff


class TestGeoTiffLoader:
    """Test GeoTIFF loader functionality."""

    def test_can_handle(self, tmp_path):
        assert can_handle(tmp_path / "a.tif")
        assert can_handle(tmp_path / "b.TIFF")
        assert not can_handle(tmp_path / "c.nc")

    def test_read_layer(self, tmp_path):
        """Test reading a plain single-band raster."""
        data = np.arange(12, dtype=np.uint8).reshape(3, 4)
        path = write_geotiff(tmp_path / "hansen_lossyear.tif", data)

        layer = read_layer(path, kind="categorical", role="change")

        np.testing.assert_array_equal(layer.data, data)
        assert layer.name == "hansen_lossyear"
        assert layer.crs == UTM_CRS
        assert layer.nodata == 255
        assert layer.resolution == (30.0, 30.0)
        assert layer.role is LayerRole.CHANGE

    def test_missing_nodata_gets_default(self, tmp_path):
        path = write_geotiff(tmp_path / "cover.tif", np.ones((2, 2), dtype=np.int16), nodata=None)
        assert read_layer(path).nodata == -9999

    def test_missing_file(self, tmp_path):
        with pytest.raises(LayerNotFound):
            read_layer(tmp_path / "nothing.tif")

    def test_missing_band(self, tmp_path):
        path = write_geotiff(tmp_path / "one.tif", np.ones((2, 2), dtype=np.uint8))
        with pytest.raises(LayerNotFound):
            read_layer(path, band=2)

    def test_stack_roundtrip_keeps_names_kinds_and_roles(self, tmp_path, forest_stack):
        """Test that band descriptions and tags carry layer semantics."""
        path = write_stack(forest_stack, tmp_path / "out" / "stack.tif")
        restored = read_stack(path)

        assert restored.names == forest_stack.names
        assert restored[0].role is LayerRole.ECOSYSTEM
        assert restored[1].role is LayerRole.CHANGE
        assert restored[0].kind is LayerKind.CATEGORICAL
        assert restored.equals(forest_stack)

    def test_mixed_dtypes_share_one_nodata(self, tmp_path, make_layer):
        cover = make_layer(np.array([[1.5, -9999.0], [3.0, 4.0]]), name="cover",
                           kind="continuous", nodata=-9999.0)
        loss = make_layer(np.array([[0, 255], [2, 3]], dtype=np.uint8), name="loss")
        path = write_stack(RasterStack((cover, loss)), tmp_path / "mixed.tif")

        with rasterio.open(path) as src:
            assert src.dtypes[0] == 'float64'
            assert src.nodata == -9999.0

        restored = read_stack(path)
        assert restored[1].valid_count == 3
        assert restored[0].kind is LayerKind.CONTINUOUS

    def test_shared_nodata_avoids_valid_values(self, tmp_path, make_layer):
        """Test that a valid 255 in a wider layer survives a uint8 no-data of 255."""
        mask = make_layer(np.array([[1, 2], [255, 4]], dtype=np.uint8), name="a")
        cover = make_layer(np.array([[255, 1], [2, 3]], dtype=np.int16), name="b", nodata=-9999)
        path = write_stack(RasterStack((mask, cover)), tmp_path / "collide.tif")

        with rasterio.open(path) as src:
            assert src.dtypes[0] == 'int16'
            assert src.nodata == -9999

        restored = read_stack(path)
        assert restored["a"].valid_count == 3
        assert restored["b"].valid_count == 4
        np.testing.assert_array_equal(restored["b"].data, cover.data)

    def test_exhausted_integer_range_widens_dtype(self, tmp_path, make_layer):
        values = np.arange(256, dtype=np.uint8).reshape(16, 16)
        low = make_layer(values, name="low", nodata=255)
        high = make_layer(values, name="high", nodata=0)
        path = write_stack(RasterStack((low, high)), tmp_path / "full.tif")

        restored = read_stack(path)
        assert restored[0].data.dtype == np.int16
        assert restored["low"].valid_count == 255
        assert restored["high"].valid_count == 255
        assert not restored["low"].valid_mask[15, 15]
        assert not restored["high"].valid_mask[0, 0]

    def test_write_layer(self, tmp_path, eco_layer):
        path = write_layer(eco_layer, tmp_path / "eco.tif")
        assert read_layer(path).name == "treecover2000"
