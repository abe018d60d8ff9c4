"""Tests for the raster data model."""

import json

import numpy as np
import pytest
import xarray as xr
from rasterio.transform import from_origin

from ecochange.abstractions.types import (
    ChangeMap, GeometryMismatch, IndicatorRecord, IndicatorTable, LayerKind,
    LayerNotFound, LayerRole, RasterLayer, RasterStack, Region,
    default_nodata, format_label
)

from conftest import build_layer, UTM_CRS


class TestRasterLayer:
    """Test RasterLayer construction and derived properties."""

    def test_data_is_copied_and_read_only(self):
        """Test that the layer owns a read-only copy of its array."""
        source = np.ones((2, 2), dtype=np.uint8)
        layer = build_layer(source)
        source[0, 0] = 9

        assert layer.data[0, 0] == 1
        with pytest.raises(ValueError):
            layer.data[0, 0] = 5

    def test_kind_and_role_accept_strings(self):
        layer = build_layer(np.zeros((2, 2)), kind="continuous", role="change")
        assert layer.kind is LayerKind.CONTINUOUS
        assert layer.role is LayerRole.CHANGE

    def test_rejects_non_2d_data(self):
        with pytest.raises(ValueError):
            build_layer(np.zeros((2, 2, 2)))

    def test_geometry_properties(self, eco_layer):
        """Test shape, resolution and bounds of a 3x3 30 m layer."""
        assert eco_layer.shape == (3, 3)
        assert eco_layer.resolution == (30.0, 30.0)
        assert eco_layer.bounds == pytest.approx((500000.0, 999910.0, 500090.0, 1000000.0))
        assert eco_layer.crs == UTM_CRS

    def test_valid_mask_excludes_nodata(self, eco_layer):
        assert eco_layer.valid_count == 8
        assert not eco_layer.valid_mask[2, 0]

    def test_valid_mask_excludes_nan(self):
        layer = build_layer(np.array([[1.0, np.nan], [-9999.0, 2.0]]), nodata=-9999.0)
        np.testing.assert_array_equal(layer.valid_mask, [[True, False], [False, True]])

    def test_planar_cell_area(self, eco_layer):
        areas = eco_layer.cell_areas_m2()
        assert areas.shape == (3, 1)
        np.testing.assert_allclose(areas, 900.0)

    def test_geographic_cell_area_shrinks_poleward(self):
        """Test that geographic cells are measured on the sphere."""
        layer = RasterLayer(
            data=np.ones((3, 1), dtype=np.uint8),
            transform=from_origin(0.0, 90.0, 1.0, 30.0),
            crs="EPSG:4326",
            nodata=255,
            name="geo",
        )
        areas = layer.cell_areas_m2().ravel()

        assert areas[0] < areas[1] < areas[2]
        # 1 degree by 1 degree at the equator is about 12,364 km2
        equator = RasterLayer(
            data=np.ones((1, 1), dtype=np.uint8),
            transform=from_origin(0.0, 1.0, 1.0, 1.0),
            crs="EPSG:4326", nodata=255, name="eq",
        )
        assert equator.cell_areas_m2()[0, 0] == pytest.approx(1.2364e10, rel=1e-3)

    def test_window_clips_and_shifts_transform(self, eco_layer):
        window = eco_layer.window(1, 1, 5, 5)
        assert window.shape == (2, 2)
        assert window.transform.c == pytest.approx(500030.0)
        assert window.transform.f == pytest.approx(999970.0)

    def test_with_data_keeps_grid(self, eco_layer):
        derived = eco_layer.with_data(np.zeros((3, 3), dtype=np.uint8), name="zeros")
        assert derived.geometry_key() == eco_layer.geometry_key()
        assert derived.name == "zeros"
        assert eco_layer.name == "treecover2000"


class TestHelpers:
    """Test module-level helpers."""

    def test_format_label_drops_trailing_zero(self):
        assert format_label(20.0) == "20"
        assert format_label(2.5) == "2.5"

    def test_default_nodata(self):
        assert default_nodata(np.uint8) == 255
        assert default_nodata(np.int16) == -9999
        assert default_nodata(np.float32) == -9999.0


class TestRasterStack:
    """Test RasterStack validation and access."""

    def test_requires_layers(self):
        with pytest.raises(ValueError):
            RasterStack(())

    def test_rejects_misaligned_layers(self, eco_layer):
        shifted = build_layer(np.zeros((3, 3), dtype=np.uint8), name="shifted",
                              origin=(500015.0, 1000000.0))
        with pytest.raises(GeometryMismatch):
            RasterStack((eco_layer, shifted))

    def test_rejects_duplicate_names(self, eco_layer):
        with pytest.raises(ValueError):
            RasterStack((eco_layer, eco_layer))

    def test_indexing(self, forest_stack):
        assert len(forest_stack) == 2
        assert forest_stack.names == ("treecover2000", "lossyear")
        assert forest_stack[1].name == "lossyear"
        assert forest_stack["treecover2000"].role is LayerRole.ECOSYSTEM
        with pytest.raises(LayerNotFound):
            forest_stack["gain"]

    def test_equals_is_cell_for_cell(self, forest_stack, eco_layer, change_layer):
        same = RasterStack((eco_layer, change_layer))
        other = RasterStack((eco_layer, change_layer.with_data(np.zeros((3, 3), dtype=np.uint8))))

        assert forest_stack.equals(same)
        assert not forest_stack.equals(other)

    def test_to_xarray(self, forest_stack):
        """Test export to a (layer, y, x) DataArray with NaN no-data."""
        array = forest_stack.to_xarray()

        assert isinstance(array, xr.DataArray)
        assert array.dims == ('layer', 'y', 'x')
        assert list(array.coords['layer'].values) == ["treecover2000", "lossyear"]
        assert np.isnan(array.sel(layer="treecover2000").values[2, 0])
        assert array.coords['x'].values[0] == pytest.approx(500015.0)

    def test_change_map_checks_threshold_count(self, eco_layer):
        with pytest.raises(ValueError):
            ChangeMap(layers=(eco_layer,), thresholds=(5, 10))

        change_map = ChangeMap(layers=(eco_layer,), thresholds=(5,), binary=True)
        assert change_map.thresholds == (5.0,)
        assert change_map.binary


class TestRegion:
    """Test Region constructors."""

    def test_from_bounds(self):
        region = Region.from_bounds((0, 0, 10, 5), crs="EPSG:4326", name="box")
        assert region.bounds == (0.0, 0.0, 10.0, 5.0)
        assert region.crs == "EPSG:4326"

    def test_invalid_bounds(self):
        with pytest.raises(GeometryMismatch):
            Region.from_bounds((10, 0, 0, 5))

    def test_from_wkt(self):
        region = Region.from_wkt("POLYGON ((0 0, 4 0, 0 4, 0 0))", name="tri")
        assert region.geometry.area == pytest.approx(8.0)
        assert region.crs is None

    def test_from_geojson_file_dissolves_features(self, tmp_path):
        path = tmp_path / "antioquia.geojson"
        path.write_text(json.dumps({
            'type': 'FeatureCollection',
            'features': [
                {'type': 'Feature', 'properties': {},
                 'geometry': {'type': 'Polygon', 'coordinates': [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]}},
                {'type': 'Feature', 'properties': {},
                 'geometry': {'type': 'Polygon', 'coordinates': [[[1, 0], [2, 0], [2, 1], [1, 1], [1, 0]]]}},
            ],
        }))
        region = Region.from_geojson(path)

        assert region.name == "antioquia"
        assert region.crs == "EPSG:4326"
        assert region.bounds == pytest.approx((0.0, 0.0, 2.0, 1.0))

    def test_identity_depends_on_geometry(self):
        a = Region.from_bounds((0, 0, 1, 1), name="a")
        b = Region.from_bounds((0, 0, 2, 1), name="a")
        assert a.identity != b.identity
        assert a.identity == Region.from_bounds((0, 0, 1, 1), name="a").identity

    def test_to_crs(self):
        region = Region.from_bounds((-75.01, 9.0, -75.0, 9.01), crs="EPSG:4326", name="r")
        projected = region.to_crs(UTM_CRS)
        assert projected.crs == UTM_CRS
        minx, miny, _, _ = projected.bounds
        assert 498000 < minx < 500000
        assert 990000 < miny < 1000000


class TestIndicatorTable:
    """Test ordering and views of indicator tables."""

    def test_orders_by_class_then_layer(self):
        records = [
            IndicatorRecord("20", 2.0, "area_ha", 0.5),
            IndicatorRecord("5", 2.0, "area_ha", 0.1),
            IndicatorRecord("20", 1.0, "area_ha", 0.3),
        ]
        table = IndicatorTable(records, layer_order=("5", "20"))

        assert [(r.class_value, r.layer) for r in table] == [(1.0, "20"), (2.0, "5"), (2.0, "20")]
        assert table.class_values == [1.0, 2.0]
        assert table.for_layer("20") == {1.0: 0.3, 2.0: 0.5}

    def test_frames(self):
        table = IndicatorTable(
            [IndicatorRecord("a", 1.0, "ncells", 4.0), IndicatorRecord("b", 1.0, "ncells", 6.0)],
            layer_order=("a", "b"),
        )
        frame = table.to_frame()
        assert list(frame.columns) == IndicatorTable.COLUMNS
        assert len(frame) == 2

        wide = table.pivot()
        assert list(wide.columns) == ["a", "b"]
        assert wide.loc[1.0, "b"] == 6.0
