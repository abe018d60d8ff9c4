"""Tests for the local source catalog."""

import pytest

from ecochange.abstractions.types import LayerNotFound
from ecochange.raster_data import LocalSourceCatalog


class TestLocalSourceCatalog:
    """Test path resolution and region listing."""

    def test_fetch_uses_product_pattern(self, catalog_root):
        catalog = LocalSourceCatalog(root=catalog_root)
        path = catalog.fetch("testland", "lossyear")
        assert path.name == "hansen_lossyear_v1.tif"

    def test_fetch_is_memoised(self, catalog_root):
        catalog = LocalSourceCatalog(root=catalog_root)
        first = catalog.fetch("testland", "treecover2000")
        first.unlink()
        assert catalog.fetch("testland", "treecover2000") == first

    def test_unknown_product_falls_back_to_name_glob(self, catalog_root):
        catalog = LocalSourceCatalog(root=catalog_root, products={})
        assert catalog.fetch("testland", "lossyear").name == "hansen_lossyear_v1.tif"

    def test_missing_layer_names_region_and_layer(self, catalog_root):
        catalog = LocalSourceCatalog(root=catalog_root)
        with pytest.raises(LayerNotFound) as exc_info:
            catalog.fetch("otherland", "gain")
        assert "otherland" in str(exc_info.value)
        assert "gain" in str(exc_info.value)

    def test_missing_region(self, catalog_root):
        catalog = LocalSourceCatalog(root=catalog_root)
        with pytest.raises(LayerNotFound):
            catalog.fetch("atlantis", "lossyear")

    def test_list_layers(self, catalog_root):
        catalog = LocalSourceCatalog(root=catalog_root, products={'b': {}, 'a': {}})
        assert catalog.list_layers() == ['a', 'b']

    def test_list_regions_filters(self, catalog_root):
        catalog = LocalSourceCatalog(root=catalog_root)
        assert catalog.list_regions() == ['antioquia', 'loreto', 'medellin', 'testland']
        assert catalog.list_regions(level=1, country="colombia") == ['antioquia', 'testland']
        assert catalog.list_regions(level=2) == ['medellin']

    def test_list_regions_without_file_uses_directories(self, catalog_root):
        (catalog_root / "regions.yml").unlink()
        catalog = LocalSourceCatalog(root=catalog_root)
        assert catalog.list_regions() == ['otherland', 'testland']
