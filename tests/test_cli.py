"""Tests for the command line interface."""

import logging

import numpy as np
import pandas as pd
import pytest
import yaml
from click.testing import CliRunner

from ecochange.abstractions.types import RasterStack
from ecochange.cli import cli
from ecochange.raster_data.loaders import read_stack, write_stack

from conftest import ORIGIN, RES, build_layer


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def stack_file(tmp_path, forest_stack):
    return write_stack(forest_stack, tmp_path / "forest.tif")


class TestCli:
    """Test commands end to end on small rasters."""

    def test_mask_then_gauge(self, runner, tmp_path, stack_file):
        masked = tmp_path / "loss.tif"
        result = runner.invoke(cli, [
            'mask', str(stack_file), '-t', '5,10,20', '--eco-range', '95', '100',
            '--binary', '--no-change-value', '0', '-o', str(masked),
        ], obj={})

        assert result.exit_code == 0, result.output
        assert "✅ Masked 'treecover2000' by 'lossyear'" in result.output
        assert "20: 4 cells" in result.output
        assert read_stack(masked).names == ("5", "10", "20")

        table = tmp_path / "loss.csv"
        result = runner.invoke(cli, ['gauge', str(masked), '-m', 'ncells', '-o', str(table)], obj={})

        assert result.exit_code == 0, result.output
        frame = pd.read_csv(table)
        assert list(frame.columns) == ['layer', 'class_value', 'metric', 'value']
        lost = frame[frame['class_value'] == 1.0].set_index('layer')['value']
        assert lost.to_dict() == {5: 1.0, 10: 2.0, 20: 4.0}

    def test_config_file_reaches_patch_metrics(self, runner, tmp_path):
        """Test that --config-file settings drive the metric registry."""
        diagonal = build_layer(np.array([[1, 0, 1], [0, 1, 0], [1, 0, 1]], dtype=np.uint8),
                               name="diagonal")
        stack_path = write_stack(RasterStack((diagonal,)), tmp_path / "diagonal.tif")
        config_file = tmp_path / "config.yml"
        config_file.write_text(yaml.safe_dump({'indicators': {'patch_connectivity': 4}}))

        def patches(*options):
            table = tmp_path / "np.csv"
            result = runner.invoke(cli, [*options, 'gauge', str(stack_path), '-m', 'np',
                                         '-o', str(table)], obj={})
            assert result.exit_code == 0, result.output
            frame = pd.read_csv(table)
            return frame.set_index('class_value')['value'].to_dict()

        assert patches()[1.0] == 1.0
        assert patches('--config-file', str(config_file))[1.0] == 5.0

    def test_mask_rejects_duplicate_thresholds(self, runner, tmp_path, stack_file):
        result = runner.invoke(cli, [
            'mask', str(stack_file), '-t', '5,5', '-o', str(tmp_path / "out.tif"),
        ], obj={})

        assert result.exit_code != 0
        assert "❌ Failed to mask changes" in result.output

    def test_bad_threshold_list(self, runner, tmp_path, stack_file):
        result = runner.invoke(cli, [
            'mask', str(stack_file), '-t', 'five', '-o', str(tmp_path / "out.tif"),
        ], obj={})
        assert result.exit_code == 2

    def test_sample(self, runner, tmp_path, stack_file):
        out = tmp_path / "sampled.tif"
        result = runner.invoke(cli, [
            'sample', str(stack_file), '--cell-size', '60', '-m', 'mean', '-o', str(out),
        ], obj={})

        assert result.exit_code == 0, result.output
        assert read_stack(out).shape == (2, 2)

    def test_stats_to_stdout(self, runner, stack_file):
        result = runner.invoke(cli, ['stats', str(stack_file)], obj={})

        assert result.exit_code == 0, result.output
        assert "treecover2000" in result.output
        assert "lossyear" in result.output

    def test_integrate_from_catalog(self, runner, tmp_path, catalog_root):
        minx, maxy = ORIGIN
        out = tmp_path / "integrated.tif"
        result = runner.invoke(cli, [
            'integrate', 'testland', 'treecover2000', 'lossyear',
            '--bounds', str(minx), str(maxy - 10 * RES), str(minx + 10 * RES), str(maxy),
            '--crs', 'EPSG:32618', '--root', str(catalog_root), '-o', str(out),
        ], obj={})

        assert result.exit_code == 0, result.output
        stack = read_stack(out)
        assert stack.names == ("treecover2000", "lossyear")
        assert stack.shape == (10, 10)

    def test_integrate_needs_a_region(self, runner, tmp_path, catalog_root):
        result = runner.invoke(cli, [
            'integrate', 'testland', 'lossyear', '--root', str(catalog_root),
            '-o', str(tmp_path / "out.tif"),
        ], obj={})
        assert result.exit_code == 2

    def test_integrate_missing_layer(self, runner, tmp_path, catalog_root):
        minx, maxy = ORIGIN
        result = runner.invoke(cli, [
            'integrate', 'testland', 'gain',
            '--bounds', str(minx), str(maxy - 10 * RES), str(minx + 10 * RES), str(maxy),
            '--crs', 'EPSG:32618', '--root', str(catalog_root), '-o', str(tmp_path / "out.tif"),
        ], obj={})

        assert result.exit_code != 0
        assert "❌ Failed to integrate layers" in result.output

    def test_regions(self, runner, catalog_root):
        result = runner.invoke(cli, [
            'regions', '--root', str(catalog_root), '--country', 'colombia', '--level', '1',
        ], obj={})

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert "antioquia" in lines
        assert "testland" in lines
        assert "loreto" not in lines
        assert "medellin" not in lines

    def test_layers(self, runner):
        result = runner.invoke(cli, ['layers'], obj={})

        assert result.exit_code == 0, result.output
        assert "treecover2000" in result.output
        assert "lossyear" in result.output
