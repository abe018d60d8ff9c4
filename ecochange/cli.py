"""
Ecosystem-change command line tool.

Stacks travel between commands as multi-band GeoTIFFs (band descriptions
hold layer names) and tables are written as CSV.

Example:
    ecochange integrate antioquia treecover2000 lossyear --bounds ... -o stack.tif
    ecochange mask stack.tif -t 5,10,20 --eco-range 95 100 --binary -o loss.tif
    ecochange gauge loss.tif -o loss_area.csv
"""

import sys
from pathlib import Path

import click

from .abstractions.types import EcoChangeError, Region
from .config import Config, config
from .infrastructure.logging import LoggingContext, get_logger, setup_logging

logger = get_logger(__name__)


def _parse_thresholds(ctx, param, value):
    try:
        return [float(v) for v in value.split(',') if v.strip()]
    except ValueError:
        raise click.BadParameter(f"expected comma-separated numbers, got '{value}'")


def _fail(action: str, e: Exception):
    click.echo(f"❌ Failed to {action}: {e}", err=True)
    raise click.Abort()


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config-file', '-c', type=click.Path(exists=True, dir_okay=False),
              help='YAML configuration file')
@click.pass_context
def cli(ctx, verbose, config_file):
    """Ecosystem-change indicators from remote-sensing rasters."""
    ctx.ensure_object(dict)
    settings = Config(Path(config_file)) if config_file else config
    ctx.obj['config'] = settings
    setup_logging(settings, log_level='DEBUG' if verbose else None)


def _run(ctx, command: str, region: str = None):
    """Bind a fresh run id (and region) to every record of one command."""
    return LoggingContext(region=region).run(command, **ctx.params)


def _catalog(ctx, root):
    from .raster_data import LocalSourceCatalog
    return LocalSourceCatalog(root=Path(root) if root else None, config=ctx.obj['config'])


@cli.command()
@click.option('--root', type=click.Path(file_okay=False), help='Catalog root directory')
@click.pass_context
def layers(ctx, root):
    """List the products known to the catalog."""
    names = _catalog(ctx, root).list_layers()
    if not names:
        click.echo("No products configured.")
        return
    products = ctx.obj['config'].get('products', {})
    click.echo(f"{'Name':<20} {'Kind':<12} {'Role':<10}")
    click.echo("-" * 42)
    for name in names:
        product = products.get(name) or {}
        click.echo(
            f"{name:<20} {product.get('kind', 'categorical'):<12} {product.get('role', 'other'):<10}"
        )


@cli.command()
@click.option('--root', type=click.Path(file_okay=False), help='Catalog root directory')
@click.option('--level', type=int, help='Administrative level')
@click.option('--country', help='Country name')
@click.pass_context
def regions(ctx, root, level, country):
    """List the regions available in the catalog."""
    try:
        names = _catalog(ctx, root).list_regions(level=level, country=country)
    except (OSError, ValueError) as e:
        _fail("list regions", e)

    if not names:
        click.echo("No regions found.")
        return
    for name in names:
        click.echo(name)


@cli.command()
@click.argument('region_name')
@click.argument('layer_names', nargs=-1, required=True)
@click.option('--geojson', type=click.Path(exists=True, dir_okay=False),
              help='Region polygon as GeoJSON (WGS84 unless --crs)')
@click.option('--bounds', nargs=4, type=float, help='Region bounds: MINX MINY MAXX MAXY')
@click.option('--crs', help='Region CRS, e.g. EPSG:4326')
@click.option('--root', type=click.Path(file_okay=False), help='Catalog root directory')
@click.option('--output', '-o', type=click.Path(dir_okay=False), required=True,
              help='Output GeoTIFF')
@click.pass_context
def integrate(ctx, region_name, layer_names, geojson, bounds, crs, root, output):
    """Align catalog layers for a region into one stack."""
    from .pipelines import LayerIntegrator
    from .raster_data.loaders import write_stack

    if geojson:
        region = Region.from_geojson(geojson, crs=crs or "EPSG:4326", name=region_name)
    elif bounds:
        region = Region.from_bounds(bounds, crs=crs, name=region_name)
    else:
        raise click.UsageError("Either --geojson or --bounds is required")

    try:
        with _run(ctx, 'integrate', region=region_name):
            integrator = LayerIntegrator(_catalog(ctx, root), config=ctx.obj['config'])
            stack = integrator.integrate(region, list(layer_names))
            write_stack(stack, output)
    except (EcoChangeError, ValueError) as e:
        _fail("integrate layers", e)

    click.echo(f"✅ Integrated {len(stack)} layers {stack.shape} into {output}")


@cli.command()
@click.argument('stack_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--thresholds', '-t', required=True, callback=_parse_thresholds,
              help='Comma-separated change thresholds, e.g. 5,10,20')
@click.option('--eco-pattern', help='Substring selecting the ecosystem layer')
@click.option('--change-pattern', help='Substring selecting the change layer')
@click.option('--eco-range', nargs=2, type=float, help='Inclusive ecosystem range: LO HI')
@click.option('--binary', is_flag=True, help='Write 1/0 masks instead of ecosystem values')
@click.option('--cumulative/--non-cumulative', default=True,
              help='Cumulative thresholds or per-bin masks')
@click.option('--no-change-value', type=float, help='Change value meaning "no change"')
@click.option('--output', '-o', type=click.Path(dir_okay=False), required=True,
              help='Output GeoTIFF')
@click.pass_context
def mask(ctx, stack_path, thresholds, eco_pattern, change_pattern, eco_range, binary,
         cumulative, no_change_value, output):
    """Mask an ecosystem layer by change thresholds."""
    from .processors.change_detection import ChangeMasker, MaskingConfig, affected_counts
    from .raster_data.loaders import read_stack, write_stack

    try:
        with _run(ctx, 'mask'):
            masker = ChangeMasker(MaskingConfig.from_config(ctx.obj['config']))
            change_map = masker.mask(
                read_stack(stack_path),
                eco_pattern=eco_pattern,
                change_pattern=change_pattern,
                eco_range=tuple(eco_range) if eco_range else None,
                change_thresholds=thresholds,
                binary_output=binary,
                cumulative=cumulative,
                no_change_value=no_change_value,
            )
            write_stack(change_map, output)
    except (EcoChangeError, ValueError) as e:
        _fail("mask changes", e)

    click.echo(f"✅ Masked '{change_map.eco_layer}' by '{change_map.change_layer}'")
    for name, count in affected_counts(change_map).items():
        click.echo(f"  {name}: {count} cells")


@cli.command()
@click.argument('stack_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--metric', '-m', help='Metric name (default: indicators.default_metric)')
@click.option('--parallelism', '-j', default=1, type=int, help='Worker threads')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Output CSV')
@click.pass_context
def gauge(ctx, stack_path, metric, parallelism, output):
    """Compute a class-level indicator for every layer."""
    from .raster_data.loaders import read_stack
    from .spatial_analysis import IndicatorGauger

    try:
        with _run(ctx, 'gauge'):
            metric = metric or ctx.obj['config'].get('indicators.default_metric')
            table = IndicatorGauger(config=ctx.obj['config']).gauge(
                read_stack(stack_path), metric=metric, parallelism=parallelism
            )
    except (EcoChangeError, ValueError) as e:
        _fail("gauge indicator", e)

    frame = table.to_frame()
    if output:
        frame.to_csv(output, index=False)
        click.echo(f"✅ Wrote {len(frame)} records to {output}")
    else:
        click.echo(frame.to_string(index=False))


@cli.command()
@click.argument('stack_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--cell-size', type=float, help='Cell side in CRS units (default: search)')
@click.option('--metric', '-m', help='Sample metric: condent, ent, joinent, mutinf, mean')
@click.option('--parallelism', '-j', default=1, type=int, help='Worker threads')
@click.option('--output', '-o', type=click.Path(dir_okay=False), required=True,
              help='Output GeoTIFF')
@click.pass_context
def sample(ctx, stack_path, cell_size, metric, parallelism, output):
    """Sample a metric on a grid of square cells."""
    from .raster_data.loaders import read_stack, write_stack
    from .spatial_analysis import GridSampler, SamplingConfig

    try:
        with _run(ctx, 'sample'):
            sampler = GridSampler(SamplingConfig.from_config(ctx.obj['config']),
                                  settings=ctx.obj['config'])
            sampled = sampler.sample(read_stack(stack_path), cell_size=cell_size,
                                     metric=metric, parallelism=parallelism)
            write_stack(sampled, output)
    except (EcoChangeError, ValueError) as e:
        _fail("sample indicator", e)

    click.echo(f"✅ Sampled {len(sampled)} layers onto a {sampled.shape} grid in {output}")


@cli.command()
@click.argument('stack_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--zones', type=click.Path(exists=True, dir_okay=False),
              help='Zone raster on the same grid')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Output CSV')
@click.pass_context
def stats(ctx, stack_path, zones, output):
    """Summarise valid cells of every layer."""
    from .raster_data.loaders import read_layer, read_stack
    from .spatial_analysis import StatsSummarizer

    try:
        with _run(ctx, 'stats'):
            zone_layer = read_layer(zones) if zones else None
            frame = StatsSummarizer(ctx.obj['config']).summarize(
                read_stack(stack_path), zones=zone_layer
            )
    except (EcoChangeError, ValueError) as e:
        _fail("summarise stack", e)

    if output:
        frame.to_csv(output, index=False)
        click.echo(f"✅ Wrote {len(frame)} rows to {output}")
    else:
        click.echo(frame.to_string(index=False))


def main():
    cli(obj={})


if __name__ == '__main__':
    sys.exit(main())
