"""Raster sources: local catalog and GeoTIFF I/O."""

from .catalog import LocalSourceCatalog

__all__ = ['LocalSourceCatalog']
