"""Raster file loaders."""

from .geotiff_loader import can_handle, read_layer, read_stack, write_layer, write_stack

__all__ = ['can_handle', 'read_layer', 'read_stack', 'write_layer', 'write_stack']
