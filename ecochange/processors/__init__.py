# ecochange/processors/__init__.py
"""Raster processors: grid alignment and change detection."""
