"""
Ecosystem-change indicators from remote-sensing rasters.

This package integrates land-cover, canopy and forest-loss products onto a
shared grid for a region, masks ecosystem layers by change thresholds, and
derives area, landscape and heterogeneity indicators from the result.
"""

__version__ = "0.3.0"
__description__ = "Ecosystem-change indicators from remote-sensing rasters"

# Note: Submodules are imported explicitly where needed so that importing
# the package does not pull in rasterio or read configuration files.

__all__ = [
    '__version__',
    '__description__',
]
