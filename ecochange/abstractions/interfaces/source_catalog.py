# ecochange/abstractions/interfaces/source_catalog.py
"""Source catalog interface - NO IMPLEMENTATIONS!"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence


class ISourceCatalog(ABC):
    """
    Contract for resolving (region, product) pairs to cached raster files.

    Implementations own download, caching and retry policy. The pipeline
    only relies on ``fetch`` being deterministic for a given pair.
    """

    @abstractmethod
    def fetch(self, region_name: str, layer_name: str) -> Path:
        """
        Resolve a product for a region to a local raster file.

        Args:
            region_name: Region identity or administrative unit name
            layer_name: Product name (e.g. ``treecover2000``)

        Returns:
            Path to a raster readable by rasterio

        Raises:
            LayerNotFound: If the product cannot be resolved
        """
        pass

    @abstractmethod
    def list_layers(self) -> Sequence[str]:
        """Names of all products the catalog can serve."""
        pass

    @abstractmethod
    def list_regions(self, level: Optional[int] = None,
                     country: Optional[str] = None) -> Sequence[str]:
        """Names of known regions, optionally filtered by level and country."""
        pass
