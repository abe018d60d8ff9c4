# ecochange/abstractions/interfaces/metric_provider.py
"""Metric provider interface - NO IMPLEMENTATIONS!"""

from abc import ABC, abstractmethod

from ..types.raster_types import RasterLayer


class IMetricProvider(ABC):
    """
    Contract for class-level landscape metrics.

    A provider computes one scalar for the cells of ``layer`` holding
    ``class_value``. Providers are stateless and safe to call from
    several threads at once.
    """

    #: Registry key, e.g. ``area_ha``
    name: str = ""

    #: Human-readable unit for reports
    unit: str = ""

    @abstractmethod
    def compute(self, layer: RasterLayer, class_value: float) -> float:
        """
        Compute the metric for one class of one layer.

        Args:
            layer: Layer to measure
            class_value: Cell value identifying the class

        Returns:
            Metric value
        """
        pass
