# ecochange/biodiversity_analysis/metrics/registry.py
"""Thread-safe registry of class-level metric providers."""

import threading
from typing import Dict, List

from ...abstractions.interfaces import IMetricProvider
from ...abstractions.types import RasterLayer, UnknownMetric
from ...infrastructure.logging import get_logger

logger = get_logger(__name__)


class MetricRegistry:
    """Name -> provider lookup shared by the indicator gauger."""

    def __init__(self, name: str = "metrics"):
        self.name = name
        self._providers: Dict[str, IMetricProvider] = {}
        self._lock = threading.RLock()

    def register(self, provider: IMetricProvider, force: bool = False) -> IMetricProvider:
        """
        Register a provider under its ``name``.

        Args:
            provider: Metric provider instance
            force: Replace an existing provider of the same name

        Returns:
            The registered provider

        Raises:
            ValueError: If the name is empty or taken and ``force`` is False
        """
        if not provider.name:
            raise ValueError(f"{type(provider).__name__} has no metric name")

        with self._lock:
            if provider.name in self._providers and not force:
                raise ValueError(
                    f"Metric '{provider.name}' already registered in {self.name} registry. "
                    f"Use force=True to re-register."
                )
            self._providers[provider.name] = provider
            logger.debug(f"Registered metric {provider.name} in {self.name} registry")
        return provider

    def get(self, name: str) -> IMetricProvider:
        with self._lock:
            if name not in self._providers:
                raise UnknownMetric(
                    f"Unknown metric '{name}'. Known metrics: {', '.join(sorted(self._providers))}"
                )
            return self._providers[name]

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._providers)

    def compute(self, name: str, layer: RasterLayer, class_value: float) -> float:
        return self.get(name).compute(layer, class_value)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._providers

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)
