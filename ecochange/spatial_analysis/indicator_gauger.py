# ecochange/spatial_analysis/indicator_gauger.py
"""Per-class indicators over every layer of a change map."""

from typing import List, Optional

import numpy as np

from ..abstractions.types import IndicatorRecord, IndicatorTable, RasterLayer, RasterStack
from ..biodiversity_analysis.metrics import MetricRegistry, build_default_registry, metric_registry
from ..config import config as global_config
from ..infrastructure.logging import get_logger, layer_scope, log_operation
from ..utils.parallel import run_parallel

logger = get_logger(__name__)


class IndicatorGauger:
    """Compute one class-level metric for each class of each layer.

    With a ``config`` and no ``registry`` the built-in metrics are set up
    from that configuration instead of the global one.
    """

    def __init__(self, registry: Optional[MetricRegistry] = None, config=None):
        self.config = config or global_config
        if registry is None:
            registry = metric_registry if config is None else build_default_registry(config)
        self.registry = registry

    @log_operation("gaugeIndicator", log_args=True, stage=True)
    def gauge(self, change_map: RasterStack, metric: Optional[str] = None,
              parallelism: int = 1) -> IndicatorTable:
        """
        Gauge ``metric`` for every distinct valid class of every layer.

        Args:
            change_map: Stack to measure, typically a ChangeMap
            metric: Registered metric name (``indicators.default_metric``
                when None)
            parallelism: Worker threads for per-layer work

        Returns:
            IndicatorTable ordered by class then layer; classes absent from
            a layer have no record for that layer

        Raises:
            UnknownMetric: If ``metric`` is not registered
        """
        metric = metric or self.config.get('indicators.default_metric', 'area_ha')
        provider = self.registry.get(metric)

        def gauge_layer(layer: RasterLayer) -> List[IndicatorRecord]:
            with layer_scope(layer.name):
                classes = np.unique(layer.data[layer.valid_mask])
                records = [
                    IndicatorRecord(
                        layer=layer.name,
                        class_value=float(value),
                        metric=metric,
                        value=float(provider.compute(layer, value)),
                    )
                    for value in classes
                ]
                logger.debug(f"{metric} for {len(records)} classes")
                return records

        fragments = run_parallel(gauge_layer, list(change_map), max_workers=parallelism,
                                 config=self.config)
        table = IndicatorTable(
            [record for fragment in fragments for record in fragment],
            layer_order=change_map.names,
        )
        logger.info(f"Gauged {metric} over {len(change_map)} layers: {len(table)} records")
        return table
