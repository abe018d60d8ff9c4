# ecochange/spatial_analysis/stats_summarizer.py
"""Descriptive statistics of stack layers, optionally by zone."""

from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from ..abstractions.types import GeometryMismatch, RasterLayer, RasterStack
from ..config import config as global_config
from ..infrastructure.logging import get_logger, log_operation
from ..utils.parallel import run_parallel

logger = get_logger(__name__)

COLUMNS = ['layer', 'class', 'count', 'mean', 'min', 'max', 'stddev']


def _describe(values: np.ndarray) -> Dict[str, float]:
    if values.size == 0:
        return {'count': 0, 'mean': np.nan, 'min': np.nan, 'max': np.nan, 'stddev': np.nan}
    values = values.astype(np.float64)
    return {
        'count': int(values.size),
        'mean': float(values.mean()),
        'min': float(values.min()),
        'max': float(values.max()),
        'stddev': float(values.std()),
    }


class StatsSummarizer:
    """Count, mean, min, max and population standard deviation per layer."""

    def __init__(self, config=None):
        self.config = config or global_config

    @log_operation("EBVstats", stage=True)
    def summarize(self, stack: RasterStack, zones: Optional[RasterLayer] = None,
                  parallelism: int = 1) -> pd.DataFrame:
        """
        Summarise the valid cells of every layer.

        Without ``zones`` there is one row per layer with ``class`` set to
        ``"all"``. With a zone layer on the same grid there is one row per
        layer and zone class present in the zone layer.

        Raises:
            GeometryMismatch: If ``zones`` is not on the stack's grid
        """
        zone_classes = None
        if zones is not None:
            if zones.geometry_key() != stack[0].geometry_key():
                raise GeometryMismatch(
                    f"Zone layer '{zones.name}' is not aligned with the stack grid"
                )
            zone_classes = np.unique(zones.data[zones.valid_mask])

        def summarize_layer(layer: RasterLayer) -> List[Dict]:
            valid = layer.valid_mask
            if zone_classes is None:
                return [{'layer': layer.name, 'class': 'all', **_describe(layer.data[valid])}]

            rows = []
            for zone in zone_classes:
                in_zone = valid & zones.valid_mask & (zones.data == zone)
                rows.append({'layer': layer.name, 'class': zone.item(),
                             **_describe(layer.data[in_zone])})
            return rows

        fragments = run_parallel(summarize_layer, list(stack), max_workers=parallelism,
                                 config=self.config)
        frame = pd.DataFrame(
            [row for fragment in fragments for row in fragment], columns=COLUMNS
        )
        logger.info(f"Summarised {len(stack)} layers into {len(frame)} rows")
        return frame
