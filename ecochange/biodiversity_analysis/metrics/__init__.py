# ecochange/biodiversity_analysis/metrics/__init__.py
"""Metric providers and registries."""

from .registry import MetricRegistry
from .landscape_metrics import (
    ClassArea, CellCount, PercentageOfLandscape, NumberOfPatches,
    MeanPatchArea, LargestPatchIndex, TotalEdge,
    BUILTIN_METRICS, build_default_registry, metric_registry, label_patches
)
from .entropy import (
    SAMPLE_METRICS, get_sample_metric, adjacent_pairs,
    marginal_entropy, joint_entropy, conditional_entropy, mutual_information, valid_mean
)

__all__ = [
    'MetricRegistry',
    'ClassArea',
    'CellCount',
    'PercentageOfLandscape',
    'NumberOfPatches',
    'MeanPatchArea',
    'LargestPatchIndex',
    'TotalEdge',
    'BUILTIN_METRICS',
    'build_default_registry',
    'metric_registry',
    'label_patches',
    'SAMPLE_METRICS',
    'get_sample_metric',
    'adjacent_pairs',
    'marginal_entropy',
    'joint_entropy',
    'conditional_entropy',
    'mutual_information',
    'valid_mean',
]
