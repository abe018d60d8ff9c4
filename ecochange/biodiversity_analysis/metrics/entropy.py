# ecochange/biodiversity_analysis/metrics/entropy.py
"""Information-theory metrics of spatial configuration.

All entropies are computed from the co-occurrence of values in
rook-adjacent cell pairs. Each adjacency is counted in both directions,
so the co-occurrence matrix is symmetric and both marginals coincide.
"""

import functools
import math
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from ...abstractions.types import RasterLayer, UnknownMetric
from ...config import config as global_config

SampleMetric = Callable[[RasterLayer], float]


def adjacent_pairs(layer: RasterLayer) -> Tuple[np.ndarray, np.ndarray]:
    """Values of every rook-adjacent pair of valid cells, both directions."""
    data = layer.data
    valid = layer.valid_mask

    both_h = valid[:, :-1] & valid[:, 1:]
    both_v = valid[:-1, :] & valid[1:, :]
    left, right = data[:, :-1][both_h], data[:, 1:][both_h]
    up, down = data[:-1, :][both_v], data[1:, :][both_v]

    first = np.concatenate([left, right, up, down])
    second = np.concatenate([right, left, down, up])
    return first, second


def _entropy(counts: np.ndarray, base: float) -> float:
    p = counts / counts.sum()
    return float(-(p * np.log(p)).sum() / math.log(base))


def _base(base: Optional[float]) -> float:
    return base or global_config.get('sampling.entropy_base', 2)


def marginal_entropy(layer: RasterLayer, base: Optional[float] = None) -> float:
    """H(x) of the adjacency marginal; NaN without pairs."""
    first, _ = adjacent_pairs(layer)
    if first.size == 0:
        return math.nan
    _, counts = np.unique(first, return_counts=True)
    return _entropy(counts, _base(base))


def joint_entropy(layer: RasterLayer, base: Optional[float] = None) -> float:
    """H(x, y) of the adjacency co-occurrence; NaN without pairs."""
    first, second = adjacent_pairs(layer)
    if first.size == 0:
        return math.nan
    _, counts = np.unique(np.stack([first, second], axis=1), axis=0, return_counts=True)
    return _entropy(counts, _base(base))


def conditional_entropy(layer: RasterLayer, base: Optional[float] = None) -> float:
    """H(y | x) = H(x, y) - H(x)."""
    return joint_entropy(layer, base) - marginal_entropy(layer, base)


def mutual_information(layer: RasterLayer, base: Optional[float] = None) -> float:
    """I(x; y) = H(y) - H(y | x)."""
    return marginal_entropy(layer, base) - conditional_entropy(layer, base)


def valid_mean(layer: RasterLayer) -> float:
    valid = layer.valid_mask
    if not valid.any():
        return math.nan
    return float(layer.data[valid].astype(np.float64).mean())


SAMPLE_METRICS: Dict[str, SampleMetric] = {
    'condent': conditional_entropy,
    'ent': marginal_entropy,
    'joinent': joint_entropy,
    'mutinf': mutual_information,
    'mean': valid_mean,
}


ENTROPY_METRICS = ('condent', 'ent', 'joinent', 'mutinf')


def get_sample_metric(name: str, base: Optional[float] = None) -> SampleMetric:
    """Built-in sample metric by name; entropies are bound to ``base`` when given."""
    try:
        func = SAMPLE_METRICS[name]
    except KeyError:
        raise UnknownMetric(
            f"Unknown sample metric '{name}'. Known metrics: {', '.join(sorted(SAMPLE_METRICS))}"
        )
    if base and name in ENTROPY_METRICS:
        return functools.partial(func, base=base)
    return func
