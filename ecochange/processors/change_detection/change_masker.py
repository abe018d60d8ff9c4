# ecochange/processors/change_detection/change_masker.py
"""
Ecosystem change masking.

Combines an ecosystem layer with a change layer: ecosystem cells inside a
value range are flagged as affected (or retained) for every change
threshold, giving one output layer per threshold.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ...abstractions.types import (
    AmbiguousLayerMatch, ChangeMap, EmptyIntersection, LayerKind, LayerNotFound,
    LayerRole, RasterLayer, RasterStack, format_label
)
from ...config import config as global_config
from ...infrastructure.logging import get_logger, log_operation

logger = get_logger(__name__)


@dataclass
class MaskingConfig:
    """Configuration for change masking."""
    no_change_value: Optional[float] = None
    binary_dtype: str = 'uint8'
    binary_nodata: int = 255

    @classmethod
    def from_config(cls, config=None) -> 'MaskingConfig':
        config = config or global_config
        return cls(
            no_change_value=config.get('masking.no_change_value'),
            binary_dtype=config.get('masking.binary_dtype', 'uint8'),
            binary_nodata=config.get('masking.binary_nodata', 255),
        )


def threshold_bins(thresholds: Sequence[float]) -> Dict[float, Tuple[float, float]]:
    """Map each threshold to its half-open bin ``(previous, t]``.

    Bins follow the sorted distinct thresholds; the lowest bin starts at
    minus infinity.
    """
    bins = {}
    lower = -math.inf
    for t in sorted(set(thresholds)):
        bins[t] = (lower, t)
        lower = t
    return bins


class ChangeMasker:
    """Mask ecosystem cells by the change that hit them."""

    def __init__(self, config: Optional[MaskingConfig] = None):
        self.config = config or MaskingConfig.from_config()

    @log_operation("echanges", log_args=True, stage=True)
    def mask(self, stack: RasterStack,
             eco_pattern: Optional[str] = None,
             change_pattern: Optional[str] = None,
             eco_range: Optional[Tuple[float, float]] = None,
             change_thresholds: Optional[Sequence[float]] = None,
             binary_output: bool = False,
             cumulative: bool = True,
             no_change_value: Optional[float] = None) -> ChangeMap:
        """
        Produce one masked ecosystem layer per change threshold.

        Args:
            stack: Aligned stack holding ecosystem and change layers
            eco_pattern: Case-insensitive substring picking the ecosystem layer
            change_pattern: Case-insensitive substring picking the change layer
            eco_range: Inclusive (lo, hi) ecosystem values of interest;
                None keeps every valid ecosystem cell
            change_thresholds: Change values to mask at, in output order
            binary_output: Emit 1/0 masks instead of ecosystem values
            cumulative: Affected means change <= t; otherwise change falls
                in the bin ending at t and unaffected cells are kept
            no_change_value: Change value meaning "no change"; overrides
                ``masking.no_change_value``

        Binary masks hold 1 on kept cells, 0 on every other valid ecosystem
        cell and no-data where the ecosystem layer is no-data. In
        non-cumulative mode a 0 therefore covers both member cells affected
        in the bin and cells outside ``eco_range``; pair the binary output
        with ``eco_range=None`` or with the value-mode output to tell them
        apart.

        Returns:
            ChangeMap with layers named after their thresholds

        Raises:
            LayerNotFound: If a pattern matches no layer
            AmbiguousLayerMatch: If a pattern or role matches several layers,
                or ecosystem and change resolve to the same layer
            EmptyIntersection: If no ecosystem cell lies in ``eco_range``
        """
        thresholds = self._validate_thresholds(change_thresholds)
        eco, change = self.resolve_layers(stack, eco_pattern, change_pattern)
        if no_change_value is None:
            no_change_value = self.config.no_change_value

        member = self._membership(eco, eco_range)
        change_valid = change.valid_mask
        if no_change_value is not None:
            change_valid &= change.data != no_change_value

        bins = threshold_bins(thresholds)
        layers = []
        for t in thresholds:
            if cumulative:
                keep = member & change_valid & (change.data <= t)
            else:
                lower, upper = bins[t]
                in_bin = change_valid & (change.data > lower) & (change.data <= upper)
                keep = member & ~in_bin

            if binary_output:
                layers.append(self._binary_layer(eco, keep, format_label(t)))
            else:
                values = np.where(keep, eco.data, np.asarray(eco.nodata, dtype=eco.data.dtype))
                layers.append(eco.with_data(values, name=format_label(t)))

            logger.debug(f"Threshold {format_label(t)}: {int(keep.sum())} cells flagged")

        change_map = ChangeMap(
            layers=tuple(layers),
            thresholds=tuple(thresholds),
            binary=binary_output,
            cumulative=cumulative,
            eco_layer=eco.name,
            change_layer=change.name,
        )
        logger.info(
            f"Masked '{eco.name}' by '{change.name}' at {len(thresholds)} thresholds "
            f"({'binary' if binary_output else 'values'}, "
            f"{'cumulative' if cumulative else 'per bin'})"
        )
        return change_map

    def resolve_layers(self, stack: RasterStack,
                       eco_pattern: Optional[str] = None,
                       change_pattern: Optional[str] = None) -> Tuple[RasterLayer, RasterLayer]:
        """Pick the ecosystem and change layers of ``stack``.

        Explicit patterns win, then declared roles, then position (first
        layer is the ecosystem, last layer is the change).
        """
        eco = self._resolve(stack, eco_pattern, LayerRole.ECOSYSTEM, 0)
        change = self._resolve(stack, change_pattern, LayerRole.CHANGE, -1)
        if eco.name == change.name:
            raise AmbiguousLayerMatch(
                f"Ecosystem and change both resolve to layer '{eco.name}' in {list(stack.names)}"
            )
        return eco, change

    def _resolve(self, stack: RasterStack, pattern: Optional[str],
                 role: LayerRole, position: int) -> RasterLayer:
        label = role.value
        if pattern is not None:
            needle = pattern.lower()
            matches = [layer for layer in stack if needle in layer.name.lower()]
            if not matches:
                raise LayerNotFound(
                    f"No {label} layer matches pattern '{pattern}' in {list(stack.names)}"
                )
            if len(matches) > 1:
                raise AmbiguousLayerMatch(
                    f"Pattern '{pattern}' matches several {label} layers: "
                    f"{[layer.name for layer in matches]}"
                )
            return matches[0]

        declared = [layer for layer in stack if layer.role is role]
        if len(declared) == 1:
            return declared[0]
        if len(declared) > 1:
            raise AmbiguousLayerMatch(
                f"Several layers declare role '{label}': {[layer.name for layer in declared]}"
            )

        layer = stack[position]
        logger.debug(f"No {label} pattern or role, using positional layer '{layer.name}'")
        return layer

    def _membership(self, eco: RasterLayer, eco_range: Optional[Tuple[float, float]]) -> np.ndarray:
        member = eco.valid_mask
        if eco_range is not None:
            lo, hi = eco_range
            if lo > hi:
                raise ValueError(f"Ecosystem range lower bound {lo} exceeds upper bound {hi}")
            member &= (eco.data >= lo) & (eco.data <= hi)

        if not member.any():
            raise EmptyIntersection(
                f"No valid cell of ecosystem layer '{eco.name}' lies in range {eco_range}"
            )
        return member

    def _binary_layer(self, eco: RasterLayer, keep: np.ndarray, name: str) -> RasterLayer:
        dtype = np.dtype(self.config.binary_dtype)
        data = np.full(eco.shape, self.config.binary_nodata, dtype=dtype)
        data[eco.valid_mask] = 0
        data[keep] = 1
        return eco.with_data(
            data, name=name, nodata=self.config.binary_nodata, kind=LayerKind.CATEGORICAL
        )

    @staticmethod
    def _validate_thresholds(change_thresholds: Optional[Sequence[float]]) -> List[float]:
        if change_thresholds is None or len(change_thresholds) == 0:
            raise ValueError("At least one change threshold is required")
        thresholds = [float(t) for t in change_thresholds]
        if any(math.isnan(t) for t in thresholds):
            raise ValueError(f"Change thresholds must be numbers, got {list(change_thresholds)}")
        if len(set(thresholds)) != len(thresholds):
            raise ValueError(f"Duplicate change thresholds: {list(change_thresholds)}")
        return thresholds


def affected_counts(change_map: ChangeMap) -> Dict[str, int]:
    """Number of flagged cells per change-map layer.

    Binary maps count cells equal to 1, value maps count valid cells.
    """
    counts = {}
    for layer in change_map:
        if change_map.binary:
            counts[layer.name] = int((layer.data == 1).sum())
        else:
            counts[layer.name] = layer.valid_count
    return counts
