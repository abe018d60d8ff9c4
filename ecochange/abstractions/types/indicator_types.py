# ecochange/abstractions/types/indicator_types.py
"""Indicator records and tables."""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, Iterator, List, Tuple

import pandas as pd


@dataclass(frozen=True)
class IndicatorRecord:
    """One metric value for one class of one layer."""
    layer: str
    class_value: float
    metric: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class IndicatorTable:
    """Ordered sequence of indicator records.

    Rows are grouped by class value ascending, then by layer order as given
    by the source stack.
    """

    COLUMNS = ['layer', 'class_value', 'metric', 'value']

    def __init__(self, records: Iterable[IndicatorRecord], layer_order: Iterable[str] = ()):
        self.layer_order: Tuple[str, ...] = tuple(layer_order)
        rank = {name: i for i, name in enumerate(self.layer_order)}
        self.records: Tuple[IndicatorRecord, ...] = tuple(sorted(
            records,
            key=lambda r: (r.class_value, rank.get(r.layer, len(rank)), r.metric)
        ))

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[IndicatorRecord]:
        return iter(self.records)

    def __getitem__(self, index: int) -> IndicatorRecord:
        return self.records[index]

    @property
    def class_values(self) -> List[float]:
        return sorted({r.class_value for r in self.records})

    def for_layer(self, layer: str) -> Dict[float, float]:
        """Mapping of class value to metric value for one layer."""
        return {r.class_value: r.value for r in self.records if r.layer == layer}

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([r.to_dict() for r in self.records], columns=self.COLUMNS)

    def pivot(self) -> pd.DataFrame:
        """Wide view: one row per class, one column per layer."""
        frame = self.to_frame()
        if frame.empty:
            return frame
        wide = frame.pivot_table(index='class_value', columns='layer', values='value', aggfunc='first')
        ordered = [name for name in self.layer_order if name in wide.columns]
        return wide[ordered] if ordered else wide

    def __repr__(self) -> str:
        return f"IndicatorTable({len(self.records)} records, layers={list(self.layer_order)})"
