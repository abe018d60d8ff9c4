# ecochange/processors/data_preparation/__init__.py
"""Data preparation processors."""

from .raster_alignment import (
    GridAligner, AlignmentConfig, AlignmentReport, AlignmentIssue,
    ResamplingMethod, TargetGrid
)

__all__ = [
    'GridAligner',
    'AlignmentConfig',
    'AlignmentReport',
    'AlignmentIssue',
    'ResamplingMethod',
    'TargetGrid',
]
