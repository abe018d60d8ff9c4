# ecochange/processors/change_detection/__init__.py
"""Change detection processors."""

from .change_masker import ChangeMasker, MaskingConfig, affected_counts, threshold_bins

__all__ = [
    'ChangeMasker',
    'MaskingConfig',
    'affected_counts',
    'threshold_bins',
]
