# ecochange/domain/resampling/__init__.py
"""Caching for aligned raster stacks."""

from .cache_manager import StackCacheManager, stack_fingerprint

__all__ = [
    'StackCacheManager',
    'stack_fingerprint',
]
