"""Interfaces - pure abstractions with no implementations."""

from .source_catalog import ISourceCatalog
from .metric_provider import IMetricProvider

__all__ = ['ISourceCatalog', 'IMetricProvider']
