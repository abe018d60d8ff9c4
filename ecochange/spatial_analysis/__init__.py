# ecochange/spatial_analysis/__init__.py
"""Indicators, grid sampling and summary statistics over raster stacks."""

from .indicator_gauger import IndicatorGauger
from .grid_sampler import GridSampler, SampleGrid, SamplingConfig
from .stats_summarizer import StatsSummarizer

__all__ = [
    'IndicatorGauger',
    'GridSampler',
    'SampleGrid',
    'SamplingConfig',
    'StatsSummarizer',
]
