# ecochange/biodiversity_analysis/__init__.py
"""Landscape and configuration metrics for ecosystem layers."""
