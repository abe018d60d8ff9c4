# ecochange/pipelines/__init__.py
"""Processing pipelines for ecosystem-change analysis."""

from .layer_integrator import LayerIntegrator

__all__ = ['LayerIntegrator']
