"""Pipeline exceptions for clear, actionable failures."""

from typing import Optional


class EcoChangeError(Exception):
    """Base error for the ecosystem-change pipeline."""
    def __init__(self, message: str, original_exception: Optional[Exception] = None):
        super().__init__(message)
        self.original_exception = original_exception


class LayerNotFound(EcoChangeError):
    """Raised when a layer name or pattern cannot be resolved."""
    pass


class AmbiguousLayerMatch(EcoChangeError):
    """Raised when a layer pattern or role matches more than one layer."""
    pass


class GeometryMismatch(EcoChangeError):
    """Raised when grids or region geometry do not line up."""
    pass


class CRSUndefined(EcoChangeError):
    """Raised when no usable coordinate reference system is available."""
    pass


class EmptyIntersection(EcoChangeError):
    """Raised when no cell satisfies the ecosystem filter."""
    pass


class UnknownMetric(EcoChangeError):
    """Raised when a metric name is not registered."""
    pass


class GridSizeUnresolved(EcoChangeError):
    """Raised when the sample grid size search gives up."""
    pass
