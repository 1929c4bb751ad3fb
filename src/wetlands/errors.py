"""
Error types raised by the stage-storage calculation.

All of them signal a caller contract violation and are raised before any
depth is evaluated, so a caller never sees a partial table.
"""


class StageStorageError(Exception):
    """Base class for stage-storage failures."""

    pass


class DimensionMismatch(StageStorageError):
    """Raised when the basin mask and DEM grids are not cell-for-cell aligned."""

    pass


class InvalidParameter(StageStorageError, ValueError):
    """Raised for a non-positive depth, increment, or an increment above the maximum depth."""

    pass


class EmptyBasin(StageStorageError):
    """Raised when no in-basin cell carries a finite elevation."""

    pass
