"""
Stage-storage analysis of depressional wetland basins.

Core functionality:
- Raster grids with georeferencing, alignment checks and GeoTIFF I/O
- StageStorageCalculator for bathtub inundation curves of a basin
- Basin delineators (precomputed basin rasters, depression labeling)
- Per-basin workflow merging every basin's curve into one table
"""

from .errors import StageStorageError, DimensionMismatch, InvalidParameter, EmptyBasin
from .raster import Raster, basin_cells, inner_boundary, load_raster, write_raster
from .stage_storage import (
    StageStorageRow,
    StageStorageTable,
    StageStorageCalculator,
    compute_stage_storage,
    depth_steps,
)
from .delineation import (
    BasinDelineation,
    BasinDelineator,
    PrecomputedBasins,
    DepressionDelineator,
    basin_mask,
    basin_polygons,
)
from .workflow import basin_stage_storage

__all__ = [
    # Errors
    "StageStorageError",
    "DimensionMismatch",
    "InvalidParameter",
    "EmptyBasin",
    # Rasters
    "Raster",
    "basin_cells",
    "inner_boundary",
    "load_raster",
    "write_raster",
    # Stage-storage
    "StageStorageRow",
    "StageStorageTable",
    "StageStorageCalculator",
    "compute_stage_storage",
    "depth_steps",
    # Delineation
    "BasinDelineation",
    "BasinDelineator",
    "PrecomputedBasins",
    "DepressionDelineator",
    "basin_mask",
    "basin_polygons",
    # Workflow
    "basin_stage_storage",
]
