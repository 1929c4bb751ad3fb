"""
Basin delineation providers.

The stage-storage calculation only needs a basin mask per basin; how the
basins were found is up to a ``BasinDelineator``. Two are provided:

- ``PrecomputedBasins`` wraps a basin-id raster produced elsewhere, such as
  the output of a GIS flow-direction / sink / basin toolchain.
- ``DepressionDelineator`` finds closed depressions directly on the DEM by
  depression filling (morphological reconstruction), labels them, and
  optionally grows each depression out to its catchment divide.

Both return a ``BasinDelineation``: an integer basin-id raster (0 = no
basin) and one polygon per basin.
"""

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Dict, List, Protocol, Union

import geopandas as gpd
import numpy as np
from rasterio import features
from scipy import ndimage
from shapely.geometry import shape
from shapely.ops import unary_union

from .raster import EIGHT_CONNECTED, Raster, inner_boundary, load_raster

logger = logging.getLogger(__name__)


@dataclass
class BasinDelineation:
    """Basin-id raster and the matching basin polygons."""

    basin_ids: Raster
    polygons: gpd.GeoDataFrame

    @property
    def ids(self) -> List[int]:
        """Sorted ids of the basins present on the grid."""
        return basin_id_list(self.basin_ids)

    def mask(self, basin_id: int) -> Raster:
        """0/1 mask raster of one basin."""
        return basin_mask(self.basin_ids, basin_id)


class BasinDelineator(Protocol):
    """Anything that turns a DEM into basins."""

    def delineate(self, dem: Raster) -> BasinDelineation:
        ...


def basin_id_list(basin_ids: Raster) -> List[int]:
    """Sorted positive ids present in a basin-id raster."""
    values = basin_ids.data[basin_ids.valid_mask]
    return [int(v) for v in np.unique(values) if v > 0]


def basin_mask(basin_ids: Raster, basin_id: int) -> Raster:
    """
    Extract the mask of one basin.

    Args:
        basin_ids: Integer basin-id raster
        basin_id: Basin to extract

    Returns:
        uint8 raster on the same grid, 1 inside the basin and 0 elsewhere
    """
    inside = basin_ids.valid_mask & (basin_ids.data == basin_id)
    return basin_ids.select(inside, 1, 0, dtype=np.uint8)


def basin_polygons(basin_ids: Raster) -> gpd.GeoDataFrame:
    """
    Vectorize a basin-id raster into one polygon per basin.

    Disjoint parts of a basin are merged into a single (multi)polygon.

    Parameters
    ----------
    basin_ids : Raster
        Integer basin-id raster, 0 or nodata outside basins

    Returns
    -------
    geopandas.GeoDataFrame
        Columns ``basin_id``, ``cell_count`` and ``geometry`` (map
        coordinates of the raster's transform), sorted by basin id
    """
    ids = np.where(basin_ids.valid_mask, basin_ids.data, 0).astype(np.int32)
    inside = ids > 0

    parts: Dict[int, list] = {}
    for geom, value in features.shapes(ids, mask=inside, transform=basin_ids.transform):
        parts.setdefault(int(value), []).append(shape(geom))

    basin_list = sorted(parts)
    cell_counts = [int(np.count_nonzero(ids == bid)) for bid in basin_list]
    geometries = [unary_union(parts[bid]) for bid in basin_list]

    crs = basin_ids.crs.to_string() if basin_ids.crs is not None else None
    return gpd.GeoDataFrame(
        {"basin_id": basin_list, "cell_count": cell_counts},
        geometry=gpd.GeoSeries(geometries, crs=crs),
        crs=crs,
    )


class PrecomputedBasins:
    """
    Basins delineated by an external tool.

    Parameters
    ----------
    basin_ids : Raster
        Integer basin-id raster; cells that are 0, negative or nodata
        belong to no basin.
    """

    def __init__(self, basin_ids: Raster):
        self.basin_ids = basin_ids

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PrecomputedBasins":
        return cls(load_raster(path))

    def delineate(self, dem: Raster) -> BasinDelineation:
        dem.check_aligned(self.basin_ids, name="basin_ids")

        ids = self.basin_ids.select(self.basin_ids.valid_mask, self.basin_ids, 0)
        basin_ids = ids.select(ids.data > 0, ids, 0, dtype=np.int32)

        polygons = basin_polygons(basin_ids)
        logger.info(f"Using {len(polygons)} precomputed basins")
        return BasinDelineation(basin_ids, polygons)


def fill_depressions(dem: np.ndarray, valid: np.ndarray) -> np.ndarray:
    """
    Fill depressions in a DEM using morphological reconstruction.

    Seeds the grid border and nodata cells at their elevation and every
    other cell far above the terrain, then erodes the seed down onto the
    DEM. Each depression ends up filled to its spill elevation. Nodata cells
    act as outlets, like the grid edge.

    Args:
        dem: 2D elevation array
        valid: Boolean mask of cells holding a real elevation

    Returns:
        Filled DEM (float64); nodata cells hold an arbitrary low value
    """
    from skimage.morphology import reconstruction

    work = np.array(dem, dtype=np.float64)
    low = work[valid].min()
    work[~valid] = low - 1.0

    seed = work.copy()
    seed[1:-1, 1:-1] = work.max() + 1000.0
    seed[~valid] = work[~valid]

    return reconstruction(seed, work, method="erosion")


class DepressionDelineator:
    """
    Delineate basins from the closed depressions of a DEM.

    Depressions are the cells a depression fill would raise by more than
    ``min_depth``. Connected depressions (8-connectivity) with at least
    ``min_size`` cells become basins, numbered 1..N in raster order. With
    ``catchments=True`` each depression is then grown by watershed
    segmentation to the terrain divides around it, so the basin covers the
    land draining into the depression; land that drains off the grid or
    into nodata stays 0.

    Parameters
    ----------
    min_size : int, default 1
        Minimum depression size in cells
    min_depth : float, default 0.0
        Minimum fill depth (DEM vertical units) for a cell to count as part
        of a depression
    catchments : bool, default True
        Grow depressions to their catchment divides
    """

    def __init__(self, min_size: int = 1, min_depth: float = 0.0, catchments: bool = True):
        if min_size < 1:
            raise ValueError(f"min_size must be at least 1, got {min_size}")
        if min_depth < 0:
            raise ValueError(f"min_depth must be non-negative, got {min_depth}")
        self.min_size = min_size
        self.min_depth = min_depth
        self.catchments = catchments

    def delineate(self, dem: Raster) -> BasinDelineation:
        valid = dem.valid_mask
        if not np.any(valid):
            raise ValueError("DEM has no valid elevation cells")

        filled = fill_depressions(dem.data, valid)
        fill_depth = np.where(valid, filled - np.where(valid, dem.data, 0.0), 0.0)
        depressions = (fill_depth > self.min_depth) & valid

        labeled, num_features = ndimage.label(depressions, structure=EIGHT_CONNECTED)
        labels, counts = np.unique(labeled[labeled > 0], return_counts=True)
        keep = labels[counts >= self.min_size]

        lookup = np.zeros(num_features + 1, dtype=np.int32)
        lookup[keep] = np.arange(1, len(keep) + 1, dtype=np.int32)
        labeled = lookup[labeled]

        logger.info(
            f"Depressions: {num_features} found deeper than {self.min_depth}, "
            f"{len(keep)} with >= {self.min_size} cells"
        )

        if self.catchments and len(keep) > 0:
            labeled = _grow_to_catchments(filled, labeled, valid)

        basin_ids = dem.with_data(labeled.astype(np.int32))
        return BasinDelineation(basin_ids, basin_polygons(basin_ids))


def _grow_to_catchments(terrain: np.ndarray, labeled: np.ndarray, valid: np.ndarray) -> np.ndarray:
    """
    Grow labelled depressions over the terrain to their divides.

    The grid edge and the rim of nodata areas are seeded as an extra
    "drains away" region that competes with the depressions and is
    discarded afterwards.
    """
    from skimage.segmentation import watershed

    outlet_label = int(labeled.max()) + 1
    markers = labeled.copy()
    edge = inner_boundary(valid, connectivity=8)
    markers[edge & (labeled == 0)] = outlet_label

    regions = watershed(terrain, markers=markers, mask=valid)
    regions[regions == outlet_label] = 0
    return regions.astype(np.int32)
