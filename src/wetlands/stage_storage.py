"""
Stage-storage curves for a single basin.

Implements the "bathtub" inundation model: the basin is flooded from its
lowest cell upward, and at each depth we record how much of the basin is
under water, how much water it holds, and how many cells along the basin
edge are wet (where water would start spilling into a neighbouring basin).

For a depth z above the basin floor ``min_z``, a cell is flooded when it is
in the basin, has a valid elevation, and ``elevation <= min_z + z``. A cell
sitting exactly at the water line is wet. Each flooded cell stores
``(z + elevation) - min_z`` times its footprint.

Flooded cells are not split into connected pools. A basin holding several
depressions reports the combined area and volume of every depression that
has filled to the current water line.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
import math
from pathlib import Path
from typing import Iterator, List, NamedTuple, Optional, Union

import numpy as np
import pandas as pd

from .errors import EmptyBasin, InvalidParameter
from .raster import Raster, basin_cells, inner_boundary

logger = logging.getLogger(__name__)

COLUMNS = ["z", "area", "volume", "outflow_length"]

# Relative slack when counting how many increments fit under z_max, so that
# z_max=0.3, dz=0.1 gives three depths despite 0.3/0.1 == 2.9999999999999996
_STEP_TOLERANCE = 1e-9


class StageStorageRow(NamedTuple):
    """One depth of a stage-storage curve."""

    z: float
    area: float
    volume: float
    outflow_length: int


def validate_depths(z_max: float, dz: float) -> None:
    """
    Check the depth sweep parameters.

    Raises:
        InvalidParameter: If either value is not a positive finite number,
            or ``dz`` exceeds ``z_max``
    """
    values = {}
    for name, value in (("z_max", z_max), ("dz", dz)):
        try:
            values[name] = float(value)
        except (TypeError, ValueError):
            raise InvalidParameter(f"{name} must be a number, got {value!r}") from None
        if not math.isfinite(values[name]) or values[name] <= 0:
            raise InvalidParameter(f"{name} must be a positive finite number, got {value}")

    if values["dz"] > values["z_max"]:
        raise InvalidParameter(f"dz ({dz}) must not exceed z_max ({z_max})")


def depth_steps(z_max: float, dz: float) -> np.ndarray:
    """
    Depths evaluated by a sweep: ``dz, 2*dz, ..., floor(z_max/dz)*dz``.

    The zero-depth state is never included. Each depth is computed as
    ``k * dz`` rather than by repeated addition.

    Examples:
        >>> depth_steps(1.0, 0.25)
        array([0.25, 0.5 , 0.75, 1.  ])
    """
    validate_depths(z_max, dz)
    n_steps = int(math.floor(z_max / dz * (1 + _STEP_TOLERANCE)))
    return np.arange(1, n_steps + 1, dtype=np.float64) * dz


@dataclass
class StageStorageTable:
    """
    Ordered stage-storage rows for one basin.

    ``outflow_length`` is a count of flooded boundary cells; use
    ``spill_length()`` to convert it to map units.
    """

    rows: List[StageStorageRow]
    min_z: float
    cell_width: float
    cell_height: float

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[StageStorageRow]:
        return iter(self.rows)

    def __getitem__(self, index) -> StageStorageRow:
        return self.rows[index]

    @property
    def z(self) -> np.ndarray:
        return np.array([row.z for row in self.rows], dtype=np.float64)

    @property
    def area(self) -> np.ndarray:
        return np.array([row.area for row in self.rows], dtype=np.float64)

    @property
    def volume(self) -> np.ndarray:
        return np.array([row.volume for row in self.rows], dtype=np.float64)

    @property
    def outflow_length(self) -> np.ndarray:
        return np.array([row.outflow_length for row in self.rows], dtype=np.int64)

    def spill_length(self, edge_length: Optional[float] = None) -> np.ndarray:
        """
        Flooded boundary length in map units.

        Args:
            edge_length: Length credited per flooded boundary cell. Defaults
                to the cell width of the analysed grid.
        """
        if edge_length is None:
            edge_length = self.cell_width
        return self.outflow_length * float(edge_length)

    def to_dataframe(self) -> pd.DataFrame:
        """Rows as a DataFrame with columns z, area, volume, outflow_length."""
        df = pd.DataFrame.from_records(self.rows, columns=COLUMNS)
        return df.astype({"z": float, "area": float, "volume": float, "outflow_length": int})

    def to_csv(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        self.to_dataframe().to_csv(path, index=False)
        return path


class StageStorageCalculator:
    """
    Stage-storage relationship of one basin on a DEM.

    The constructor validates the inputs and extracts the in-basin cells
    once; ``compute()`` then sweeps the water depth upward from the basin
    floor and can be called repeatedly with different sweeps.

    Parameters
    ----------
    basin_mask : Raster
        1 inside the basin, 0 or nodata outside. Must be aligned with ``dem``.
    dem : Raster
        Ground elevations. Nodata cells never flood.
    connectivity : int, default 4
        Neighbourhood for the basin's inner boundary (4 or 8).

    Raises
    ------
    DimensionMismatch
        If the mask and DEM differ in shape, cell size, origin or CRS.
    EmptyBasin
        If no in-basin cell has a valid elevation.

    Examples
    --------
    >>> dem = Raster.from_array(np.array([[2., 2., 2.], [2., 0., 2.], [2., 2., 2.]]))
    >>> mask = Raster.from_array(np.ones((3, 3)))
    >>> table = StageStorageCalculator(mask, dem).compute(z_max=1.0, dz=0.5)
    >>> [(row.z, row.area, row.volume) for row in table]
    [(0.5, 1.0, 0.5), (1.0, 1.0, 1.0)]
    """

    def __init__(self, basin_mask: Raster, dem: Raster, connectivity: int = 4):
        dem.check_aligned(basin_mask, name="basin_mask")

        in_basin = basin_cells(basin_mask)
        masked_dem = dem.masked(in_basin)
        wet_candidates = masked_dem.valid_mask
        if not np.any(wet_candidates):
            raise EmptyBasin(
                f"Basin has no cells with valid elevation "
                f"({int(np.sum(in_basin))} in-basin cells, all nodata)"
            )

        # Nodata holes inside the mask are outside for the boundary
        boundary = inner_boundary(wet_candidates, connectivity=connectivity)

        self.dem = dem
        self.basin_mask = basin_mask
        self.masked_dem = masked_dem
        self.connectivity = connectivity
        self.cell_area = dem.cell_area
        self._wet_candidates = wet_candidates
        self._elevations = masked_dem.data[wet_candidates]
        self._on_boundary = boundary[wet_candidates]
        self.min_z = float(self._elevations.min())

        logger.info(
            f"Basin: {self._elevations.size:,} cells with elevation, "
            f"{int(np.sum(self._on_boundary)):,} on boundary, floor at {self.min_z:.3f}"
        )

    @property
    def n_cells(self) -> int:
        """Number of in-basin cells with a valid elevation."""
        return int(self._elevations.size)

    def flooded_mask(self, z: float) -> np.ndarray:
        """Boolean grid of cells under water at depth ``z`` above the floor."""
        with np.errstate(invalid="ignore"):
            below = self.masked_dem.data <= (self.min_z + z)
        return self._wet_candidates & below

    def row(self, z: float) -> StageStorageRow:
        """Area, volume and flooded boundary cells at depth ``z`` above the floor."""
        flooded = self._elevations <= self.min_z + z

        n_flooded = int(np.count_nonzero(flooded))
        stored = (z + self._elevations[flooded]) - self.min_z
        area = n_flooded * self.cell_area
        volume = float(np.sum(stored)) * self.cell_area
        outflow = int(np.count_nonzero(flooded & self._on_boundary))

        logger.debug(f"z={z:.4f}: {n_flooded} flooded, volume {volume:.3f}, {outflow} boundary cells")
        return StageStorageRow(float(z), float(area), volume, outflow)

    def compute(self, z_max: float, dz: float, max_workers: int = 1) -> StageStorageTable:
        """
        Sweep depths ``dz, 2*dz, ..., <= z_max`` and tabulate the basin's response.

        Args:
            z_max: Maximum inundation depth, in DEM vertical units
            dz: Depth increment
            max_workers: Threads used to evaluate depths. Rows are independent,
                and the table is ordered by depth whatever the value.

        Returns:
            StageStorageTable with one row per depth

        Raises:
            InvalidParameter: If ``z_max`` or ``dz`` is invalid, or
                ``max_workers`` is below 1
        """
        depths = depth_steps(z_max, dz)
        if max_workers < 1:
            raise InvalidParameter(f"max_workers must be at least 1, got {max_workers}")

        logger.info(f"Evaluating {len(depths)} depths up to {depths[-1]:.3f} (dz={dz})")

        if max_workers == 1 or len(depths) == 1:
            rows = [self.row(z) for z in depths]
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                rows = list(executor.map(self.row, depths))

        return StageStorageTable(
            rows=rows,
            min_z=self.min_z,
            cell_width=self.dem.cell_width,
            cell_height=self.dem.cell_height,
        )


def compute_stage_storage(
    basin_mask: Raster,
    dem: Raster,
    z_max: float,
    dz: float,
    connectivity: int = 4,
    max_workers: int = 1,
) -> StageStorageTable:
    """
    Compute the stage-storage table of one basin.

    Sweep parameters are checked first, then grid alignment, then that the
    basin has at least one cell with elevation. Nothing is evaluated until
    all three pass.

    Parameters
    ----------
    basin_mask : Raster
        1 inside the basin, 0 or nodata outside
    dem : Raster
        Elevation raster aligned with ``basin_mask``
    z_max : float
        Maximum inundation depth
    dz : float
        Depth increment (0 < dz <= z_max)
    connectivity : int, default 4
        Neighbourhood used to find the basin's inner boundary
    max_workers : int, default 1
        Threads used for the depth sweep

    Returns
    -------
    StageStorageTable
    """
    validate_depths(z_max, dz)
    calculator = StageStorageCalculator(basin_mask, dem, connectivity=connectivity)
    return calculator.compute(z_max, dz, max_workers=max_workers)
