"""
Stage-storage curves for every basin of a DEM.

Runs the single-basin calculation once per basin over a shared depth sweep
and stacks the results into one table keyed by basin id.
"""

import logging
from typing import Iterable, Optional, Union

import pandas as pd
from tqdm import tqdm

from .delineation import BasinDelineation, basin_id_list, basin_mask
from .errors import EmptyBasin
from .raster import Raster
from .stage_storage import COLUMNS, StageStorageCalculator, validate_depths

logger = logging.getLogger(__name__)


def basin_stage_storage(
    dem: Raster,
    basins: Union[BasinDelineation, Raster],
    z_max: float,
    dz: float,
    basin_ids: Optional[Iterable[int]] = None,
    skip_empty: bool = True,
    connectivity: int = 4,
    max_workers: int = 1,
    progress: bool = True,
) -> pd.DataFrame:
    """
    Compute stage-storage tables for many basins and merge them.

    Args:
        dem: Elevation raster
        basins: A BasinDelineation, or a basin-id raster aligned with ``dem``
        z_max: Maximum inundation depth
        dz: Depth increment
        basin_ids: Basins to process. Defaults to every positive id present.
        skip_empty: Log and skip basins without any valid elevation instead
            of raising EmptyBasin
        connectivity: Neighbourhood for basin inner boundaries (4 or 8)
        max_workers: Threads per depth sweep
        progress: Show a tqdm progress bar

    Returns:
        DataFrame with columns basin_id, z, area, volume, outflow_length,
        ordered by basin id then depth

    Raises:
        InvalidParameter: If the depth sweep is invalid
        DimensionMismatch: If the basin raster is not aligned with ``dem``
        EmptyBasin: If a basin has no valid elevation and ``skip_empty`` is False
    """
    validate_depths(z_max, dz)

    id_raster = basins.basin_ids if isinstance(basins, BasinDelineation) else basins
    dem.check_aligned(id_raster, name="basin_ids")

    if basin_ids is None:
        basin_ids = basin_id_list(id_raster)
    basin_ids = [int(b) for b in basin_ids]

    logger.info(f"Computing stage-storage for {len(basin_ids)} basins (z_max={z_max}, dz={dz})")

    frames = []
    for basin_id in tqdm(basin_ids, desc="Basins", disable=not progress):
        mask = basin_mask(id_raster, basin_id)
        try:
            calculator = StageStorageCalculator(mask, dem, connectivity=connectivity)
        except EmptyBasin:
            if not skip_empty:
                raise
            logger.warning(f"Skipping basin {basin_id}: no cells with valid elevation")
            continue

        table = calculator.compute(z_max, dz, max_workers=max_workers)
        df = table.to_dataframe()
        df.insert(0, "basin_id", basin_id)
        frames.append(df)

    if not frames:
        return pd.DataFrame({"basin_id": pd.Series(dtype=int), **{c: pd.Series(dtype=float) for c in COLUMNS}})

    return pd.concat(frames, ignore_index=True)
