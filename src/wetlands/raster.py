"""
In-memory raster grids for basin analysis.

A ``Raster`` bundles a 2D numpy array with the rasterio metadata needed to
interpret it: the affine transform (cell size and origin), the nodata
sentinel and the coordinate reference system. Rasters are treated as
immutable values: every operation returns a new ``Raster`` and the wrapped
array is exposed read-only.

Reading and writing GeoTIFFs is delegated to rasterio.
"""

from dataclasses import dataclass, field
from pathlib import Path
import logging
from typing import Optional, Tuple, Union

import numpy as np
import rasterio
from rasterio import Affine
from rasterio.crs import CRS
from scipy import ndimage

from .errors import DimensionMismatch

logger = logging.getLogger(__name__)

# Structuring elements for the inner-boundary query
FOUR_CONNECTED = ndimage.generate_binary_structure(2, 1)
EIGHT_CONNECTED = ndimage.generate_binary_structure(2, 2)


def same_transform(a: Affine, b: Affine) -> bool:
    """Whether two transforms place cells identically, up to float noise."""
    return bool(np.allclose(tuple(a)[:6], tuple(b)[:6], rtol=1e-12, atol=1e-9))


@dataclass(frozen=True, eq=False)
class Raster:
    """
    A 2D grid of cell values with its georeferencing.

    Attributes:
        data: 2D array of cell values (read-only view)
        transform: Affine transform mapping (col, row) to map coordinates
        nodata: Sentinel marking cells with no valid measurement, or None.
            NaN cells are always treated as no-data.
        crs: Coordinate reference system, or None when unknown
    """

    data: np.ndarray
    transform: Affine = field(default_factory=Affine.identity)
    nodata: Optional[float] = None
    crs: Optional[CRS] = None

    def __post_init__(self):
        data = np.asarray(self.data)
        if data.ndim != 2:
            raise ValueError(f"Raster data must be 2D, got shape {data.shape}")
        if not isinstance(self.transform, Affine):
            raise TypeError(f"transform must be an Affine, got {type(self.transform).__name__}")

        view = data.view()
        view.flags.writeable = False
        object.__setattr__(self, "data", view)

    @classmethod
    def from_array(
        cls,
        data: np.ndarray,
        cell_size: Union[float, Tuple[float, float]] = 1.0,
        origin: Tuple[float, float] = (0.0, 0.0),
        nodata: Optional[float] = None,
        crs: Optional[CRS] = None,
    ) -> "Raster":
        """
        Build a north-up raster from an array, a cell size and a top-left origin.

        Args:
            data: 2D array of cell values
            cell_size: Cell edge length, or (width, height), in map units
            origin: (x, y) map coordinates of the top-left corner
            nodata: No-data sentinel
            crs: Coordinate reference system

        Returns:
            Raster with transform ``Affine(width, 0, x, 0, -height, y)``
        """
        if np.isscalar(cell_size):
            width = height = float(cell_size)
        else:
            width, height = (float(v) for v in cell_size)
        if width <= 0 or height <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")

        x, y = origin
        transform = Affine(width, 0, x, 0, -height, y)
        return cls(data, transform=transform, nodata=nodata, crs=crs)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    @property
    def cell_width(self) -> float:
        """Cell width in map units."""
        return abs(self.transform.a)

    @property
    def cell_height(self) -> float:
        """Cell height in map units."""
        return abs(self.transform.e)

    @property
    def cell_area(self) -> float:
        """Footprint of one cell in squared map units."""
        return self.cell_width * self.cell_height

    @property
    def valid_mask(self) -> np.ndarray:
        """Boolean mask of cells holding a finite, non-nodata value."""
        valid = np.isfinite(self.data)
        if self.nodata is not None and not np.isnan(self.nodata):
            valid &= self.data != self.nodata
        return valid

    def is_aligned(self, other: "Raster") -> bool:
        """
        Check cell-for-cell alignment with another raster.

        Rasters are aligned when they share shape, cell size, origin and
        (where both declare one) CRS.
        """
        if self.shape != other.shape:
            return False
        if not same_transform(self.transform, other.transform):
            return False
        if self.crs is not None and other.crs is not None and self.crs != other.crs:
            return False
        return True

    def check_aligned(self, other: "Raster", name: str = "raster") -> None:
        """Raise DimensionMismatch unless ``other`` is aligned with this raster."""
        if self.shape != other.shape:
            raise DimensionMismatch(
                f"{name} shape {other.shape} does not match grid shape {self.shape}"
            )
        if not same_transform(self.transform, other.transform):
            raise DimensionMismatch(
                f"{name} transform does not match grid transform:\n"
                f"  expected {tuple(self.transform)[:6]}\n"
                f"  got      {tuple(other.transform)[:6]}"
            )
        if self.crs is not None and other.crs is not None and self.crs != other.crs:
            raise DimensionMismatch(f"{name} CRS {other.crs} does not match grid CRS {self.crs}")

    def with_data(self, data: np.ndarray, nodata: Optional[float] = None) -> "Raster":
        """Return a raster on the same grid carrying new values."""
        return Raster(data, transform=self.transform, nodata=nodata, crs=self.crs)

    def select(self, condition: np.ndarray, true_value, false_value, dtype=None) -> "Raster":
        """
        Per-cell selection: ``true_value`` where ``condition`` holds, else ``false_value``.

        Either value may be a scalar, an array, or a Raster on the same grid.
        ``dtype`` casts the result.
        """
        if isinstance(true_value, Raster):
            true_value = true_value.data
        if isinstance(false_value, Raster):
            false_value = false_value.data
        values = np.where(condition, true_value, false_value)
        if dtype is not None:
            values = values.astype(dtype)
        return self.with_data(values)

    def masked(self, mask: np.ndarray) -> "Raster":
        """
        Restrict the raster to ``mask`` cells.

        Cells outside the mask, and cells that were already no-data, become NaN.
        """
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != self.shape:
            raise DimensionMismatch(f"mask shape {mask.shape} does not match grid shape {self.shape}")
        keep = mask & self.valid_mask
        values = np.where(keep, self.data.astype(np.float64), np.nan)
        return self.with_data(values)


def basin_cells(basin_mask: Raster) -> np.ndarray:
    """
    Boolean membership of a 0/1 basin mask.

    A cell is in the basin when it holds a valid value equal to 1; zeros,
    nodata and NaN are outside.
    """
    return basin_mask.valid_mask & (basin_mask.data == 1)


def inner_boundary(mask: np.ndarray, connectivity: int = 4) -> np.ndarray:
    """
    Cells of ``mask`` that touch a cell outside it.

    Cells on the edge of the grid count as touching the outside.

    Args:
        mask: Boolean region membership
        connectivity: 4 (edge neighbours) or 8 (edge and corner neighbours)

    Returns:
        Boolean array, True on the inner boundary of the region
    """
    if connectivity == 4:
        structure = FOUR_CONNECTED
    elif connectivity == 8:
        structure = EIGHT_CONNECTED
    else:
        raise ValueError(f"connectivity must be 4 or 8, got {connectivity}")

    mask = np.asarray(mask, dtype=bool)
    interior = ndimage.binary_erosion(mask, structure=structure, border_value=0)
    return mask & ~interior


def load_raster(path: Union[str, Path], band: int = 1) -> Raster:
    """
    Read one band of a raster file.

    Args:
        path: Path to any raster format readable by rasterio
        band: 1-based band index

    Returns:
        Raster with the file's transform, nodata and CRS

    Raises:
        FileNotFoundError: If the file does not exist
        rasterio.errors.RasterioIOError: If rasterio cannot read the file
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")

    with rasterio.open(path) as src:
        data = src.read(band)
        raster = Raster(data, transform=src.transform, nodata=src.nodata, crs=src.crs)

    logger.debug(f"Loaded {path.name}: shape {raster.shape}, cell {raster.cell_width}x{raster.cell_height}")
    return raster


def write_raster(raster: Raster, path: Union[str, Path]) -> Path:
    """
    Write a raster to a single-band, LZW-compressed GeoTIFF.

    Args:
        raster: Raster to write
        path: Output file path

    Returns:
        The output path
    """
    path = Path(path)
    height, width = raster.shape

    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype=raster.data.dtype,
        crs=raster.crs,
        transform=raster.transform,
        nodata=raster.nodata,
        compress="lzw",
    ) as dst:
        dst.write(raster.data, 1)

    logger.debug(f"Wrote {path}")
    return path
