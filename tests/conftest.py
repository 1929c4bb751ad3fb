"""Pytest configuration and fixtures for wetland-storage tests."""
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest
import numpy as np

from src.wetlands.raster import Raster


def make_bowl(size=5):
    """Square bowl: 0 at the centre, rising by 1 per ring (Chebyshev distance)."""
    centre = size // 2
    rows, cols = np.indices((size, size))
    return np.maximum(np.abs(rows - centre), np.abs(cols - centre)).astype(np.float64)


@pytest.fixture
def bowl_dem():
    """5x5 bowl, 1x1 cells: minimum 0 at the centre, rim at 2."""
    return Raster.from_array(make_bowl(5), cell_size=1.0)


@pytest.fixture
def full_mask():
    """Basin mask covering the whole 5x5 grid."""
    return Raster.from_array(np.ones((5, 5), dtype=np.uint8), cell_size=1.0)


@pytest.fixture
def sample_dem():
    """Create a small synthetic DEM with two depressions for testing."""
    # Plane tilted down to the west, so open terrain drains off the grid
    x = np.linspace(-10, 10, 40)
    y = np.linspace(-10, 10, 40)
    X, Y = np.meshgrid(x, y)
    Z = 100 + 0.5 * X
    # Two pits of different depth
    Z -= 15 * np.exp(-((X + 4) ** 2 + (Y + 4) ** 2) / 4)
    Z -= 8 * np.exp(-((X - 4) ** 2 + (Y - 4) ** 2) / 4)
    return Raster.from_array(Z.astype(np.float32), cell_size=3.0, origin=(500000.0, 4100000.0))


@pytest.fixture
def project_root():
    """Get the project root directory."""
    return Path(__file__).parent.parent
