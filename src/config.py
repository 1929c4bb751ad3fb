"""Configuration module for wetland-storage project.

Centralizes data paths and default analysis settings.
"""
from pathlib import Path

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
DEM_DIR = DATA_DIR / "dem"
BASIN_DIR = DATA_DIR / "basins"
OUTPUT_DIR = PROJECT_ROOT / "output"

# Depth sweep defaults (DEM vertical units)
DEFAULT_Z_MAX = 3.0
DEFAULT_DZ = 0.1

# Depression delineation defaults
DEFAULT_MIN_BASIN_SIZE = 1
DEFAULT_MIN_BASIN_DEPTH = 0.0

DEFAULT_LOG_LEVEL = "INFO"
