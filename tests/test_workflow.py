"""
Tests for the per-basin stage-storage workflow.
"""

import numpy as np
import pandas as pd
import pytest

from src.wetlands.delineation import DepressionDelineator, PrecomputedBasins, basin_mask
from src.wetlands.errors import DimensionMismatch, EmptyBasin, InvalidParameter
from src.wetlands.raster import Raster
from src.wetlands.stage_storage import compute_stage_storage
from src.wetlands.workflow import basin_stage_storage


@pytest.fixture
def two_basins():
    """6x10 DEM split into two basins, each a bowl, plus the basin-id raster."""
    dem = np.full((6, 10), 4.0)
    dem[2:4, 1:4] = [[1.0, 0.0, 1.0], [1.0, 0.5, 1.0]]
    dem[2:4, 6:9] = [[3.0, 2.0, 3.0], [3.0, 2.5, 3.0]]
    ids = np.zeros((6, 10), dtype=np.int32)
    ids[:, :5] = 1
    ids[:, 5:] = 2
    dem_raster = Raster.from_array(dem, cell_size=3.0)
    return dem_raster, dem_raster.with_data(ids)


class TestBasinStageStorage:
    """Running the calculator once per basin and merging."""

    def test_merged_columns(self, two_basins):
        dem, ids = two_basins

        df = basin_stage_storage(dem, ids, z_max=2.0, dz=0.5, progress=False)

        assert list(df.columns) == ["basin_id", "z", "area", "volume", "outflow_length"]
        assert df["basin_id"].unique().tolist() == [1, 2]
        assert len(df) == 8

    def test_rows_match_single_basin_tables(self, two_basins):
        dem, ids = two_basins

        df = basin_stage_storage(dem, ids, z_max=2.0, dz=0.5, progress=False)

        for basin_id in (1, 2):
            expected = compute_stage_storage(basin_mask(ids, basin_id), dem, 2.0, 0.5).to_dataframe()
            got = df[df["basin_id"] == basin_id].drop(columns="basin_id").reset_index(drop=True)
            pd.testing.assert_frame_equal(got, expected)

    def test_each_basin_uses_its_own_floor(self, two_basins):
        dem, ids = two_basins

        df = basin_stage_storage(dem, ids, z_max=0.5, dz=0.5, progress=False)

        # basin 1 floor 0.0 floods {0.0, 0.5}; basin 2 floor 2.0 floods {2.0, 2.5}
        assert df["area"].tolist() == [18.0, 18.0]
        assert df["volume"].tolist() == pytest.approx([(0.5 + 1.0) * 9.0, (0.5 + 1.0) * 9.0])

    def test_accepts_delineation(self, two_basins):
        dem, ids = two_basins
        delineation = PrecomputedBasins(ids).delineate(dem)

        df = basin_stage_storage(dem, delineation, z_max=1.0, dz=0.5, progress=False)

        assert df["basin_id"].unique().tolist() == [1, 2]

    def test_selected_basins_only(self, two_basins):
        dem, ids = two_basins

        df = basin_stage_storage(dem, ids, z_max=1.0, dz=0.5, basin_ids=[2], progress=False)

        assert df["basin_id"].unique().tolist() == [2]

    def test_parallel_matches_serial(self, two_basins):
        dem, ids = two_basins

        serial = basin_stage_storage(dem, ids, z_max=3.0, dz=0.25, progress=False)
        parallel = basin_stage_storage(dem, ids, z_max=3.0, dz=0.25, max_workers=3, progress=False)

        pd.testing.assert_frame_equal(serial, parallel)

    def test_depression_delineation_end_to_end(self, sample_dem):
        delineation = DepressionDelineator(min_depth=0.5).delineate(sample_dem)

        df = basin_stage_storage(sample_dem, delineation, z_max=5.0, dz=1.0, progress=False)

        assert sorted(df["basin_id"].unique().tolist()) == [1, 2]
        for _, curve in df.groupby("basin_id"):
            assert curve["area"].is_monotonic_increasing
            assert curve["volume"].is_monotonic_increasing
            assert (curve["area"] % 9.0 == 0).all()


class TestEmptyAndInvalidBasins:
    """Basins without elevation and bad inputs."""

    @pytest.fixture
    def with_nodata_basin(self, two_basins):
        dem, ids = two_basins
        dem_data = dem.data.copy()
        dem_data[0, :] = np.nan
        id_data = ids.data.copy()
        id_data[0, :] = 3
        return dem.with_data(dem_data), ids.with_data(id_data)

    def test_empty_basin_skipped(self, with_nodata_basin, caplog):
        dem, ids = with_nodata_basin

        with caplog.at_level("WARNING"):
            df = basin_stage_storage(dem, ids, z_max=1.0, dz=0.5, progress=False)

        assert df["basin_id"].unique().tolist() == [1, 2]
        assert "Skipping basin 3" in caplog.text

    def test_empty_basin_raises_when_not_skipping(self, with_nodata_basin):
        dem, ids = with_nodata_basin

        with pytest.raises(EmptyBasin):
            basin_stage_storage(dem, ids, z_max=1.0, dz=0.5, skip_empty=False, progress=False)

    def test_no_basins_gives_empty_frame(self, two_basins):
        dem, ids = two_basins

        df = basin_stage_storage(dem, ids.with_data(np.zeros((6, 10), dtype=np.int32)), 1.0, 0.5, progress=False)

        assert df.empty
        assert list(df.columns) == ["basin_id", "z", "area", "volume", "outflow_length"]

    def test_invalid_depths(self, two_basins):
        dem, ids = two_basins

        with pytest.raises(InvalidParameter):
            basin_stage_storage(dem, ids, z_max=0.5, dz=1.0, progress=False)

    def test_misaligned_basins(self, two_basins):
        dem, _ = two_basins
        ids = Raster.from_array(np.ones((6, 10), dtype=np.int32), cell_size=1.0)

        with pytest.raises(DimensionMismatch):
            basin_stage_storage(dem, ids, z_max=1.0, dz=0.5, progress=False)
