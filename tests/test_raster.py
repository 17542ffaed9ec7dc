"""
Tests — grid helpers
=====================
Aligning rasters between grids and block sampling for the region mean.
"""

from __future__ import annotations

import numpy as np
import pytest
import xarray as xr

from uhi_mapper.exceptions import RasterError
from uhi_mapper.raster import align_to_grid, sample_to_scale

from conftest import NORTH, RES, WEST, make_raster


def _fine_raster(columns=20):
    """20 rows of half-size pixels; each pixel holds its fine row number."""
    x = WEST + RES / 4 + RES / 2 * np.arange(columns)
    y = NORTH - RES / 4 - RES / 2 * np.arange(20)
    values = np.repeat(np.arange(20, dtype="float64")[:, np.newaxis], columns, axis=1)
    return xr.DataArray(
        values,
        coords={"y": y, "x": x},
        dims=("y", "x"),
        attrs={"crs": "EPSG:4326", "resolution": RES / 2},
    )


class TestAlignToGrid:

    def test_near_identical_grid_is_snapped(self):
        ref = make_raster(np.zeros((10, 10)))
        shifted = make_raster(np.ones((10, 10))).assign_coords(x=ref["x"].values + RES * 1e-4)

        aligned = align_to_grid(shifted, ref)

        np.testing.assert_array_equal(aligned["x"].values, ref["x"].values)
        assert np.all(aligned.values == 1.0)

    def test_finer_grid_resampled_to_reference(self):
        ref = make_raster(np.zeros((10, 10)))
        aligned = align_to_grid(_fine_raster(), ref)

        assert aligned.shape == (10, 10)
        assert not np.isnan(aligned.values).any()
        # each coarse row takes one of the two fine rows it covers
        assert aligned.values[0, 0] in (0.0, 1.0)
        assert aligned.values[9, 9] in (18.0, 19.0)

    def test_outside_source_extent_is_nan(self):
        ref = make_raster(np.zeros((10, 10)))
        aligned = align_to_grid(_fine_raster(columns=10), ref)

        assert not np.isnan(aligned.values[:, :5]).any()
        assert np.isnan(aligned.values[:, 5:]).all()

    def test_crs_mismatch(self):
        ref = make_raster(np.zeros((10, 10)))
        other = _fine_raster()
        other.attrs["crs"] = "EPSG:32644"
        with pytest.raises(RasterError):
            align_to_grid(other, ref)


class TestSampleToScale:

    def test_fine_enough_grid_unchanged(self):
        raster = make_raster(np.full((10, 10), 300.0))
        assert sample_to_scale(raster, 100.0) is raster

    def test_trailing_pixels_kept(self):
        values = np.full((10, 10), 300.0)
        values[9, :] = 400.0
        sampled = sample_to_scale(make_raster(values), 300.0)

        # ~111 m pixels in blocks of 3: the tenth row forms its own block
        assert sampled.shape == (4, 4)
        assert sampled.values[0, 0] == 300.0
        assert sampled.values[3, 0] == 400.0
