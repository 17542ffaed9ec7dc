"""
Shared helpers and fixtures for the UHI mapper tests.

Every raster is synthetic: a 10 x 10 grid of 0.001 degree pixels in
EPSG:4326 just north-west of Chennai.  At that pixel size (~111 m) the
100 m mean scale needs no block-averaging, so region means are exact
averages of the pixels set here.
"""

from __future__ import annotations

import geopandas as gpd
import numpy as np
import pytest
import xarray as xr
from shapely.geometry import box

from uhi_mapper.config import UHIConfig
from uhi_mapper.raster import build_stack
from uhi_mapper.region import Region, RegionResolver

RES = 0.001
WEST = 80.200
NORTH = 13.110
SHAPE = (10, 10)

# A point inside the grid's footprint
LON, LAT = 80.205, 13.105


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def grid_coords(shape=SHAPE):
    """Pixel-centre ``(x, y)`` coordinates; y descends (north-up)."""
    ny, nx = shape
    x = WEST + RES / 2 + RES * np.arange(nx)
    y = NORTH - RES / 2 - RES * np.arange(ny)
    return x, y


def grid_box(shape=SHAPE, columns=None):
    """WGS84 polygon covering the grid (or only its first *columns*)."""
    ny, nx = shape
    width = RES * (columns if columns is not None else nx)
    return box(WEST, NORTH - RES * ny, WEST + width, NORTH)


def make_stack(data, times, **kwargs) -> xr.DataArray:
    """Wrap a ``(time, y, x)`` array on the test grid."""
    data = np.asarray(data, dtype="float64")
    x, y = grid_coords(data.shape[1:])
    return build_stack(data, times, x, y, crs="EPSG:4326", resolution=RES, **kwargs)


def make_thermal(data, times, cloud=5.0, scale=1.0, offset=0.0, **kwargs) -> xr.DataArray:
    """Thermal stack with the same metadata on every acquisition."""
    n = len(times)
    return make_stack(
        data,
        times,
        cloud_cover=[cloud] * n,
        scale=[scale] * n,
        offset=[offset] * n,
        **kwargs,
    )


def make_raster(values) -> xr.DataArray:
    """``(y, x)`` raster on the test grid."""
    values = np.asarray(values, dtype="float64")
    x, y = grid_coords(values.shape)
    return xr.DataArray(
        values,
        coords={"y": y, "x": x},
        dims=("y", "x"),
        attrs={"crs": "EPSG:4326", "resolution": RES},
    )


def constant(value, n=1, shape=SHAPE) -> np.ndarray:
    return np.full((n, *shape), value, dtype="float64")


def make_boundaries(columns=None) -> gpd.GeoDataFrame:
    """Two level-1 features: one over the grid, one far away."""
    return gpd.GeoDataFrame(
        {"ADM1_NAME": ["Tamil Nadu", "Elsewhere"]},
        geometry=[grid_box(columns=columns), box(10.0, 10.0, 11.0, 11.0)],
        crs="EPSG:4326",
    )


def make_region(columns=None) -> Region:
    """Region over the grid, or over its first *columns* only."""
    lon = LON if columns is None else WEST + RES * columns / 2
    return RegionResolver(tolerance_m=0.0).resolve(lon, LAT, make_boundaries(columns))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def boundaries() -> gpd.GeoDataFrame:
    return make_boundaries()


@pytest.fixture()
def region() -> Region:
    return make_region()


@pytest.fixture()
def config() -> UHIConfig:
    return UHIConfig(center_lon=LON, center_lat=LAT, simplify_tolerance_m=0.0)
