"""
raster.py
=========
Grid helpers shared by every stage.

A *raster stack* is an ``xarray.DataArray`` with dims ``(time, y, x)``.
Its ``attrs`` carry the grid CRS (``crs``) and, optionally, the pixel
size (``resolution``).  Acquisition metadata rides along the ``time``
dimension as coordinates:

    cloud_cover          scene cloud cover in percent
    calibration_scale    multiplicative calibration coefficient
    calibration_offset   additive calibration coefficient
    bbox_west/south/east/north   scene footprint in WGS84 degrees

Unknown metadata is NaN.  Invalid pixels are NaN too -- never 0 or -9999.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
import xarray as xr
from pyproj import CRS
from rasterio.features import geometry_mask
from rasterio.transform import Affine
from shapely.geometry import box, mapping
from shapely.geometry.base import BaseGeometry

from uhi_mapper.exceptions import RasterError
from uhi_mapper.region import utm_crs_from_lonlat

logger = logging.getLogger("uhi_mapper.raster")

CLOUD_COORD = "cloud_cover"
SCALE_COORD = "calibration_scale"
OFFSET_COORD = "calibration_offset"
BBOX_COORDS = ("bbox_west", "bbox_south", "bbox_east", "bbox_north")

# Metres per degree at the equator, used to express metric scales on
# geographic grids.
METRES_PER_DEGREE = 111_320.0


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def _per_time(values: Optional[Sequence[float]], n: int) -> np.ndarray:
    if values is None:
        return np.full(n, np.nan, dtype="float64")
    arr = np.array([np.nan if v is None else v for v in values], dtype="float64")
    if arr.shape != (n,):
        raise RasterError(f"Expected {n} per-acquisition values, got {arr.shape[0]}.")
    return arr


def build_stack(
    data: np.ndarray,
    times: Iterable,
    x: Sequence[float],
    y: Sequence[float],
    crs: str = "EPSG:4326",
    resolution: Optional[float] = None,
    cloud_cover: Optional[Sequence[Optional[float]]] = None,
    scale: Optional[Sequence[Optional[float]]] = None,
    offset: Optional[Sequence[Optional[float]]] = None,
    bboxes: Optional[Sequence[Optional[Tuple[float, float, float, float]]]] = None,
) -> xr.DataArray:
    """Wrap a ``(time, y, x)`` array and its acquisition metadata in a stack.

    Parameters
    ----------
    data:
        Pixel values; NaN marks invalid pixels.
    times:
        Acquisition dates, anything ``pandas.to_datetime`` accepts.
    x, y:
        Pixel-centre coordinates in *crs* units.
    crs:
        Grid CRS.
    resolution:
        Pixel size in *crs* units; only needed for single-pixel grids.
    cloud_cover, scale, offset:
        Per-acquisition metadata; ``None`` entries are unknown.
    bboxes:
        Per-acquisition WGS84 footprints ``(west, south, east, north)``.
    """
    arr = np.asarray(data, dtype="float64")
    if arr.ndim != 3:
        raise RasterError(f"Stack data must be (time, y, x); got shape {arr.shape}.")
    time_index = pd.DatetimeIndex(pd.to_datetime(list(times)))
    n = arr.shape[0]
    if len(time_index) != n:
        raise RasterError(f"{len(time_index)} dates given for {n} acquisitions.")

    if bboxes is None:
        bbox_arr = np.full((n, 4), np.nan)
    else:
        bbox_arr = np.array(
            [(np.nan,) * 4 if b is None else tuple(b) for b in bboxes],
            dtype="float64",
        ).reshape(n, 4)

    coords = {
        "time": time_index,
        "y": np.asarray(y, dtype="float64"),
        "x": np.asarray(x, dtype="float64"),
        CLOUD_COORD: ("time", _per_time(cloud_cover, n)),
        SCALE_COORD: ("time", _per_time(scale, n)),
        OFFSET_COORD: ("time", _per_time(offset, n)),
    }
    for i, name in enumerate(BBOX_COORDS):
        coords[name] = ("time", bbox_arr[:, i])

    attrs = {"crs": crs}
    if resolution is not None:
        attrs["resolution"] = resolution
    return xr.DataArray(arr, coords=coords, dims=("time", "y", "x"), attrs=attrs)


def empty_stack(
    bounds: Tuple[float, float, float, float],
    resolution: float,
    crs: str,
) -> xr.DataArray:
    """Return a stack with zero acquisitions on the grid covering *bounds*."""
    minx, miny, maxx, maxy = bounds
    x = np.arange(minx + resolution / 2.0, maxx, resolution)
    y = np.arange(maxy - resolution / 2.0, miny, -resolution)
    return build_stack(
        np.empty((0, len(y), len(x))), [], x, y, crs=crs, resolution=resolution,
    )


def blank_raster(stack: xr.DataArray) -> xr.DataArray:
    """All-NaN ``(y, x)`` raster on the grid of *stack*."""
    return xr.DataArray(
        np.full((stack.sizes["y"], stack.sizes["x"]), np.nan),
        coords={"y": stack["y"].values, "x": stack["x"].values},
        dims=("y", "x"),
        attrs=dict(stack.attrs),
    )


# ---------------------------------------------------------------------------
# Grid geometry
# ---------------------------------------------------------------------------

def raster_crs(da: xr.DataArray) -> CRS:
    """Return the grid CRS stored in ``da.attrs['crs']``."""
    crs = da.attrs.get("crs")
    if crs is None:
        raise RasterError("Raster has no 'crs' attribute.")
    return CRS.from_user_input(crs)


def _attr_resolution(da: xr.DataArray) -> Tuple[float, float]:
    res = da.attrs.get("resolution")
    if res is None:
        raise RasterError(
            "Cannot infer pixel size from a single-pixel axis; "
            "set the 'resolution' attribute."
        )
    if np.ndim(res) == 0:
        return float(res), float(res)
    return float(res[0]), float(res[1])


def grid_transform(da: xr.DataArray) -> Affine:
    """Derive the Affine transform from the pixel-centre coordinates."""
    x = da["x"].values
    y = da["y"].values
    if len(x) > 1:
        res_x = float(x[1] - x[0])
    else:
        res_x = _attr_resolution(da)[0]
    if len(y) > 1:
        res_y = float(y[1] - y[0])
    else:
        res_y = -_attr_resolution(da)[1]   # north-up by default
    return Affine(res_x, 0.0, float(x[0]) - res_x / 2.0,
                  0.0, res_y, float(y[0]) - res_y / 2.0)


def resolution_m(da: xr.DataArray) -> float:
    """Pixel width in metres (degrees are converted at the equator rate)."""
    res = abs(grid_transform(da).a)
    if raster_crs(da).is_geographic:
        return res * METRES_PER_DEGREE
    return res


def region_mask(da: xr.DataArray, geometry: BaseGeometry) -> xr.DataArray:
    """Boolean ``(y, x)`` mask: True where a pixel centre is inside *geometry*.

    *geometry* is in WGS84 and is reprojected to the grid CRS first.
    """
    crs = raster_crs(da)
    geom = gpd.GeoSeries([geometry], crs="EPSG:4326").to_crs(crs).iloc[0]
    inside = geometry_mask(
        [mapping(geom)],
        out_shape=(da.sizes["y"], da.sizes["x"]),
        transform=grid_transform(da),
        invert=True,
    )
    return xr.DataArray(
        inside,
        coords={"y": da["y"].values, "x": da["x"].values},
        dims=("y", "x"),
    )


def align_to_grid(da: xr.DataArray, ref: xr.DataArray) -> xr.DataArray:
    """Resample *da* onto the ``(y, x)`` grid of *ref* (nearest neighbour).

    Grids whose pixel centres agree to within 1 % of a pixel are snapped
    to *ref*'s coordinates.  Otherwise each *ref* pixel takes the nearest
    *da* pixel no further than one *da* pixel away; anything beyond that
    (outside *da*'s extent) is NaN.

    Raises
    ------
    RasterError
        If the two grids are in different CRSs.
    """
    if raster_crs(da) != raster_crs(ref):
        raise RasterError(
            f"Cannot align a {raster_crs(da).to_string()} grid onto a "
            f"{raster_crs(ref).to_string()} grid."
        )

    ref_y = ref["y"].values
    ref_x = ref["x"].values
    res = abs(grid_transform(ref).a)
    if da.sizes["y"] == len(ref_y) and da.sizes["x"] == len(ref_x):
        dy = float(np.abs(da["y"].values - ref_y).max(initial=0.0))
        dx = float(np.abs(da["x"].values - ref_x).max(initial=0.0))
        if dy <= 0.01 * res and dx <= 0.01 * res:
            return da.assign_coords(y=ref_y, x=ref_x)

    transform = grid_transform(da)
    tolerance = max(abs(transform.a), abs(transform.e))
    logger.debug(
        "Resampling %dx%d grid onto %dx%d reference grid (nearest)",
        da.sizes["y"], da.sizes["x"], len(ref_y), len(ref_x),
    )
    attrs = dict(da.attrs)
    aligned = da.astype("float64").reindex(
        y=ref_y, x=ref_x, method="nearest", tolerance=tolerance,
    )
    aligned.attrs = {**attrs, "resolution": ref.attrs.get("resolution", res)}
    return aligned


def sample_to_scale(da: xr.DataArray, scale_m: float) -> xr.DataArray:
    """Block-average *da* to roughly *scale_m* when its grid is finer.

    NaN pixels are skipped; a block with no valid pixel stays NaN.  Edge
    blocks are padded with NaN, so trailing rows and columns still count.
    The caller's mean over the blocks is unweighted: a partly valid block
    weighs the same as a full one.
    """
    factor = int(round(scale_m / resolution_m(da)))
    if factor <= 1:
        return da
    logger.debug("Sampling %s grid by a factor of %d", da.shape, factor)
    return da.coarsen(y=factor, x=factor, boundary="pad").mean(skipna=True)


def estimate_pixel_count(geometry: BaseGeometry, scale_m: float) -> int:
    """Pixels needed to cover the bounds of *geometry* at *scale_m*.

    Depends only on the geometry and the scale, never on the data.
    """
    centroid = geometry.centroid
    utm = utm_crs_from_lonlat(centroid.x, centroid.y)
    minx, miny, maxx, maxy = gpd.GeoSeries([geometry], crs="EPSG:4326").to_crs(utm).total_bounds
    cols = max(math.ceil((maxx - minx) / scale_m), 1)
    rows = max(math.ceil((maxy - miny) / scale_m), 1)
    return int(cols * rows)


# ---------------------------------------------------------------------------
# Acquisition filtering
# ---------------------------------------------------------------------------

def _month_mask(months: np.ndarray, window: Tuple[int, int]) -> np.ndarray:
    first, last = window
    if first <= last:
        return (months >= first) & (months <= last)
    return (months >= first) | (months <= last)


def select_acquisitions(
    stack: xr.DataArray,
    geometry: BaseGeometry,
    start_date: str,
    end_date: str,
    months: Optional[Tuple[int, int]] = None,
    max_cloud_cover: Optional[float] = None,
) -> xr.DataArray:
    """Keep acquisitions inside the window that can contribute to *geometry*.

    Only the ``time`` coordinates are inspected, so a dask-backed stack
    stays lazy.

    Parameters
    ----------
    stack:
        Raster stack.
    geometry:
        WGS84 region; acquisitions whose footprint misses it are dropped.
        Unknown footprints are kept.
    start_date, end_date:
        ``[start, end)`` window.
    months:
        Inclusive ``(first, last)`` calendar-month window, or ``None``.
    max_cloud_cover:
        Keep scenes with known cloud cover ``<=`` this value, or ``None``
        to skip the check.
    """
    if "time" not in stack.dims:
        raise RasterError(f"Expected a 'time' dimension; got {stack.dims}.")

    times = pd.DatetimeIndex(stack["time"].values)
    keep = np.asarray(
        (times >= pd.Timestamp(start_date)) & (times < pd.Timestamp(end_date)),
        dtype=bool,
    )

    if months is not None:
        keep &= _month_mask(np.asarray(times.month), months)

    if max_cloud_cover is not None:
        if CLOUD_COORD not in stack.coords:
            raise RasterError(
                f"Stack has no '{CLOUD_COORD}' coordinate to filter on."
            )
        cloud = stack[CLOUD_COORD].values.astype("float64")
        keep &= np.isfinite(cloud) & (cloud <= max_cloud_cover)

    if all(name in stack.coords for name in BBOX_COORDS):
        bbox = np.stack([stack[name].values for name in BBOX_COORDS], axis=-1)
        for i, b in enumerate(bbox):
            if keep[i] and np.all(np.isfinite(b)) and not box(*b).intersects(geometry):
                keep[i] = False

    for t, kept in zip(times, keep):
        if not kept:
            logger.debug("Discarding acquisition %s", t.date())

    return stack.isel(time=np.flatnonzero(keep))
