"""
fetcher.py
==========
Imagery back-ends that hand raster stacks to the pipeline.

``InMemorySource``
    Wraps stacks that are already built (numpy- or dask-backed).  Used by
    the tests and for data prepared offline.

``StacImagerySource``
    Queries a STAC API (Microsoft Planetary Computer by default) and
    lazy-streams the region window with stackstac -- no full-scene
    downloads.  Each item's cloud cover, footprint and thermal
    calibration coefficients (``raster:bands`` scale/offset) are attached
    along ``time``.

Collections used by default
---------------------------
landsat-c2-l2   -- Landsat Collection 2 Level-2, ``lwir11`` surface temperature
land cover      -- caller supplied (collection + label asset)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np
import xarray as xr

from uhi_mapper.config import UHIConfig
from uhi_mapper.raster import (
    BBOX_COORDS,
    CLOUD_COORD,
    OFFSET_COORD,
    SCALE_COORD,
    empty_stack,
)
from uhi_mapper.region import Region

logger = logging.getLogger("uhi_mapper.fetcher")

PLANETARY_COMPUTER_URL = "https://planetarycomputer.microsoft.com/api/stac/v1"


# ---------------------------------------------------------------------------
# Source interface
# ---------------------------------------------------------------------------

class ImagerySource(ABC):
    """Provides the land-cover and thermal stacks for a region."""

    @abstractmethod
    def landcover_stack(self, region: Region, config: UHIConfig) -> xr.DataArray:
        """Return a ``(time, y, x)`` stack of land-cover labels."""

    @abstractmethod
    def thermal_stack(self, region: Region, config: UHIConfig) -> xr.DataArray:
        """Return a ``(time, y, x)`` stack of raw thermal readings."""


class InMemorySource(ImagerySource):
    """Serve prepared stacks unchanged; filtering happens in the stages."""

    def __init__(self, landcover: xr.DataArray, thermal: xr.DataArray) -> None:
        self.landcover = landcover
        self.thermal = thermal

    def landcover_stack(self, region: Region, config: UHIConfig) -> xr.DataArray:
        return self.landcover

    def thermal_stack(self, region: Region, config: UHIConfig) -> xr.DataArray:
        return self.thermal


# ---------------------------------------------------------------------------
# STAC back-end
# ---------------------------------------------------------------------------

class StacImagerySource(ImagerySource):
    """Stream land-cover and thermal stacks from a STAC API.

    Parameters
    ----------
    landcover_collection:
        STAC collection holding per-pixel land-cover labels.
    landcover_asset:
        Asset key of the label raster.
    thermal_collection:
        STAC collection of thermal scenes.
    thermal_asset:
        Asset key of the thermal band (``lwir11`` is Landsat 8 ST_B10).
    platform:
        Restrict thermal scenes to this platform, or ``None``.
    stac_url:
        STAC API root.
    sign:
        Sign asset hrefs with ``planetary_computer.sign_inplace``.
    resolution:
        Output pixel size in metres (grid is the region's UTM zone).
    chunk_size:
        Dask chunk size in pixels for x and y.
    """

    def __init__(
        self,
        landcover_collection: str,
        landcover_asset: str = "data",
        thermal_collection: str = "landsat-c2-l2",
        thermal_asset: str = "lwir11",
        platform: Optional[str] = "landsat-8",
        stac_url: str = PLANETARY_COMPUTER_URL,
        sign: bool = True,
        resolution: float = 30.0,
        chunk_size: int = 1024,
    ) -> None:
        self.landcover_collection = landcover_collection
        self.landcover_asset = landcover_asset
        self.thermal_collection = thermal_collection
        self.thermal_asset = thermal_asset
        self.platform = platform
        self.stac_url = stac_url
        self.sign = sign
        self.resolution = resolution
        self.chunk_size = chunk_size
        self._catalog = None

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    @property
    def catalog(self):
        """Open the catalog once; signing adds SAS tokens to asset hrefs."""
        if self._catalog is None:
            import pystac_client  # noqa: PLC0415

            modifier = None
            if self.sign:
                import planetary_computer  # noqa: PLC0415

                modifier = planetary_computer.sign_inplace
            self._catalog = pystac_client.Client.open(self.stac_url, modifier=modifier)
        return self._catalog

    def _search(self, collection: str, region: Region, config: UHIConfig, query=None) -> List:
        search = self.catalog.search(
            collections=[collection],
            bbox=region.bbox_wgs84,
            datetime=f"{config.start_date}/{config.end_date}",
            query=query,
        )
        items = sorted(search.items(), key=_item_datetime)
        logger.info("Found %d item(s) in %s", len(items), collection)
        return items

    # ------------------------------------------------------------------
    # Public stacks
    # ------------------------------------------------------------------

    def landcover_stack(self, region: Region, config: UHIConfig) -> xr.DataArray:
        items = self._search(self.landcover_collection, region, config)
        return self._stack(items, self.landcover_asset, region)

    def thermal_stack(self, region: Region, config: UHIConfig) -> xr.DataArray:
        query = {"eo:cloud_cover": {"lte": config.max_cloud_cover}}
        if self.platform:
            query["platform"] = {"eq": self.platform}
        items = self._search(self.thermal_collection, region, config, query=query)
        return self._stack(items, self.thermal_asset, region)

    # ------------------------------------------------------------------
    # Stacking
    # ------------------------------------------------------------------

    def _region_bounds_utm(self, region: Region) -> Tuple[float, float, float, float]:
        import geopandas as gpd  # noqa: PLC0415

        series = gpd.GeoSeries([region.geometry], crs="EPSG:4326").to_crs(region.utm_crs)
        minx, miny, maxx, maxy = series.total_bounds
        return float(minx), float(miny), float(maxx), float(maxy)

    def _stack(self, items: List, asset: str, region: Region) -> xr.DataArray:
        epsg = region.utm_crs.to_epsg()
        if not items:
            logger.warning("No %s items for %s; returning an empty stack", asset, region.label)
            return empty_stack(self._region_bounds_utm(region), self.resolution, f"EPSG:{epsg}")

        import stackstac  # noqa: PLC0415

        stack = stackstac.stack(
            items,
            assets=[asset],
            bounds_latlon=region.bbox_wgs84,
            epsg=epsg,
            resolution=self.resolution,
            dtype="float64",  # type: ignore[arg-type]
            fill_value=np.float64("nan"),  # type: ignore[arg-type]
            rescale=False,   # calibration is applied per acquisition downstream
            sortby_date=False,
            chunksize={"x": self.chunk_size, "y": self.chunk_size},  # type: ignore[arg-type]
        )
        stack = stack.sel(band=asset, drop=True)
        stack = stack.drop_vars(
            [c for c in stack.coords if c not in ("time", "y", "x")]
        )

        nodata = [_band_field(item, asset, "nodata") for item in items]
        if any(np.isfinite(nodata)):
            nd = np.asarray(nodata, dtype="float64")[:, np.newaxis, np.newaxis]
            stack = stack.where(stack != nd)

        stack = stack.assign_coords({
            CLOUD_COORD: ("time", [_as_float(i.properties.get("eo:cloud_cover")) for i in items]),
            SCALE_COORD: ("time", [_band_field(i, asset, "scale") for i in items]),
            OFFSET_COORD: ("time", [_band_field(i, asset, "offset") for i in items]),
            **{
                name: ("time", [_as_float(i.bbox[k]) if i.bbox else np.nan for i in items])
                for k, name in enumerate(BBOX_COORDS)
            },
        })
        stack.attrs["crs"] = f"EPSG:{epsg}"
        stack.attrs["resolution"] = self.resolution
        stack = _drop_duplicate_times(stack)

        logger.info(
            "Stacked %s: %d scenes x %dx%d px at %g m",
            asset, stack.sizes["time"], stack.sizes["y"], stack.sizes["x"], self.resolution,
        )
        return stack


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _item_datetime(item):
    """Acquisition time; composite products only carry ``start_datetime``."""
    return item.datetime or item.common_metadata.start_datetime


def _as_float(value) -> float:
    return np.nan if value is None else float(value)


def _band_field(item, asset: str, key: str) -> float:
    """Read ``raster:bands[0][key]`` of *asset*; NaN when absent."""
    bands = item.assets[asset].extra_fields.get("raster:bands") or [{}]
    return _as_float(bands[0].get(key))


def _drop_duplicate_times(da: xr.DataArray) -> xr.DataArray:
    """Keep only the first acquisition when several granules share a timestamp."""
    _, idx = np.unique(da.time.values, return_index=True)
    return da.isel(time=np.sort(idx))
