"""
region.py
=========
Resolve the analysis region from a city point and an administrative
boundary dataset.

The boundary features intersecting the point are simplified in a local
UTM projection (so the tolerance is in metres) and dissolved into one
region geometry that every downstream stage uses as its spatial filter.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Tuple

import geopandas as gpd
from pyproj import CRS
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from uhi_mapper.exceptions import InputValidationError, RegionNotFoundError
from uhi_mapper.validators import Validators

logger = logging.getLogger("uhi_mapper.region")


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class Region:
    """The resolved analysis region."""

    # Dissolved, simplified region in WGS84 (EPSG:4326)
    geometry: BaseGeometry

    # The simplified boundary features that intersect the point (WGS84)
    features: gpd.GeoDataFrame

    # (min_lon, min_lat, max_lon, max_lat)
    bbox_wgs84: Tuple[float, float, float, float]

    # UTM zone of the city point -- metric work happens here
    utm_crs: CRS

    label: str

    def __repr__(self) -> str:  # noqa: D105
        b = self.bbox_wgs84
        return (
            f"<Region '{self.label}' features={len(self.features)} "
            f"bbox=({b[0]:.4f},{b[1]:.4f},{b[2]:.4f},{b[3]:.4f})>"
        )

    @property
    def area_km2(self) -> float:
        series = gpd.GeoSeries([self.geometry], crs="EPSG:4326").to_crs(self.utm_crs)
        return float(series.area.iloc[0]) / 1e6


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def utm_crs_from_lonlat(lon: float, lat: float) -> CRS:
    """Return the EPSG UTM CRS that covers *lon*, *lat*."""
    zone = min(int((lon + 180) / 6) + 1, 60)
    base = 32600 if lat >= 0 else 32700
    return CRS.from_epsg(base + zone)


def _label_for(features: gpd.GeoDataFrame) -> str:
    for column in ("ADM1_NAME", "shapeName", "NAME_1", "name", "NAME"):
        if column in features.columns:
            return ", ".join(str(v) for v in features[column].tolist())
    return f"{len(features)} boundary feature(s)"


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class RegionResolver:
    """Derive the analysis region from a point and boundary features.

    Parameters
    ----------
    tolerance_m:
        Simplification tolerance in metres.  ``0`` keeps the geometry
        as-is.
    """

    def __init__(self, tolerance_m: float = 1000.0) -> None:
        Validators.assert_non_negative(tolerance_m, "simplify_tolerance_m")
        self.tolerance_m = float(tolerance_m)

    def resolve(
        self,
        lon: float,
        lat: float,
        boundaries: gpd.GeoDataFrame,
    ) -> Region:
        """Return the simplified union of the features intersecting the point.

        Raises
        ------
        InputValidationError
            If the point is outside the WGS84 domain or *boundaries* is
            not a GeoDataFrame.
        RegionNotFoundError
            If no feature intersects the point.
        """
        Validators.assert_point_in_domain(lon, lat)
        if not isinstance(boundaries, gpd.GeoDataFrame):
            raise InputValidationError(
                f"Boundaries must be a GeoDataFrame, got {type(boundaries).__name__}."
            )

        if boundaries.crs is None:
            warnings.warn(
                "Boundary dataset has no CRS -- assuming WGS84 (EPSG:4326).",
                stacklevel=2,
            )
            boundaries = boundaries.set_crs("EPSG:4326")
        boundaries = boundaries.to_crs("EPSG:4326")

        point = Point(lon, lat)
        hits = boundaries.sindex.query(point, predicate="intersects")
        params = {"lon": lon, "lat": lat, "tolerance_m": self.tolerance_m}
        if len(hits) == 0:
            raise RegionNotFoundError("RegionResolver", params)

        selected = boundaries.iloc[sorted(hits)]
        logger.info("Point (%.4f, %.4f) falls in %d boundary feature(s)", lon, lat, len(selected))

        utm = utm_crs_from_lonlat(lon, lat)
        simplified = self._simplify(selected, utm)

        geometry = unary_union(list(simplified.geometry))
        if geometry.is_empty:
            raise RegionNotFoundError("RegionResolver", params)

        minx, miny, maxx, maxy = geometry.bounds
        region = Region(
            geometry=geometry,
            features=simplified,
            bbox_wgs84=(minx, miny, maxx, maxy),
            utm_crs=utm,
            label=_label_for(simplified),
        )
        logger.info("Resolved %r (%.1f km2)", region, region.area_km2)
        return region

    def _simplify(self, features: gpd.GeoDataFrame, utm: CRS) -> gpd.GeoDataFrame:
        """Simplify each feature in metres, preserving topology."""
        if self.tolerance_m == 0:
            return features.copy()
        projected = features.to_crs(utm)
        projected = projected.set_geometry(
            projected.geometry.simplify(self.tolerance_m, preserve_topology=True)
        )
        simplified = projected.to_crs("EPSG:4326")

        # Fall back to the original shape for any feature that degenerated
        degenerate = simplified.geometry.is_empty | ~simplified.geometry.is_valid
        if degenerate.any():
            logger.warning(
                "%d feature(s) degenerated when simplified; keeping the originals",
                int(degenerate.sum()),
            )
            column = simplified.geometry.name
            simplified.loc[degenerate, column] = features.geometry[degenerate].values
        return simplified
