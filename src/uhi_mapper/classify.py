"""
classify.py
===========
Relative heat-island index and its classification into intensity bands.

    uhi_index = (T - mean_T) / mean_T

The index is dimensionless, so scenes with different absolute
temperature regimes can be compared.  Classes use half-open
``[lower, upper)`` bins, so a value on a cut point belongs to the higher
class:

    class 0  unclassified   x < 0 (background, still a valid pixel)
    class 1  Mild           0     <= x < 0.005
    class 2  Moderate       0.005 <= x < 0.010
    class 3  Strong         0.010 <= x < 0.015
    class 4  Very Strong    0.015 <= x < 0.020
    class 5  Extreme        x >= 0.020
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import xarray as xr

from uhi_mapper.config import DEFAULT_THRESHOLDS, UHIConfig
from uhi_mapper.exceptions import (
    DivisionByZeroMeanError,
    NoValidDataWarning,
    PixelBudgetExceededError,
)
from uhi_mapper.raster import align_to_grid, estimate_pixel_count, region_mask, sample_to_scale
from uhi_mapper.region import Region
from uhi_mapper.urban import apply_urban_mask

logger = logging.getLogger("uhi_mapper.classify")


# ---------------------------------------------------------------------------
# Class space
# ---------------------------------------------------------------------------

class UHIClass(IntEnum):
    """Heat-island intensity classes."""

    UNCLASSIFIED = 0
    MILD = 1
    MODERATE = 2
    STRONG = 3
    VERY_STRONG = 4
    EXTREME = 5

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


LEGEND: Dict[int, str] = {c.value: c.label for c in UHIClass if c is not UHIClass.UNCLASSIFIED}

PALETTE: Tuple[str, ...] = ("white", "yellow", "orange", "red", "darkred")


def classify_value(x: float, thresholds: Sequence[float] = DEFAULT_THRESHOLDS) -> Optional[UHIClass]:
    """Class of a single index value; ``None`` for NaN."""
    if np.isnan(x):
        return None
    return UHIClass(int(np.digitize(x, np.asarray(thresholds, dtype="float64"))))


def classify_index(index: xr.DataArray, thresholds: Sequence[float] = DEFAULT_THRESHOLDS) -> xr.DataArray:
    """Pixel-wise :func:`classify_value`; NaN index pixels stay NaN."""
    bins = np.asarray(thresholds, dtype="float64")
    classes = xr.apply_ufunc(
        np.digitize,
        index,
        kwargs={"bins": bins},
        dask="parallelized",
        output_dtypes=[np.int64],
    )
    classes = classes.where(index.notnull())
    classes.attrs = {**index.attrs, "legend": LEGEND}
    return classes.rename("uhi_class")


def class_counts(classified) -> Dict[int, int]:
    """Valid pixels per class id 0..5 of an evaluated classified raster."""
    values = np.asarray(classified, dtype="float64")
    return {int(c): int(np.sum(values == c)) for c in UHIClass}


# ---------------------------------------------------------------------------
# Region statistic
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScalarStatistic:
    """A region-wide statistic and the context it was computed in.

    The value is an approximation bounded by the sampling scale, not an
    exact region integral.
    """

    value: float
    reducer: str
    scale_m: float
    max_pixels: int
    estimated_pixels: int
    valid_pixels: int
    region_wkt: str

    def __str__(self) -> str:
        return (
            f"{self.reducer}={self.value:.4f} at {self.scale_m:g} m "
            f"({self.valid_pixels:,} valid of ~{self.estimated_pixels:,} px)"
        )


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

class HeatIndexClassifier:
    """Compute the region mean, the UHI index and its classes.

    Parameters
    ----------
    config:
        Pipeline configuration; uses ``thresholds``, ``mean_scale_m`` and
        ``max_pixels``.
    """

    STAGE = "HeatIndexClassifier"

    def __init__(self, config: UHIConfig) -> None:
        self.config = config

    def _params(self) -> dict:
        cfg = self.config
        return {
            "mean_scale_m": cfg.mean_scale_m,
            "max_pixels": cfg.max_pixels,
            "start_date": cfg.start_date,
            "end_date": cfg.end_date,
        }

    # ------------------------------------------------------------------
    # Region mean
    # ------------------------------------------------------------------

    def region_mean(self, composite: xr.DataArray, region: Region) -> ScalarStatistic:
        """Mean temperature over the region, sampled at ``mean_scale_m``.

        This forces evaluation of the composite.

        Raises
        ------
        PixelBudgetExceededError
            If the region needs more than ``max_pixels`` pixels at the
            sampling scale.  Checked before any data is read.
        """
        cfg = self.config
        estimated = estimate_pixel_count(region.geometry, cfg.mean_scale_m)
        if estimated > cfg.max_pixels:
            raise PixelBudgetExceededError(
                self.STAGE, "region_mean", estimated, cfg.max_pixels, self._params(),
            )

        inside = composite.where(region_mask(composite, region.geometry))
        sampled = sample_to_scale(inside, cfg.mean_scale_m)
        stats = xr.Dataset(
            {"mean": sampled.mean(skipna=True), "valid": sampled.count()}
        ).compute(scheduler="synchronous")

        statistic = ScalarStatistic(
            value=float(stats["mean"]),
            reducer="mean",
            scale_m=cfg.mean_scale_m,
            max_pixels=cfg.max_pixels,
            estimated_pixels=estimated,
            valid_pixels=int(stats["valid"]),
            region_wkt=region.geometry.wkt,
        )
        logger.info("Region mean temperature: %s", statistic)
        return statistic

    # ------------------------------------------------------------------
    # Index + classes
    # ------------------------------------------------------------------

    def uhi_index(self, composite: xr.DataArray, statistic: ScalarStatistic) -> xr.DataArray:
        """Relative deviation of each pixel from the region mean.

        Raises
        ------
        DivisionByZeroMeanError
            If the region has valid pixels but their mean is 0 or not
            finite.
        """
        if statistic.valid_pixels == 0:
            warnings.warn(
                "The temperature composite has no valid pixels in the region; "
                "the heat-island map is empty.",
                NoValidDataWarning,
                stacklevel=2,
            )
            logger.warning("No valid temperature pixels in the region")
            return xr.full_like(composite, np.nan, dtype="float64").rename("uhi_index")

        mean = statistic.value
        if not np.isfinite(mean) or mean == 0.0:
            raise DivisionByZeroMeanError(self.STAGE, mean, self._params())

        index = (composite.astype("float64") - mean) / mean
        index.attrs = {**composite.attrs, "region_mean": mean, "units": "1"}
        return index.rename("uhi_index")

    def classify_masked(
        self,
        index: xr.DataArray,
        urban_mask: xr.DataArray,
        region: Region,
    ) -> xr.DataArray:
        """Classify *index*, drop non-urban pixels and clip to the region.

        *urban_mask* may sit on a different grid; it is resampled onto the
        grid of *index* first.
        """
        classes = classify_index(index, self.config.thresholds)
        classes = apply_urban_mask(classes, align_to_grid(urban_mask, index))
        classes = classes.where(region_mask(classes, region.geometry))
        classes.attrs = {**index.attrs, "legend": LEGEND}
        return classes.rename("uhi_class")

    def classify(
        self,
        composite: xr.DataArray,
        statistic: ScalarStatistic,
        urban_mask: xr.DataArray,
        region: Region,
    ) -> xr.DataArray:
        """Lazy classified raster: 0..5 inside urban pixels, NaN elsewhere."""
        index = self.uhi_index(composite, statistic)
        return self.classify_masked(index, urban_mask, region)
