"""
thermal.py
==========
Calibrate raw thermal-band acquisitions and reduce them to one
temperature composite.

  1.  Scene filtering   (date window, cloud cover, footprint vs region)
  2.  Calibration       (value * scale + offset, per-acquisition coefficients)
  3.  Median composite  (NaN-skipping, pixel-wise across time)

The median is robust to residual cloud contamination and single-date
anomalies.  With an even number of valid dates it is the mean of the two
middle values.  A composite pixel is valid iff at least one date was
valid there.
"""

from __future__ import annotations

import logging
import warnings

import numpy as np
import pandas as pd
import xarray as xr

from uhi_mapper.config import UHIConfig
from uhi_mapper.exceptions import MissingCalibrationCoefficientError, NoValidDataWarning
from uhi_mapper.raster import (
    OFFSET_COORD,
    SCALE_COORD,
    blank_raster,
    select_acquisitions,
)
from uhi_mapper.region import Region

logger = logging.getLogger("uhi_mapper.thermal")


class ThermalCompositor:
    """Produce a calibrated median temperature composite (Kelvin).

    Parameters
    ----------
    config:
        Pipeline configuration; uses the date range, ``max_cloud_cover``
        and ``on_missing_calibration``.
    """

    STAGE = "ThermalCompositor"

    def __init__(self, config: UHIConfig) -> None:
        self.config = config

    # ------------------------------------------------------------------
    # Top-level entry point
    # ------------------------------------------------------------------

    def composite(self, stack: xr.DataArray, region: Region) -> xr.DataArray:
        """Return the lazy ``(y, x)`` median temperature composite."""
        cfg = self.config
        selected = select_acquisitions(
            stack,
            region.geometry,
            cfg.start_date,
            cfg.end_date,
            max_cloud_cover=cfg.max_cloud_cover,
        )
        logger.info(
            "Thermal: %d of %d acquisitions with cloud cover <= %.1f%% in %s..%s",
            selected.sizes["time"], stack.sizes["time"], cfg.max_cloud_cover,
            cfg.start_date, cfg.end_date,
        )

        calibrated = self.calibrate(selected)
        if calibrated.sizes["time"] == 0:
            warnings.warn(
                "No usable thermal acquisitions in the analysis window; "
                "the temperature composite is empty.",
                NoValidDataWarning,
                stacklevel=2,
            )
            logger.warning("Thermal composite has no valid data in the window")
            return blank_raster(stack).rename("temperature")

        return self.median(calibrated).rename("temperature")

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def calibrate(self, stack: xr.DataArray) -> xr.DataArray:
        """Apply ``value * scale + offset`` with each acquisition's coefficients.

        Raises
        ------
        MissingCalibrationCoefficientError
            If an acquisition lacks a coefficient and the policy is
            ``"fail"``.  With ``"drop"`` the acquisition is discarded.
        """
        stack = stack.transpose("time", "y", "x")
        n = stack.sizes["time"]
        scale = (
            stack[SCALE_COORD].values.astype("float64")
            if SCALE_COORD in stack.coords else np.full(n, np.nan)
        )
        offset = (
            stack[OFFSET_COORD].values.astype("float64")
            if OFFSET_COORD in stack.coords else np.full(n, np.nan)
        )
        missing = ~np.isfinite(scale) | ~np.isfinite(offset)

        if missing.any():
            times = pd.DatetimeIndex(stack["time"].values)
            first = int(np.flatnonzero(missing)[0])
            if self.config.on_missing_calibration == "fail":
                names = [
                    name for name, values in (("scale", scale), ("offset", offset))
                    if not np.isfinite(values[first])
                ]
                raise MissingCalibrationCoefficientError(
                    self.STAGE,
                    acquisition=str(times[first].date()),
                    coefficient=" and ".join(names),
                    params={
                        "start_date": self.config.start_date,
                        "end_date": self.config.end_date,
                        "max_cloud_cover": self.config.max_cloud_cover,
                    },
                )
            for t in times[missing]:
                logger.warning("Dropping acquisition %s: no calibration coefficients", t.date())
            keep = np.flatnonzero(~missing)
            stack = stack.isel(time=keep)
            scale = scale[keep]
            offset = offset[keep]

        # (time,) -> (time, 1, 1) so each acquisition uses its own pair
        calibrated = (
            stack.astype("float64") * scale[:, np.newaxis, np.newaxis]
            + offset[:, np.newaxis, np.newaxis]
        )
        calibrated.attrs = {**stack.attrs, "units": "K"}
        return calibrated

    # ------------------------------------------------------------------
    # Compositing
    # ------------------------------------------------------------------

    @staticmethod
    def median(calibrated: xr.DataArray) -> xr.DataArray:
        """NaN-skipping pixel-wise median across ``time``."""
        if calibrated.chunks is not None:
            calibrated = calibrated.chunk({"time": -1})
        composite = calibrated.median("time", skipna=True)
        composite.attrs = dict(calibrated.attrs)
        return composite
