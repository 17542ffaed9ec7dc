"""
urban.py
========
Built-up mask from a time series of land-cover labels.

Per-acquisition labels are noisy (cloud and shadow misclassification), so
the mask uses the per-pixel temporal mode over the summer window rather
than the latest observation.
"""

from __future__ import annotations

import logging
import warnings

import pandas as pd
import xarray as xr

from uhi_mapper.config import UHIConfig
from uhi_mapper.exceptions import NoValidDataWarning
from uhi_mapper.raster import blank_raster, region_mask, select_acquisitions
from uhi_mapper.region import Region

logger = logging.getLogger("uhi_mapper.urban")


def temporal_mode(labels: xr.DataArray, classes) -> xr.DataArray:
    """Most frequent label per pixel across ``time``.

    Only labels in *classes* are counted; NaN and out-of-space labels are
    ignored.  Ties go to the lowest class id.  Pixels without a single
    counted observation are NaN.
    """
    classes = sorted(int(c) for c in classes)
    counts = xr.concat(
        [(labels == c).sum("time") for c in classes],
        dim=pd.Index(classes, name="label"),
    )
    mode = counts.idxmax("label")
    observed = counts.sum("label") > 0
    return mode.where(observed)


class UrbanMaskBuilder:
    """Build the urban (built-up) mask for a region.

    Parameters
    ----------
    config:
        Pipeline configuration; uses the date range, the month window,
        ``urban_class`` and ``landcover_classes``.
    """

    def __init__(self, config: UHIConfig) -> None:
        self.config = config

    def build(self, stack: xr.DataArray, region: Region) -> xr.DataArray:
        """Return a lazy ``(y, x)`` mask: 1.0 urban, 0.0 not urban, NaN no data.

        Pixels outside the region are NaN as well.
        """
        cfg = self.config
        selected = select_acquisitions(
            stack,
            region.geometry,
            cfg.start_date,
            cfg.end_date,
            months=cfg.months,
        )
        n = selected.sizes["time"]
        logger.info(
            "Urban mask: %d of %d land-cover acquisitions in %s..%s, months %d-%d",
            n, stack.sizes["time"], cfg.start_date, cfg.end_date, *cfg.months,
        )

        if n == 0:
            warnings.warn(
                "No land-cover acquisitions in the analysis window; "
                "the urban mask is empty.",
                NoValidDataWarning,
                stacklevel=2,
            )
            logger.warning("Urban mask has no valid data in the window")
            return blank_raster(stack).rename("urban_mask")

        mode = temporal_mode(selected, cfg.landcover_classes)
        urban = xr.where(mode == cfg.urban_class, 1.0, 0.0).where(mode.notnull())
        urban = urban.where(region_mask(stack, region.geometry))

        urban = urban.drop_vars("label", errors="ignore")
        urban.attrs = {**stack.attrs, "urban_class": cfg.urban_class}
        return urban.rename("urban_mask")


def apply_urban_mask(raster: xr.DataArray, urban_mask: xr.DataArray) -> xr.DataArray:
    """Invalidate every pixel that is not urban (0) or has no land-cover data (NaN).

    Idempotent, and commutes with any pixel-wise classification.
    """
    masked = raster.where(urban_mask == 1)
    masked.attrs = dict(raster.attrs)
    return masked
