"""
pipeline.py
===========
Wire the stages together.

``UHIPipeline.plan()`` resolves the region and builds the lazy urban mask
and temperature composite; nothing is read from the imagery yet when a
STAC source is used.  ``PipelinePlan.materialize()`` is the single point
where the graph is evaluated (dask synchronous scheduler) and returns a
``UHIResult``.

    boundaries ──► RegionResolver ──► Region
                                        │
    landcover stack ──► UrbanMaskBuilder ──► urban mask ─┐
    thermal stack ───► ThermalCompositor ──► composite ──┤
                                                         ▼
                                HeatIndexClassifier ──► classified raster
                                                         │
                                                         ▼
                                                     ExportSink
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import dask
import geopandas as gpd
import numpy as np
import xarray as xr

from uhi_mapper.classify import HeatIndexClassifier, ScalarStatistic, UHIClass, class_counts
from uhi_mapper.config import UHIConfig
from uhi_mapper.export import ExportRequest, ExportSink
from uhi_mapper.fetcher import ImagerySource
from uhi_mapper.raster import align_to_grid
from uhi_mapper.region import Region, RegionResolver
from uhi_mapper.thermal import ThermalCompositor
from uhi_mapper.urban import UrbanMaskBuilder

logger = logging.getLogger("uhi_mapper.pipeline")


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class UHIResult:
    """Evaluated outputs of one pipeline run."""

    config: UHIConfig
    region: Region
    statistic: ScalarStatistic

    # Evaluated (y, x) rasters on the analysis grid
    urban_mask: xr.DataArray
    composite: xr.DataArray
    uhi_index: xr.DataArray
    classified: xr.DataArray

    def class_counts(self) -> Dict[int, int]:
        """Urban pixels per class id 0..5."""
        return class_counts(self.classified)

    def summary(self) -> None:
        """Print the run summary to the console."""
        urban = np.asarray(self.urban_mask, dtype="float64")
        counts = self.class_counts()
        print("=== Urban Heat Island Summary =============================")
        print(f"  Region                 : {self.region.label}")
        print(f"  Area                   : {self.region.area_km2:,.1f} km2")
        print(f"  Window                 : {self.config.start_date} .. {self.config.end_date}")
        print(f"  Mean temperature       : {self.statistic.value:.2f} K")
        print(f"  Valid mean pixels      : {self.statistic.valid_pixels:,}")
        print(f"  Urban pixels           : {int(np.sum(urban == 1)):,}")
        for cls in UHIClass:
            print(f"  {cls.label:<22} : {counts[cls.value]:,}")
        print("==========================================================")

    def export_request(self, description: Optional[str] = None) -> ExportRequest:
        """Build the export request from the configured scale, CRS and ceiling."""
        kwargs: Dict[str, Any] = {}
        if description:
            kwargs["description"] = description
        return ExportRequest(
            image=self.classified,
            region=self.region,
            scale_m=self.config.export_scale_m,
            crs=self.config.export_crs,
            max_pixels=self.config.max_pixels,
            **kwargs,
        )

    def export(self, sink: ExportSink, description: Optional[str] = None) -> Any:
        return sink.export(self.export_request(description))


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class PipelinePlan:
    """Region plus the lazy stage outputs; call :meth:`materialize` to evaluate."""

    config: UHIConfig
    region: Region
    urban_mask: xr.DataArray
    composite: xr.DataArray

    def materialize(self) -> UHIResult:
        """Evaluate the plan.

        Raises
        ------
        PixelBudgetExceededError
            If the region mean would exceed ``max_pixels``.
        DivisionByZeroMeanError
            If the region mean is 0 or not finite.
        """
        # region_mean and the final compute share one evaluation of the composite
        composite = self.composite.persist(scheduler="synchronous")

        classifier = HeatIndexClassifier(self.config)
        statistic = classifier.region_mean(composite, self.region)
        index = classifier.uhi_index(composite, statistic)
        classified = classifier.classify_masked(index, self.urban_mask, self.region)

        urban_mask, composite, index, classified = dask.compute(
            self.urban_mask, composite, index, classified, scheduler="synchronous",
        )
        result = UHIResult(
            config=self.config,
            region=self.region,
            statistic=statistic,
            urban_mask=urban_mask,
            composite=composite,
            uhi_index=index,
            classified=classified,
        )
        logger.info("Class counts: %s", result.class_counts())
        return result


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class UHIPipeline:
    """Build UHI plans for one configuration and imagery source.

    Parameters
    ----------
    config:
        Pipeline configuration; validated on construction.
    source:
        Provides the land-cover and thermal stacks.
    """

    def __init__(self, config: UHIConfig, source: ImagerySource) -> None:
        self.config = config.validate()
        self.source = source

    def plan(self, boundaries: gpd.GeoDataFrame) -> PipelinePlan:
        """Resolve the region and build the lazy stage outputs.

        Raises
        ------
        RegionNotFoundError
            If no boundary feature contains the configured point.
        MissingCalibrationCoefficientError
            If a retained thermal scene lacks coefficients and the policy
            is ``"fail"``.
        """
        cfg = self.config
        region = RegionResolver(cfg.simplify_tolerance_m).resolve(
            cfg.center_lon, cfg.center_lat, boundaries,
        )

        landcover = self.source.landcover_stack(region, cfg)
        urban_mask = UrbanMaskBuilder(cfg).build(landcover, region)

        thermal = self.source.thermal_stack(region, cfg)
        composite = ThermalCompositor(cfg).composite(thermal, region)

        # land cover is often finer than the thermal grid
        urban_mask = align_to_grid(urban_mask, composite)

        return PipelinePlan(cfg, region, urban_mask, composite)

    def run(self, boundaries: gpd.GeoDataFrame) -> UHIResult:
        """Plan and materialize in one call."""
        return self.plan(boundaries).materialize()
