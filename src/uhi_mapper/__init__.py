"""
uhi_mapper
==========
Urban Heat Island intensity mapping from satellite thermal and land-cover
imagery.

Resolves a city region from an administrative-boundary dataset, builds a
built-up mask from land-cover labels, composites calibrated thermal
scenes, and classifies each urban pixel's deviation from the regional
mean temperature into five intensity bands.  Runs in-process with
xarray, dask, rioxarray and geopandas; imagery streams from any STAC API
(Microsoft Planetary Computer by default).

Submodules
----------
config     -- UHIConfig, the frozen configuration shared by every stage
region     -- Region of interest from a point and boundary features
fetcher    -- Land-cover / thermal stacks (in-memory or STAC)
urban      -- Built-up mask from the temporal mode of land-cover labels
thermal    -- Calibrated median temperature composite
classify   -- Region mean, UHI index and intensity classes
export     -- Export requests and sinks (memory, GeoTIFF)
pipeline   -- UHIPipeline / PipelinePlan / UHIResult
tool       -- File-in / file-out GeoTool wrapper
"""

from .config import UHIConfig
from .region import Region, RegionResolver
from .fetcher import ImagerySource, InMemorySource, StacImagerySource
from .urban import UrbanMaskBuilder
from .thermal import ThermalCompositor
from .classify import HeatIndexClassifier, UHIClass, classify_value
from .export import ExportRequest, GeoTiffSink, InMemorySink
from .pipeline import PipelinePlan, UHIPipeline, UHIResult
from .tool import UrbanHeatIslandMapper

__version__ = "1.0.0"
__all__ = [
    "UHIConfig",
    "Region",
    "RegionResolver",
    "ImagerySource",
    "InMemorySource",
    "StacImagerySource",
    "UrbanMaskBuilder",
    "ThermalCompositor",
    "HeatIndexClassifier",
    "UHIClass",
    "classify_value",
    "ExportRequest",
    "GeoTiffSink",
    "InMemorySink",
    "PipelinePlan",
    "UHIPipeline",
    "UHIResult",
    "UrbanHeatIslandMapper",
]
