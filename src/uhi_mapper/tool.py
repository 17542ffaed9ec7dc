"""
Urban Heat Island Mapper — Tool
================================
File-in / file-out wrapper around :class:`~uhi_mapper.pipeline.UHIPipeline`:
reads an administrative-boundary dataset, runs the pipeline and writes the
classified raster with :class:`~uhi_mapper.export.GeoTiffSink`.

Usage::

    from pathlib import Path
    from uhi_mapper.config import UHIConfig
    from uhi_mapper.fetcher import StacImagerySource
    from uhi_mapper.tool import UrbanHeatIslandMapper

    tool = UrbanHeatIslandMapper(
        input_path=Path("data/gaul_level1.gpkg"),
        output_path=Path("output/uhi_classes.tif"),
        # Impact Observatory annual maps: one item per year, 7 is "built area"
        config=UHIConfig(
            months=(1, 12),
            urban_class=7,
            landcover_classes=(1, 2, 4, 5, 7, 8, 9, 11),
        ),
        source=StacImagerySource(landcover_collection="io-lulc-annual-v02"),
    )
    tool.run()
    tool.result.summary()
"""

from __future__ import annotations

import logging
from pathlib import Path

import geopandas as gpd

from uhi_mapper.base_tool import GeoTool
from uhi_mapper.config import UHIConfig
from uhi_mapper.exceptions import InputValidationError
from uhi_mapper.export import GeoTiffSink
from uhi_mapper.fetcher import ImagerySource
from uhi_mapper.pipeline import UHIPipeline, UHIResult
from uhi_mapper.validators import Validators

logger = logging.getLogger("uhi_mapper.tool")


class UrbanHeatIslandMapper(GeoTool):
    """Map urban heat-island classes for the region containing a point.

    Args:
        input_path: Administrative-boundary dataset (any format geopandas
            reads).
        output_path: Output GeoTIFF path.
        config: Pipeline configuration.
        source: Imagery back-end for the land-cover and thermal stacks.
        png: Also write a PNG quick-look next to the GeoTIFF.
        layer: Layer name for multi-layer sources (GeoPackage, FileGDB).
        verbose: Enable DEBUG-level logging.
    """

    SUPPORTED_EXTENSIONS = [".shp", ".gpkg", ".geojson", ".json", ".gdb"]
    OUTPUT_EXTENSIONS = [".tif", ".tiff"]

    def __init__(
        self,
        input_path: Path,
        output_path: Path,
        config: UHIConfig | None = None,
        source: ImagerySource | None = None,
        *,
        png: bool = False,
        layer: str | None = None,
        verbose: bool = False,
    ) -> None:
        super().__init__(input_path, output_path, verbose=verbose)
        self.config = config or UHIConfig()
        self.source = source
        self.png = png
        self.layer = layer
        self._result: UHIResult | None = None

    @property
    def result(self) -> UHIResult | None:
        """The evaluated pipeline result, once :meth:`run` has completed."""
        return self._result

    # ------------------------------------------------------------------
    # GeoTool abstract method implementations
    # ------------------------------------------------------------------

    def validate_inputs(self) -> None:
        """Validate paths, the configuration and the imagery source.

        Raises:
            InputValidationError: If the boundary file is missing, either
                extension is unsupported, the configuration is invalid or
                no imagery source was given.
            OutputWriteError: If the output directory cannot be created.
        """
        Validators.assert_file_exists(self.input_path)
        Validators.assert_supported_extension(self.input_path, self.SUPPORTED_EXTENSIONS)
        Validators.assert_supported_extension(self.output_path, self.OUTPUT_EXTENSIONS)
        Validators.assert_output_dir_writable(self.output_path)
        self.config.validate()
        if self.source is None:
            raise InputValidationError("An imagery source is required.")
        logger.debug("Inputs validated.")

    def process(self) -> None:
        """Read the boundaries, run the pipeline and write the outputs.

        Raises:
            InputValidationError: If the boundary dataset cannot be read.
            PipelineError: On any fatal pipeline condition.
            OutputWriteError: If writing the GeoTIFF or sidecar fails.
        """
        boundaries = self._read_boundaries()
        logger.info("Loaded %d boundary feature(s) from %s", len(boundaries), self.input_path.name)

        pipeline = UHIPipeline(self.config, self.source)
        self._result = pipeline.run(boundaries)
        self._result.export(GeoTiffSink(self.output_path, png=self.png))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _read_boundaries(self) -> gpd.GeoDataFrame:
        try:
            if self.layer:
                return gpd.read_file(self.input_path, layer=self.layer)
            return gpd.read_file(self.input_path)
        except (OSError, ValueError, RuntimeError) as exc:
            raise InputValidationError(
                f"Could not read boundary dataset '{self.input_path}': {exc}"
            ) from exc
