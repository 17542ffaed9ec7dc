"""
export.py
=========
Hand the classified raster to a sink.

An ``ExportRequest`` bundles everything a sink needs: the classified
image, the clip region, the ground sample distance, the target CRS, the
pixel ceiling, the legend and palette.  Every sink checks the pixel
budget before it touches the image.

Sinks
-----
InMemorySink  -- keeps the requests (tests, notebooks)
GeoTiffSink   -- tiled LZW GeoTIFF + JSON sidecar + optional PNG quick-look
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple

import numpy as np
import matplotlib
matplotlib.use("Agg")  # non-interactive backend safe for headless execution
import matplotlib.pyplot as plt
import matplotlib.colors as mcolors
from matplotlib.patches import Patch
import rasterio
import rioxarray  # noqa: F401 -- activates the .rio accessor
import xarray as xr
from pyproj import CRS
from rasterio.enums import Resampling
from shapely.geometry import mapping

from uhi_mapper.classify import LEGEND, PALETTE, class_counts
from uhi_mapper.exceptions import OutputWriteError, PixelBudgetExceededError
from uhi_mapper.raster import METRES_PER_DEGREE, estimate_pixel_count, raster_crs
from uhi_mapper.region import Region

logger = logging.getLogger("uhi_mapper.export")

# uint8 fill value for invalid pixels in written files only
NODATA = 255


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class ExportRequest:
    """A classified raster plus the parameters needed to deliver it."""

    image: xr.DataArray
    region: Region
    scale_m: float
    crs: str = "EPSG:4326"
    max_pixels: int = int(1e13)
    legend: Dict[int, str] = field(default_factory=lambda: dict(LEGEND))
    palette: Tuple[str, ...] = PALETTE
    description: str = "UHI_Classes_Landsat8_Export"
    folder: str = "UrbanHeat"

    def estimated_pixels(self) -> int:
        """Pixels needed to cover the region at ``scale_m``."""
        return estimate_pixel_count(self.region.geometry, self.scale_m)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serialisable description; the region is GeoJSON."""
        return {
            "description": self.description,
            "folder": self.folder,
            "scale_m": self.scale_m,
            "crs": self.crs,
            "max_pixels": self.max_pixels,
            "estimated_pixels": self.estimated_pixels(),
            "legend": {str(k): v for k, v in self.legend.items()},
            "palette": list(self.palette),
            "region": mapping(self.region.geometry),
            "region_label": self.region.label,
            "image": {
                "name": self.image.name,
                "shape": [int(n) for n in self.image.shape],
                "crs": str(self.image.attrs.get("crs")),
            },
        }


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------

class ExportSink(ABC):
    """Receives export requests; subclasses implement :meth:`_write`."""

    def export(self, request: ExportRequest) -> Any:
        """Check the pixel budget, then deliver *request*.

        Raises
        ------
        PixelBudgetExceededError
            If the region needs more than ``request.max_pixels`` pixels at
            ``request.scale_m``.  Nothing is written.
        """
        estimated = request.estimated_pixels()
        if estimated > request.max_pixels:
            raise PixelBudgetExceededError(
                self.__class__.__name__,
                "export",
                estimated,
                request.max_pixels,
                {"scale_m": request.scale_m, "crs": request.crs},
            )
        logger.info(
            "Exporting '%s' (~%s px at %g m, %s)",
            request.description, f"{estimated:,}", request.scale_m, request.crs,
        )
        return self._write(request)

    @abstractmethod
    def _write(self, request: ExportRequest) -> Any:
        """Deliver a request that passed the budget check."""


class InMemorySink(ExportSink):
    """Collect requests in :attr:`requests`."""

    def __init__(self) -> None:
        self.requests: List[ExportRequest] = []

    def _write(self, request: ExportRequest) -> ExportRequest:
        self.requests.append(request)
        return request


class GeoTiffSink(ExportSink):
    """Write the classified raster as a single-band uint8 GeoTIFF.

    Parameters
    ----------
    output_path:
        Target ``.tif`` path.  The JSON sidecar (and the PNG, if enabled)
        share its stem.
    png:
        Also render a PNG quick-look with the class palette.
    """

    def __init__(self, output_path: Path, png: bool = False) -> None:
        self.output_path = Path(output_path)
        self.png = png
        self.written: Dict[str, Path] = {}

    def _write(self, request: ExportRequest) -> Path:
        image = self.prepare(request)
        values = np.asarray(image.values, dtype="float64")
        counts = class_counts(values)

        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self._write_tiff(image, values, request)
            self.written["tiff"] = self.output_path

            sidecar = self.output_path.with_suffix(".json")
            with open(sidecar, "w", encoding="utf-8") as fh:
                json.dump(
                    {**request.to_dict(), "class_counts": {str(k): v for k, v in counts.items()}},
                    fh,
                    indent=2,
                )
            self.written["sidecar"] = sidecar

            if self.png:
                self.written["png"] = self._write_png(values, request)
        except OSError as exc:
            raise OutputWriteError(str(self.output_path), str(exc)) from exc

        logger.info("Wrote %s (%d x %d px)", self.output_path, values.shape[1], values.shape[0])
        return self.output_path

    # ------------------------------------------------------------------
    # Reprojection
    # ------------------------------------------------------------------

    @staticmethod
    def prepare(request: ExportRequest) -> xr.DataArray:
        """Reproject (nearest) to the target CRS and scale, then clip to the region."""
        target = CRS.from_user_input(request.crs)
        resolution = (
            request.scale_m / METRES_PER_DEGREE if target.is_geographic else request.scale_m
        )

        image = request.image.compute(scheduler="synchronous").astype("float64")
        image = image.drop_vars([c for c in image.coords if c not in ("y", "x")])
        image.attrs = {}
        image = (
            image.rio.set_spatial_dims(x_dim="x", y_dim="y")
            .rio.write_crs(raster_crs(request.image))
            .rio.write_nodata(np.nan)
        )
        image = image.rio.reproject(
            target,
            resolution=resolution,
            resampling=Resampling.nearest,
            nodata=np.nan,
        )
        return image.rio.clip([mapping(request.region.geometry)], crs="EPSG:4326", drop=True)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def _write_tiff(self, image: xr.DataArray, values: np.ndarray, request: ExportRequest) -> None:
        out = np.where(np.isnan(values), NODATA, values).astype(np.uint8)
        # 512 px tiles only once the image spans a full tile
        tiling = (
            {"tiled": True, "blockxsize": 512, "blockysize": 512}
            if min(out.shape) >= 512 else {}
        )
        with rasterio.open(
            self.output_path,
            "w",
            driver="GTiff",
            height=out.shape[0],
            width=out.shape[1],
            count=1,
            dtype="uint8",
            crs=image.rio.crs,
            transform=image.rio.transform(),
            nodata=NODATA,
            compress="lzw",
            **tiling,
        ) as dst:
            dst.write(out, 1)
            dst.update_tags(
                description=request.description,
                scale_m=str(request.scale_m),
                palette=",".join(request.palette),
                **{f"class_{k}": v for k, v in request.legend.items()},
            )

    def _write_png(self, values: np.ndarray, request: ExportRequest) -> Path:
        path = self.output_path.with_suffix(".png")
        cmap = mcolors.ListedColormap(list(request.palette))
        cmap.set_bad(alpha=0.0)

        fig, ax = plt.subplots(figsize=(8, 8))
        # class 0 is drawn with the class-1 colour
        ax.imshow(
            np.ma.masked_invalid(np.clip(values, 1, 5)),
            cmap=cmap, vmin=0.5, vmax=5.5, interpolation="nearest",
        )
        ax.set_title(f"Urban Heat Island classes -- {request.region.label}", fontsize=11)
        ax.axis("off")
        ax.legend(
            handles=[
                Patch(facecolor=colour, edgecolor="grey", label=request.legend.get(k, str(k)))
                for k, colour in zip(sorted(request.legend), request.palette)
            ],
            loc="lower right",
            fontsize=8,
        )
        fig.savefig(path, dpi=150, bbox_inches="tight")
        plt.close(fig)
        return path
