"""
config.py
=========
Immutable configuration threaded through every pipeline stage.

Defaults reproduce the reference analysis: Chennai, summer months of
2023, Landsat 8 thermal band, Dynamic World land-cover labels.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Literal, Mapping, Tuple

from uhi_mapper.exceptions import InputValidationError
from uhi_mapper.validators import Validators


# Dynamic World V1 label classes: 0 water, 1 trees, 2 grass,
# 3 flooded vegetation, 4 crops, 5 shrub & scrub, 6 built, 7 bare, 8 snow & ice
DYNAMIC_WORLD_CLASSES: Tuple[int, ...] = tuple(range(9))
DYNAMIC_WORLD_BUILT = 6

DEFAULT_THRESHOLDS: Tuple[float, ...] = (0.0, 0.005, 0.010, 0.015, 0.020)


@dataclass(frozen=True)
class UHIConfig:
    """Configuration for the UHI pipeline.

    Attributes:
        center_lon: Longitude of the city point (WGS84).
        center_lat: Latitude of the city point (WGS84).
        simplify_tolerance_m: Boundary simplification tolerance in metres.
        start_date: First day of the analysis window (inclusive, ISO).
        end_date: End of the analysis window (exclusive, ISO).
        months: ``(first, last)`` calendar months for the land-cover mode,
            inclusive.
        max_cloud_cover: Maximum scene cloud cover in percent (inclusive).
        urban_class: Land-cover label of the built-up category.
        landcover_classes: The label class space considered by the mode.
        thresholds: Five increasing cut points; class *k* is
            ``[thresholds[k-1], thresholds[k])`` and class 5 is unbounded.
        mean_scale_m: Sampling resolution of the region-mean statistic.
        export_scale_m: Ground sample distance of the exported raster.
        export_crs: CRS of the exported raster.
        max_pixels: Pixel ceiling for the region mean and the export.
        on_missing_calibration: ``"fail"`` raises on a scene without
            calibration coefficients, ``"drop"`` discards it.
    """

    center_lon: float = 80.2707
    center_lat: float = 13.0827
    simplify_tolerance_m: float = 1000.0
    start_date: str = "2023-01-01"
    end_date: str = "2024-01-01"
    months: Tuple[int, int] = (5, 9)
    max_cloud_cover: float = 10.0
    urban_class: int = DYNAMIC_WORLD_BUILT
    landcover_classes: Tuple[int, ...] = field(default=DYNAMIC_WORLD_CLASSES)
    thresholds: Tuple[float, ...] = field(default=DEFAULT_THRESHOLDS)
    mean_scale_m: float = 100.0
    export_scale_m: float = 100.0
    export_crs: str = "EPSG:4326"
    max_pixels: int = int(1e13)
    on_missing_calibration: Literal["fail", "drop"] = "fail"

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> "UHIConfig":
        """Check every parameter; return ``self`` so calls can be chained.

        Raises:
            InputValidationError: On the first invalid parameter.
        """
        Validators.assert_point_in_domain(self.center_lon, self.center_lat)
        Validators.assert_non_negative(self.simplify_tolerance_m, "simplify_tolerance_m")
        Validators.assert_date_range(self.start_date, self.end_date)
        Validators.assert_month_window(self.months)
        Validators.assert_non_negative(self.max_cloud_cover, "max_cloud_cover")
        Validators.assert_positive(self.mean_scale_m, "mean_scale_m")
        Validators.assert_positive(self.export_scale_m, "export_scale_m")
        Validators.assert_positive(self.max_pixels, "max_pixels")
        Validators.assert_crs_valid(self.export_crs)

        if len(self.thresholds) != 5:
            raise InputValidationError(
                f"Exactly five thresholds are required (got {len(self.thresholds)})."
            )
        Validators.assert_strictly_increasing(self.thresholds, "thresholds")

        if self.urban_class not in self.landcover_classes:
            raise InputValidationError(
                f"urban_class {self.urban_class} is not in landcover_classes "
                f"{list(self.landcover_classes)}."
            )
        if self.on_missing_calibration not in ("fail", "drop"):
            raise InputValidationError(
                "on_missing_calibration must be 'fail' or 'drop' "
                f"(got {self.on_missing_calibration!r})."
            )
        return self

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UHIConfig":
        """Build a config from a plain mapping, ignoring ``None`` values.

        Raises:
            InputValidationError: If *data* contains unknown keys.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InputValidationError(
                f"Unknown configuration key(s): {', '.join(unknown)}"
            )
        values = {k: v for k, v in data.items() if v is not None}
        for key in ("months", "landcover_classes", "thresholds"):
            if key in values:
                values[key] = tuple(values[key])
        return cls(**values)

    @classmethod
    def from_json(cls, path: Path) -> "UHIConfig":
        """Load a config from a JSON file."""
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise InputValidationError(
                f"Could not read configuration '{path}': {exc}"
            ) from exc
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        for key in ("months", "landcover_classes", "thresholds"):
            d[key] = list(d[key])
        return d

    def with_overrides(self, **overrides: Any) -> "UHIConfig":
        """Return a copy with the non-``None`` *overrides* applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)
