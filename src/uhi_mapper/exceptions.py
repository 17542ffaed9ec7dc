"""
Urban Heat Island Mapper — Exception Hierarchy
===============================================
Every stage of the mapper raises exceptions from this module so callers
can catch them at the right level of granularity.

Hierarchy::

    UHIMapperError                          ← catch-all base
    ├── InputValidationError                ← bad config, files, coordinates
    │   └── CRSError                        ← invalid / unknown CRS string
    ├── RasterError                         ← xarray / rasterio raster issues
    ├── PipelineError                       ← fatal pipeline condition
    │   ├── RegionNotFoundError             ← no boundary intersects the point
    │   ├── MissingCalibrationCoefficientError
    │   ├── DivisionByZeroMeanError         ← region mean is zero or invalid
    │   └── PixelBudgetExceededError        ← max-pixel circuit breaker
    └── OutputWriteError                    ← cannot write to output path

    NoValidDataWarning                      ← empty window, never raised

Usage::

    from uhi_mapper.exceptions import RegionNotFoundError

    raise RegionNotFoundError("RegionResolver", {"lon": 80.27, "lat": 13.08})
"""

from __future__ import annotations

from typing import Any, Mapping


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


class UHIMapperError(Exception):
    """Base exception for the Urban Heat Island Mapper.

    Args:
        message: Human-readable description of the error.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class InputValidationError(UHIMapperError):
    """Raised when configuration or inputs fail validation."""


class CRSError(InputValidationError):
    """Raised when a coordinate reference system string cannot be parsed.

    Args:
        crs_string: The raw CRS string that caused the error.
    """

    def __init__(self, crs_string: str) -> None:
        super().__init__(
            f"Invalid or unrecognised CRS: '{crs_string}'. "
            "Use an EPSG code (e.g. 'EPSG:4326') or a valid WKT/PROJ string."
        )
        self.crs_string: str = crs_string


# ---------------------------------------------------------------------------
# Raster
# ---------------------------------------------------------------------------


class RasterError(UHIMapperError):
    """Raised for raster structure problems (missing dims, coords, CRS)."""


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def _format_params(params: Mapping[str, Any]) -> str:
    return ", ".join(f"{k}={v!r}" for k, v in params.items())


class PipelineError(UHIMapperError):
    """Fatal pipeline condition, reported with the stage and its parameters.

    None of these are retried: every stage is a pure function of fixed
    configuration, so a retry reproduces the same failure.

    Args:
        stage: Name of the stage that failed (e.g. ``"ThermalCompositor"``).
        reason: Short explanation of the failure.
        params: Parameters in effect when the failure happened.
    """

    def __init__(
        self,
        stage: str,
        reason: str,
        params: Mapping[str, Any] | None = None,
    ) -> None:
        self.stage: str = stage
        self.reason: str = reason
        self.params: dict[str, Any] = dict(params or {})
        detail = f" [{_format_params(self.params)}]" if self.params else ""
        super().__init__(f"{stage}: {reason}{detail}")


class RegionNotFoundError(PipelineError):
    """Raised when no boundary feature intersects the configured point.

    Example::

        raise RegionNotFoundError("RegionResolver", {"lon": 0.0, "lat": 0.0})
    """

    def __init__(self, stage: str, params: Mapping[str, Any] | None = None) -> None:
        super().__init__(stage, "no boundary feature intersects the point", params)


class MissingCalibrationCoefficientError(PipelineError):
    """Raised when a retained acquisition lacks a calibration coefficient.

    Args:
        stage: Stage name.
        acquisition: Acquisition date (ISO string) of the offending scene.
        coefficient: Name of the missing coefficient(s).
        params: Parameters in effect.
    """

    def __init__(
        self,
        stage: str,
        acquisition: str,
        coefficient: str,
        params: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            stage,
            f"acquisition {acquisition} has no {coefficient} coefficient",
            params,
        )
        self.acquisition: str = acquisition
        self.coefficient: str = coefficient


class DivisionByZeroMeanError(PipelineError):
    """Raised when the region mean temperature is zero or not finite."""

    def __init__(
        self,
        stage: str,
        mean: float,
        params: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            stage,
            f"region mean is {mean!r}; the heat-island index is undefined",
            params,
        )
        self.mean: float = mean


class PixelBudgetExceededError(PipelineError):
    """Raised when an operation would touch more pixels than allowed.

    Args:
        stage: Stage name.
        operation: The guarded operation (``"region_mean"`` or ``"export"``).
        estimated: Estimated pixel count.
        max_pixels: Configured ceiling.
    """

    def __init__(
        self,
        stage: str,
        operation: str,
        estimated: int,
        max_pixels: int,
        params: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            stage,
            f"{operation} needs ~{estimated:,} pixels, above the "
            f"ceiling of {max_pixels:,}",
            params,
        )
        self.operation: str = operation
        self.estimated: int = estimated
        self.max_pixels: int = max_pixels


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class OutputWriteError(UHIMapperError):
    """Raised when an output cannot be written.

    Args:
        output_path: String representation of the path that failed.
        reason: Underlying OS or library error message.
    """

    def __init__(self, output_path: str, reason: str) -> None:
        super().__init__(
            f"Failed to write output to '{output_path}': {reason}"
        )
        self.output_path: str = output_path
        self.reason: str = reason


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


class NoValidDataWarning(UserWarning):
    """A stage found no valid data in its window and produced an all-NaN raster."""
