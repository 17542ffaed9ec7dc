"""
Urban Heat Island Mapper — Input Validators
============================================
Static precondition checks shared by the configuration, the resolver and
the tool entry point.

All methods raise an exception from :mod:`uhi_mapper.exceptions` rather
than returning booleans::

    Validators.assert_point_in_domain(80.27, 13.08)
    Validators.assert_non_negative(1000.0, "simplify_tolerance_m")
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Sequence

from uhi_mapper.exceptions import CRSError, InputValidationError, OutputWriteError


class Validators:
    """Collection of static precondition checks.

    All methods are ``@staticmethod`` — this class is never instantiated.
    """

    # ------------------------------------------------------------------
    # File-system checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_file_exists(path: Path) -> None:
        """Assert that *path* points to an existing file or directory dataset.

        File geodatabases (``.gdb``) are directories, so directories with a
        supported suffix are accepted here.

        Raises:
            InputValidationError: If *path* does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise InputValidationError(
                f"Input file not found: '{path}'. "
                "Check that the path is correct and the file exists."
            )

    @staticmethod
    def assert_output_dir_writable(output_path: Path) -> None:
        """Create the parent directory of *output_path* if needed.

        Raises:
            OutputWriteError: If the parent directory cannot be created.
        """
        parent = Path(output_path).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputWriteError(str(output_path), str(exc)) from exc

    @staticmethod
    def assert_supported_extension(path: Path, extensions: Sequence[str]) -> None:
        """Assert that *path* has one of the allowed file extensions.

        Raises:
            InputValidationError: If the extension is not in *extensions*.
        """
        path = Path(path)
        suffix = path.suffix.lower()
        allowed = [ext.lower() for ext in extensions]
        if suffix not in allowed:
            raise InputValidationError(
                f"Unsupported file extension '{suffix}' for '{path.name}'. "
                f"Accepted extensions: {', '.join(allowed)}"
            )

    # ------------------------------------------------------------------
    # CRS / coordinate checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_crs_valid(crs_string: str) -> None:
        """Assert that *crs_string* can be parsed by :mod:`pyproj`.

        Raises:
            CRSError: If the string is not recognised.
        """
        from pyproj import CRS  # noqa: PLC0415
        from pyproj.exceptions import CRSError as ProjCRSError  # noqa: PLC0415

        try:
            CRS.from_user_input(crs_string)
        except ProjCRSError as exc:
            raise CRSError(crs_string) from exc

    @staticmethod
    def assert_point_in_domain(lon: float, lat: float) -> None:
        """Assert that ``(lon, lat)`` lies in the WGS84 coordinate domain.

        Raises:
            InputValidationError: If either ordinate is out of range.
        """
        if not -180.0 <= lon <= 180.0:
            raise InputValidationError(
                f"Longitude {lon} is outside [-180, 180]."
            )
        if not -90.0 <= lat <= 90.0:
            raise InputValidationError(
                f"Latitude {lat} is outside [-90, 90]."
            )

    # ------------------------------------------------------------------
    # Numeric checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_non_negative(value: float, name: str) -> None:
        """Raises InputValidationError if *value* < 0."""
        if value < 0:
            raise InputValidationError(f"{name} must be >= 0 (got {value}).")

    @staticmethod
    def assert_positive(value: float, name: str) -> None:
        """Raises InputValidationError if *value* <= 0."""
        if value <= 0:
            raise InputValidationError(f"{name} must be > 0 (got {value}).")

    @staticmethod
    def assert_strictly_increasing(values: Sequence[float], name: str) -> None:
        """Assert *values* is a strictly increasing sequence.

        Raises:
            InputValidationError: On the first non-increasing pair.
        """
        for lower, upper in zip(values, values[1:]):
            if not lower < upper:
                raise InputValidationError(
                    f"{name} must be strictly increasing (got {list(values)})."
                )

    # ------------------------------------------------------------------
    # Temporal checks
    # ------------------------------------------------------------------

    @staticmethod
    def assert_date_range(start: str, end: str) -> None:
        """Assert ISO dates with ``start < end`` (end is exclusive).

        Raises:
            InputValidationError: If either date is malformed or the range
                is empty.
        """
        try:
            start_d = date.fromisoformat(start)
            end_d = date.fromisoformat(end)
        except ValueError as exc:
            raise InputValidationError(
                f"Dates must be ISO 8601 (YYYY-MM-DD): {exc}"
            ) from exc
        if start_d >= end_d:
            raise InputValidationError(
                f"start_date {start} must be before end_date {end}."
            )

    @staticmethod
    def assert_month_window(months: Sequence[int]) -> None:
        """Assert ``(first, last)`` calendar months, both in 1..12.

        ``first > last`` is allowed and wraps over the new year (e.g.
        ``(11, 2)`` for a southern-hemisphere summer).
        """
        if len(months) != 2:
            raise InputValidationError(
                f"Month window must be (first, last); got {list(months)}."
            )
        for m in months:
            if not 1 <= m <= 12:
                raise InputValidationError(f"Month {m} is outside 1..12.")
