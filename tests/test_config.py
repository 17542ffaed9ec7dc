"""
Tests — UHIConfig and the CLI
==============================
Defaults, validation, JSON round-trips and the click entry point's error
path (no network access: every case fails before imagery is queried).
"""

from __future__ import annotations

import json
from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest
from click.testing import CliRunner

from uhi_mapper.cli import main
from uhi_mapper.config import DEFAULT_THRESHOLDS, UHIConfig
from uhi_mapper.exceptions import CRSError, InputValidationError

from conftest import make_boundaries


class TestDefaults:

    def test_reference_analysis(self):
        cfg = UHIConfig()
        assert (cfg.center_lon, cfg.center_lat) == (80.2707, 13.0827)
        assert cfg.months == (5, 9)
        assert cfg.max_cloud_cover == 10.0
        assert cfg.urban_class == 6
        assert cfg.thresholds == DEFAULT_THRESHOLDS
        assert cfg.export_crs == "EPSG:4326"
        assert cfg.max_pixels == 10 ** 13
        assert cfg.on_missing_calibration == "fail"

    def test_defaults_validate(self):
        cfg = UHIConfig()
        assert cfg.validate() is cfg

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            UHIConfig().max_cloud_cover = 50.0  # type: ignore[misc]


class TestValidation:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"thresholds": (0.0, 0.005, 0.01)},
            {"thresholds": (0.0, 0.01, 0.005, 0.015, 0.02)},
            {"months": (0, 9)},
            {"months": (5, 13)},
            {"start_date": "2024-01-01", "end_date": "2023-01-01"},
            {"start_date": "2023-13-01"},
            {"urban_class": 42},
            {"on_missing_calibration": "ignore"},
            {"max_cloud_cover": -1.0},
            {"mean_scale_m": 0.0},
            {"center_lat": 95.0},
        ],
    )
    def test_invalid(self, overrides):
        with pytest.raises(InputValidationError):
            UHIConfig(**overrides).validate()

    def test_invalid_crs(self):
        with pytest.raises(CRSError):
            UHIConfig(export_crs="EPSG:not-a-code").validate()

    def test_wrapping_months_allowed(self):
        UHIConfig(months=(11, 2)).validate()


class TestSerialisation:

    def test_dict_round_trip(self):
        cfg = UHIConfig(max_cloud_cover=20.0, months=(6, 8))
        assert UHIConfig.from_dict(cfg.to_dict()) == cfg

    def test_json_file(self, tmp_path: Path):
        path = tmp_path / "uhi.json"
        path.write_text(json.dumps({"center_lon": 77.59, "center_lat": 12.97, "months": [3, 5]}))
        cfg = UHIConfig.from_json(path)
        assert cfg.center_lon == 77.59
        assert cfg.months == (3, 5)

    def test_unknown_key(self):
        with pytest.raises(InputValidationError, match="colour"):
            UHIConfig.from_dict({"colour": "red"})

    def test_unreadable_json(self, tmp_path: Path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(InputValidationError):
            UHIConfig.from_json(path)

    def test_overrides_skip_none(self):
        cfg = UHIConfig().with_overrides(center_lon=None, max_cloud_cover=30.0)
        assert cfg.center_lon == 80.2707
        assert cfg.max_cloud_cover == 30.0


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

class TestCli:

    @pytest.fixture()
    def boundary_file(self, tmp_path: Path) -> Path:
        path = tmp_path / "boundaries.geojson"
        make_boundaries().to_file(path, driver="GeoJSON")
        return path

    def _invoke(self, *args):
        return CliRunner().invoke(main, list(args))

    def test_invalid_dates_exit_1(self, boundary_file, tmp_path: Path):
        result = self._invoke(
            "-i", str(boundary_file), "-o", str(tmp_path / "out.tif"),
            "--landcover-collection", "lulc",
            "--start", "2024-01-01", "--end", "2023-01-01",
        )
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_unsupported_output_extension(self, boundary_file, tmp_path: Path):
        result = self._invoke(
            "-i", str(boundary_file), "-o", str(tmp_path / "out.png"),
            "--landcover-collection", "lulc",
        )
        assert result.exit_code == 1
        assert "Unsupported file extension" in result.output

    def test_unknown_config_key(self, boundary_file, tmp_path: Path):
        config = tmp_path / "uhi.json"
        config.write_text(json.dumps({"colour": "red"}))
        result = self._invoke(
            "-i", str(boundary_file), "-o", str(tmp_path / "out.tif"),
            "--config", str(config), "--landcover-collection", "lulc",
        )
        assert result.exit_code == 1
        assert "colour" in result.output

    def test_landcover_collection_required(self, boundary_file, tmp_path: Path):
        result = self._invoke("-i", str(boundary_file), "-o", str(tmp_path / "out.tif"))
        assert result.exit_code == 2
