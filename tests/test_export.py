"""
Tests — Export sinks
=====================
Pixel-budget checks, the request payload and GeoTIFF output read back
with rasterio.
"""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
import rasterio

from uhi_mapper.exceptions import PixelBudgetExceededError
from uhi_mapper.export import NODATA, ExportRequest, GeoTiffSink, InMemorySink

from conftest import make_raster


def _classified() -> np.ndarray:
    """Left half class 2, right half non-urban (NaN), one class-0 pixel."""
    values = np.full((10, 10), np.nan)
    values[:, :5] = 2.0
    values[0, 0] = 0.0
    return values


def _request(region, **kwargs) -> ExportRequest:
    params = {"scale_m": 100.0}
    params.update(kwargs)
    return ExportRequest(image=make_raster(_classified()), region=region, **params)


class TestRequest:

    def test_defaults(self, region):
        request = _request(region)
        assert request.crs == "EPSG:4326"
        assert request.palette == ("white", "yellow", "orange", "red", "darkred")
        assert request.legend[1] == "Mild"
        assert request.folder == "UrbanHeat"

    def test_to_dict_is_json_serialisable(self, region):
        payload = json.loads(json.dumps(_request(region).to_dict()))
        assert payload["scale_m"] == 100.0
        assert payload["region"]["type"] == "Polygon"
        assert payload["legend"] == {
            "1": "Mild", "2": "Moderate", "3": "Strong", "4": "Very Strong", "5": "Extreme",
        }
        assert payload["image"]["shape"] == [10, 10]


class TestInMemorySink:

    def test_keeps_request(self, region):
        sink = InMemorySink()
        request = _request(region)
        assert sink.export(request) is request
        assert sink.requests == [request]

    def test_budget_checked_before_write(self, region):
        sink = InMemorySink()
        with pytest.raises(PixelBudgetExceededError) as exc_info:
            sink.export(_request(region, max_pixels=10))
        assert exc_info.value.operation == "export"
        assert exc_info.value.stage == "InMemorySink"
        assert sink.requests == []


class TestGeoTiffSink:

    def test_writes_uint8_geotiff(self, region, tmp_path: Path):
        out = tmp_path / "uhi.tif"
        GeoTiffSink(out).export(_request(region))

        with rasterio.open(out) as src:
            assert src.count == 1
            assert src.dtypes[0] == "uint8"
            assert src.nodata == NODATA
            assert src.crs.to_epsg() == 4326
            assert src.res[0] == pytest.approx(100.0 / 111_320.0)
            tags = src.tags()
            data = src.read(1)

        assert tags["class_3"] == "Strong"
        assert tags["description"] == "UHI_Classes_Landsat8_Export"
        assert set(np.unique(data)) <= {0, 2, NODATA}
        assert 2 in data and NODATA in data

    def test_sidecar(self, region, tmp_path: Path):
        out = tmp_path / "uhi.tif"
        sink = GeoTiffSink(out)
        sink.export(_request(region))

        sidecar = json.loads((tmp_path / "uhi.json").read_text(encoding="utf-8"))
        assert sidecar["crs"] == "EPSG:4326"
        assert sidecar["class_counts"]["2"] > 0
        assert sidecar["class_counts"]["5"] == 0
        assert sink.written["sidecar"] == tmp_path / "uhi.json"

    def test_projected_crs_uses_metres(self, region, tmp_path: Path):
        out = tmp_path / "uhi_utm.tif"
        GeoTiffSink(out).export(_request(region, crs="EPSG:32644"))
        with rasterio.open(out) as src:
            assert src.crs.to_epsg() == 32644
            assert src.res == pytest.approx((100.0, 100.0))

    def test_png_quicklook(self, region, tmp_path: Path):
        out = tmp_path / "uhi.tif"
        sink = GeoTiffSink(out, png=True)
        sink.export(_request(region))
        assert (tmp_path / "uhi.png").exists()
        assert sink.written["png"] == tmp_path / "uhi.png"

    def test_budget_exceeded_writes_nothing(self, region, tmp_path: Path):
        out = tmp_path / "uhi.tif"
        with pytest.raises(PixelBudgetExceededError):
            GeoTiffSink(out).export(_request(region, max_pixels=10))
        assert not out.exists()
