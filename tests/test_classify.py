"""
Tests — HeatIndexClassifier
============================
Class boundaries, the region mean, the UHI index and the pixel budget.
"""

from __future__ import annotations

import numpy as np
import pytest

from uhi_mapper.classify import (
    LEGEND,
    HeatIndexClassifier,
    UHIClass,
    class_counts,
    classify_index,
    classify_value,
)
from uhi_mapper.config import UHIConfig
from uhi_mapper.exceptions import (
    DivisionByZeroMeanError,
    NoValidDataWarning,
    PixelBudgetExceededError,
)

from conftest import LAT, LON, make_raster, make_region


def _config(**overrides) -> UHIConfig:
    return UHIConfig(center_lon=LON, center_lat=LAT, simplify_tolerance_m=0.0, **overrides)


# ---------------------------------------------------------------------------
# Scalar classification
# ---------------------------------------------------------------------------

class TestClassifyValue:

    @pytest.mark.parametrize(
        "x, expected",
        [
            (-0.5, 0),
            (-0.0001, 0),
            (0.0, 1),
            (0.0049999, 1),
            (0.005, 2),
            (0.0099, 2),
            (0.010, 3),
            (0.015, 4),
            (0.020, 5),
            (0.75, 5),
        ],
    )
    def test_boundaries(self, x, expected):
        assert classify_value(x) == expected

    def test_nan_is_none(self):
        assert classify_value(float("nan")) is None

    def test_monotonic(self):
        xs = np.linspace(-0.01, 0.03, 401)
        classes = [int(classify_value(x)) for x in xs]
        assert classes == sorted(classes)

    def test_returns_enum_with_label(self):
        assert classify_value(0.012) is UHIClass.STRONG
        assert UHIClass.VERY_STRONG.label == "Very Strong"

    def test_custom_thresholds(self):
        assert classify_value(0.25, (0.0, 0.1, 0.2, 0.3, 0.4)) == 3

    def test_legend(self):
        assert LEGEND == {1: "Mild", 2: "Moderate", 3: "Strong", 4: "Very Strong", 5: "Extreme"}


class TestClassifyIndex:

    def test_matches_scalar_form(self):
        values = np.linspace(-0.01, 0.03, 100).reshape(10, 10)
        classes = classify_index(make_raster(values))
        expected = np.vectorize(lambda v: int(classify_value(v)))(values)
        np.testing.assert_array_equal(classes.values, expected)

    def test_nan_stays_nan(self):
        values = np.zeros((10, 10))
        values[3, 3] = np.nan
        classes = classify_index(make_raster(values))
        assert np.isnan(classes.values[3, 3])
        assert classes.values[0, 0] == 1

    def test_class_counts(self):
        values = np.full((10, 10), np.nan)
        values[0, :3] = [0.0, 0.006, 0.006]
        values[1, 0] = -0.1
        counts = class_counts(classify_index(make_raster(values)))
        assert counts == {0: 1, 1: 1, 2: 2, 3: 0, 4: 0, 5: 0}


# ---------------------------------------------------------------------------
# Region mean
# ---------------------------------------------------------------------------

class TestRegionMean:

    def test_mean_of_region_pixels(self, config, region):
        values = np.full((10, 10), 300.0)
        values[0, 0] = 310.0
        values[0, 1] = 290.0
        stat = HeatIndexClassifier(config).region_mean(make_raster(values), region)
        assert stat.value == 300.0
        assert stat.valid_pixels == 100
        assert stat.reducer == "mean"
        assert stat.scale_m == 100.0

    def test_pixels_outside_region_ignored(self, config):
        region = make_region(columns=5)
        values = np.full((10, 10), 300.0)
        values[:, 5:] = 1000.0
        stat = HeatIndexClassifier(config).region_mean(make_raster(values), region)
        assert stat.value == 300.0
        assert stat.valid_pixels == 50

    def test_nan_pixels_skipped(self, config, region):
        values = np.full((10, 10), 300.0)
        values[:5] = np.nan
        stat = HeatIndexClassifier(config).region_mean(make_raster(values), region)
        assert stat.value == 300.0
        assert stat.valid_pixels == 50

    def test_budget_exceeded(self, region):
        with pytest.raises(PixelBudgetExceededError) as exc_info:
            HeatIndexClassifier(_config(max_pixels=10)).region_mean(
                make_raster(np.full((10, 10), 300.0)), region,
            )
        err = exc_info.value
        assert err.operation == "region_mean"
        assert err.max_pixels == 10
        assert err.estimated > 10

    def test_budget_independent_of_data(self, region):
        # Same failure for a composite with no valid pixel at all
        with pytest.raises(PixelBudgetExceededError):
            HeatIndexClassifier(_config(max_pixels=10)).region_mean(
                make_raster(np.full((10, 10), np.nan)), region,
            )

    def test_statistic_records_region(self, config, region):
        stat = HeatIndexClassifier(config).region_mean(make_raster(np.full((10, 10), 1.0)), region)
        assert stat.region_wkt == region.geometry.wkt
        assert stat.max_pixels == config.max_pixels
        assert stat.estimated_pixels > 0


# ---------------------------------------------------------------------------
# UHI index + classification
# ---------------------------------------------------------------------------

class TestHeatIndex:

    def test_index_formula(self, config, region):
        values = np.full((10, 10), 300.0)
        values[0, 0] = 301.5
        values[0, 1] = 298.5
        composite = make_raster(values)
        classifier = HeatIndexClassifier(config)
        index = classifier.uhi_index(composite, classifier.region_mean(composite, region))

        assert index.values[0, 0] == 0.005
        assert index.values[0, 1] == -0.005
        assert index.values[5, 5] == 0.0
        assert index.attrs["region_mean"] == 300.0

    def test_zero_mean_raises(self, config, region):
        composite = make_raster(np.zeros((10, 10)))
        classifier = HeatIndexClassifier(config)
        stat = classifier.region_mean(composite, region)
        with pytest.raises(DivisionByZeroMeanError) as exc_info:
            classifier.uhi_index(composite, stat)
        assert exc_info.value.stage == "HeatIndexClassifier"

    def test_no_valid_pixels_warns(self, config, region):
        composite = make_raster(np.full((10, 10), np.nan))
        classifier = HeatIndexClassifier(config)
        stat = classifier.region_mean(composite, region)
        assert stat.valid_pixels == 0
        with pytest.warns(NoValidDataWarning):
            index = classifier.uhi_index(composite, stat)
        assert np.all(np.isnan(index.values))

    def test_classify_masks_non_urban(self, config, region):
        values = np.full((10, 10), 300.0)
        values[0, 0] = 301.5
        values[1, 0] = 301.5
        values[0, 1] = 298.5
        values[1, 1] = 298.5
        composite = make_raster(values)
        urban = np.zeros((10, 10))
        urban[0] = 1.0

        classifier = HeatIndexClassifier(config)
        stat = classifier.region_mean(composite, region)
        classes = classifier.classify(composite, stat, make_raster(urban), region)

        assert classes.values[0, 0] == UHIClass.MODERATE
        assert classes.values[0, 1] == UHIClass.UNCLASSIFIED
        assert classes.values[0, 5] == UHIClass.MILD
        assert np.all(np.isnan(classes.values[1:]))
        assert classes.attrs["legend"] == LEGEND
