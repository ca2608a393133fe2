"""Tests for burden.py — segment burden and the 0-100 composite."""

import pytest

from burden import BurdenWeights, composite_score, segment_burden
from exposome import ALL_LAYERS, ExposomeSettings

ADVERSE = ("crowd", "noise", "aqi", "traffic")


def _reading(**overrides):
    base = {"crowd": 0.5, "noise": 0.5, "aqi": 150.0, "green": 0.2, "traffic": 0.5}
    base.update(overrides)
    return base


class TestSegmentBurden:
    def test_default_weights(self):
        assert segment_burden(weights=BurdenWeights.default(), **_reading()) == pytest.approx(0.36)

    @pytest.mark.parametrize("layer", ADVERSE)
    def test_monotone_in_adverse_layers(self, layer):
        weights = BurdenWeights.neutral()
        step = 30.0 if layer == "aqi" else 0.1
        previous = -1.0
        for i in range(8):
            value = segment_burden(weights=weights, **_reading(**{layer: i * step}))
            assert value >= previous
            previous = value

    def test_green_lowers_burden(self):
        weights = BurdenWeights.neutral()
        values = [segment_burden(weights=weights, **_reading(green=g / 10)) for g in range(11)]
        assert values == sorted(values, reverse=True)

    def test_clamped(self):
        heavy = BurdenWeights(crowd=1, noise=1, green=0, air=1, traffic=1)
        assert segment_burden(1, 1, 300, 0, 1, heavy) == 1.0
        assert segment_burden(0, 0, 0, 1, 0, BurdenWeights.default()) == 0.0


class TestBurdenWeights:
    def test_out_of_range(self):
        with pytest.raises(ValueError):
            BurdenWeights(crowd=1.5)

    def test_non_numeric(self):
        with pytest.raises(ValueError):
            BurdenWeights(noise="loud")

    def test_from_dict_aqi_alias(self):
        weights = BurdenWeights.from_dict({"aqi": 0.5, "crowd": 0.1})
        assert weights.air == 0.5
        assert weights.crowd == 0.1
        assert weights.noise == 0.2

    def test_from_dict_unknown_key(self):
        with pytest.raises(ValueError):
            BurdenWeights.from_dict({"pollen": 0.3})

    def test_from_dict_empty_is_default(self):
        assert BurdenWeights.from_dict(None) == BurdenWeights.default()

    def test_from_dict_wrong_types(self):
        with pytest.raises(ValueError):
            BurdenWeights.from_dict({"crowd": None})
        with pytest.raises(ValueError):
            BurdenWeights.from_dict([0.5])


class TestCompositeScore:
    def _averages(self, value):
        return {layer.value: value for layer in ALL_LAYERS}

    def test_uniform_half(self):
        assert composite_score(self._averages(0.5), ExposomeSettings.default()) == 50

    def test_green_inverted(self):
        averages = self._averages(0.0)
        averages["green"] = 1.0
        assert composite_score(averages, ExposomeSettings.default()) == 0

    def test_rounds_half_up(self):
        assert composite_score({"air": 0.125}, ExposomeSettings.default()) == 13

    def test_no_active_layers(self):
        settings = ExposomeSettings.default()
        for layer in ALL_LAYERS:
            settings = settings.with_layer(layer, active=False)
        assert composite_score(self._averages(0.9), settings) == 0

    def test_deactivating_zero_weight_layer_is_noop(self):
        averages = self._averages(0.3)
        averages["heat"] = 0.9
        weighted_out = ExposomeSettings.default().with_layer("heat", weight=0.0)
        deactivated = weighted_out.with_layer("heat", active=False)
        assert composite_score(averages, weighted_out) == composite_score(averages, deactivated)

    def test_deactivating_weighted_layer_changes_score(self):
        averages = self._averages(0.0)
        averages["green"] = 1.0
        averages["air"] = 1.0
        settings = ExposomeSettings.default()
        assert composite_score(averages, settings) == 14
        assert composite_score(averages, settings.with_layer("air", active=False)) == 0

    @pytest.mark.parametrize("layer", ["air", "noise", "heat", "safety", "crowd", "traffic"])
    def test_monotone_in_active_adverse_layer(self, layer):
        low = self._averages(0.4)
        high = dict(low)
        high[layer] = 0.8
        settings = ExposomeSettings.default()
        assert composite_score(high, settings) >= composite_score(low, settings)

    def test_monotone_in_green(self):
        low = self._averages(0.4)
        high = dict(low, green=0.8)
        settings = ExposomeSettings.default()
        assert composite_score(high, settings) <= composite_score(low, settings)
