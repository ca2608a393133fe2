"""Tests for spatial_data.py — point sets, environment grid, segment readings."""

import pytest

from exposome import ExposomeField, ExposomeLayer
from spatial_data import (
    LA_CROWD_HOTSPOTS,
    LA_GREEN_SPACES,
    EnvironmentCell,
    EnvironmentGrid,
    PointFeature,
    PointSet,
    SpatialData,
    environment_at,
)


class TestPointSet:
    def test_nearest_empty(self):
        assert PointSet().nearest(34.0, -118.0) is None

    def test_nearest_tie_goes_to_first(self):
        a = PointFeature("a", 34.0, -118.0, 0.5)
        b = PointFeature("b", 34.0, -118.0, 0.9)
        feature, km = PointSet([a, b]).nearest(34.01, -118.0)
        assert feature.id == "a"
        assert km == pytest.approx(1.11, abs=0.01)

    def test_influence_decays_linearly(self):
        points = PointSet([PointFeature("a", 34.0, -118.0, 1.0)])
        assert points.influence(34.0, -118.0, 1.0) == pytest.approx(1.0)
        # ~0.556 km north: a little under half the radius
        assert points.influence(34.005, -118.0, 1.0) == pytest.approx(1 - 0.556, abs=0.01)
        assert points.influence(34.02, -118.0, 1.0) == 0.0

    def test_influence_takes_strongest(self):
        points = PointSet([
            PointFeature("weak", 34.0, -118.0, 0.2),
            PointFeature("strong", 34.0005, -118.0, 0.9),
        ])
        assert points.influence(34.0, -118.0, 1.0) > 0.8

    def test_magnitude_validated(self):
        with pytest.raises(ValueError):
            PointSet([PointFeature("bad", 0, 0, 1.5)])


class TestEnvironmentGrid:
    def test_from_field(self):
        grid = EnvironmentGrid.from_field(ExposomeField(), spacing_deg=0.05)
        assert len(grid) == 14 * 15
        for cell in grid:
            assert 0.0 <= cell.aqi <= 300.0

    def test_nearest_cell_sample(self):
        grid = EnvironmentGrid([
            EnvironmentCell(34.0, -118.0, aqi=150.0, noise=0.4, traffic=0.3),
            EnvironmentCell(35.0, -118.0, aqi=30.0, noise=0.1, traffic=0.1),
        ])
        sample = grid.sample(34.1, -118.0)
        assert sample[ExposomeLayer.AIR] == pytest.approx(0.5)
        assert sample[ExposomeLayer.NOISE] == 0.4
        assert sample[ExposomeLayer.TRAFFIC] == 0.3

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            EnvironmentGrid([])


class TestSpatialData:
    def test_reference_data(self):
        assert len(LA_GREEN_SPACES) == 10
        assert len(LA_CROWD_HOTSPOTS) == 8

    def test_nearest_green_at_griffith(self):
        spatial = SpatialData()
        feature, km = spatial.nearest_green(34.1367, -118.2987)
        assert feature.name == "Griffith Park"
        assert km == pytest.approx(0.0)

    def test_crowd_influence_downtown(self):
        spatial = SpatialData()
        assert spatial.crowd_influence(34.0522, -118.2437) == pytest.approx(0.9)

    def test_nearest_grid_optional(self):
        assert SpatialData().nearest_grid(34.0, -118.2) is None
        grid = EnvironmentGrid([EnvironmentCell(34.0, -118.2, 90.0, 0.3, 0.2)])
        assert SpatialData(grid=grid).nearest_grid(34.0, -118.2).aqi == 90.0


class TestEnvironmentAt:
    def test_field_readings(self):
        reading = environment_at(34.05, -118.25, ExposomeField(), SpatialData())
        assert set(reading) == {"aqi", "noise", "traffic", "green", "crowd"}
        assert 0.0 <= reading["aqi"] <= 300.0
        assert reading["crowd"] > 0.5

    def test_grid_as_environment(self):
        grid = EnvironmentGrid([EnvironmentCell(34.05, -118.25, 120.0, 0.5, 0.4)])
        reading = environment_at(34.05, -118.25, grid, SpatialData(green_spaces=(), crowd_hotspots=()))
        assert reading == {"aqi": pytest.approx(120.0), "noise": 0.5, "traffic": 0.4, "green": 0.0, "crowd": 0.0}
