"""Tests for engine.py — the MindRouteEngine query surface."""

from datetime import datetime

import pytest

from catalogue import UnknownProgram
from clinic_load import LoadTable
from engine import MindRouteEngine, relative_band
from exposome import ALL_LAYERS, ExposomeSettings
from geodesy import OutOfRangeCoordinate
from mr_trace import TraceContext, clear_trace, set_trace
from recommender import QueryFilters

USER = (34.05, -118.25)


class TestLoadCatalogue:
    def test_counts_and_trace(self, engine, feature_collection):
        ctx = TraceContext(trace_id="t")
        set_trace(ctx)
        try:
            catalogue, dropped = engine.load_catalogue(feature_collection)
        finally:
            clear_trace()
        assert len(catalogue) == 3
        assert dropped == 1
        assert ctx.stages[0].stage_name == "catalogue"
        assert ctx.stages[0].items == 3


class TestQuery:
    def test_menus_ignore_city_and_category_selection(self, engine, catalogue):
        result = engine.query(catalogue, QueryFilters(city="Pasadena"))
        assert [p.id for p in result.visible] == [2]
        assert result.cities == ["LA", "Pasadena"]
        assert result.categories == ["CBT", "Counseling", "Crisis Intervention", "Youth"]

    def test_menus_follow_other_filters(self, engine, catalogue):
        result = engine.query(catalogue, QueryFilters(search="beta"))
        assert result.cities == ["Pasadena"]
        assert result.categories == ["Counseling"]

    def test_distances_on_copies_only(self, engine, catalogue):
        result = engine.query(catalogue, QueryFilters(), USER)
        assert result.visible[0].distance_km == pytest.approx(0.0)
        assert catalogue.get(1).distance_km is None

    def test_pure(self, engine, catalogue):
        filters = QueryFilters(max_distance=5)
        first = engine.query(catalogue, filters, USER)
        second = engine.query(catalogue, filters, USER)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_bad_location(self, engine, catalogue):
        with pytest.raises(OutOfRangeCoordinate):
            engine.query(catalogue, QueryFilters(), (120.0, -118.0))


class TestRecommend:
    def test_ranked(self, engine, catalogue):
        ranked = engine.recommend(catalogue, QueryFilters(), USER)
        assert [r.program.id for r in ranked][0] == 1
        assert all(r.program.distance_miles is not None for r in ranked)

    def test_hard_filters_apply(self, engine, catalogue):
        ranked = engine.recommend(catalogue, QueryFilters(languages=("Spanish",)), USER)
        assert [r.program.id for r in ranked] == [1]


class TestRoutes:
    def test_routes_all_profiles(self, engine, catalogue):
        routes = engine.routes_all((34.10, -118.30), catalogue.get(2), "transit")
        assert [r.profile for r in routes] == ["fastest", "lowStress", "balanced"]
        assert all(r.mode == "transit" for r in routes)

    def test_needs_location(self, engine, catalogue):
        with pytest.raises(ValueError):
            engine.routes(None, catalogue.get(1))

    def test_bad_mode(self, engine, catalogue):
        with pytest.raises(ValueError):
            engine.routes(USER, catalogue.get(2), mode="hovercraft")

    def test_deterministic(self, engine, catalogue):
        a = engine.routes(USER, catalogue.get(2), "walking", "lowStress")
        b = engine.routes(USER, catalogue.get(2), "walking", "lowStress")
        assert a == b


class TestBurden:
    def test_burden_along(self, engine, catalogue):
        route = engine.routes(USER, catalogue.get(2), "walking", "balanced")
        result = engine.burden_along(route)
        assert 0 <= result.score <= 100
        assert set(result.layer_averages) == {layer.value for layer in ALL_LAYERS}

    def test_burden_between(self, engine, catalogue):
        result = engine.burden_between(USER, catalogue.get(2))
        assert result == engine.burden_between(USER, catalogue.get(2))
        assert isinstance(result.score, int)

    def test_all_layers_off(self, engine, catalogue):
        settings = ExposomeSettings.default()
        for layer in ALL_LAYERS:
            settings = settings.with_layer(layer, active=False)
        assert engine.burden_between(USER, catalogue.get(2), settings).score == 0


class TestLoad:
    def test_unknown_program(self, engine, catalogue):
        with pytest.raises(UnknownProgram):
            engine.load_at(catalogue, 99, datetime(2024, 5, 1, 9, 0))
        with pytest.raises(UnknownProgram):
            engine.next_low_load(catalogue, 99, datetime(2024, 5, 1, 9, 0))

    def test_configured_table(self, catalogue):
        loads = LoadTable.from_profiles({1: [0.9] * 10 + [0.3] + [0.9] * 13})
        engine = MindRouteEngine(loads=loads)
        assert engine.load_at(catalogue, 1, datetime(2024, 5, 1, 9, 0)) == 0.9
        window = engine.next_low_load(catalogue, 1, datetime(2024, 5, 1, 9, 20))
        assert (window.hours, window.minutes) == (0, 40)

    def test_synthetic_table_by_default(self, engine, catalogue):
        load = engine.load_at(catalogue, 1, datetime(2024, 5, 1, 15, 0))
        assert 0.8 <= load <= 1.0

    def test_synthetic_table_built_once_per_catalogue(self, engine, catalogue):
        table = engine.load_table_for(catalogue)
        assert engine.load_table_for(catalogue) is table
        assert MindRouteEngine().load_table_for(catalogue) is table
        assert len(table) == 24 * len(catalogue)

    def test_arrival_load(self, catalogue):
        loads = LoadTable.from_profiles({2: [0.2] * 12 + [0.95] * 12})
        engine = MindRouteEngine(loads=loads)
        program = catalogue.get(2)
        route = engine.routes(USER, program, "walking", "fastest")
        # A multi-hour walk leaving at 11:00 arrives in the busy afternoon
        arriving = engine.arrival_load(catalogue, program, route, datetime(2024, 5, 1, 11, 0))
        assert route.duration_minutes > 60
        assert arriving.load_at_arrival == 0.95
        assert program.load_at_arrival is None


class TestCompare:
    def test_bands(self, engine, catalogue):
        rows = engine.compare(catalogue, [1, 2], USER)
        assert [r.program.id for r in rows] == [1, 2]
        assert rows[0].distance_band == "low"
        assert rows[1].distance_band == "high"
        assert rows[1].time_band == "high"
        assert rows[0].to_dict()["program"]["id"] == 1

    def test_unknown_program(self, engine, catalogue):
        with pytest.raises(UnknownProgram):
            engine.compare(catalogue, [1, 42], USER)

    def test_empty(self, engine, catalogue):
        assert engine.compare(catalogue, [], USER) == []

    @pytest.mark.parametrize("value,band", [(0, "low"), (3, "low"), (5, "medium"), (7, "high"), (10, "high")])
    def test_relative_band(self, value, band):
        assert relative_band(value, 10) == band


class TestOverlay:
    def test_grid_values(self, engine):
        points = engine.overlay("noise", 3, 4)
        assert len(points) == 12
        assert all(0.0 <= p["value"] <= 1.0 for p in points)
        assert points[0]["id"] == "0-0"

    def test_unknown_layer(self, engine):
        with pytest.raises(ValueError):
            engine.overlay("smog")
