"""
MindRoute engine — the single entry point the dashboard talks to.

MindRouteEngine holds only read-only collaborators (exposome field,
spatial data, clinic load table, scoring model).  The catalogue, filters,
weights, user location, and selected program are passed into every call,
so each query is a pure function of its arguments: calling it twice with
the same inputs returns equal results.

Operations:
  load_catalogue   feature collection -> (Catalogue, dropped count)
  query            visible programs plus city / category menus
  recommend        ranked Recommendations
  routes           one ScoredRoute for a profile
  routes_all       [fastest, lowStress, balanced]
  burden_along     0-100 composite and layer averages for a route
  burden_between   same, over the straight line user -> program
  load_at          predicted load at a time
  next_low_load    next quiet hour
  arrival_load     program copy carrying load_at_arrival for a route
  compare          side-by-side distance / time / burden for programs
  overlay          gridded layer values for the map overlay
"""

import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from burden import BurdenWeights, composite_score
from catalogue import Catalogue, Program, load_catalogue
from clinic_load import LoadTable, LoadWindow
from exposome import ALL_LAYERS, ExposomeField, ExposomeSettings, parse_layer
from geodesy import LatLon, validate_coordinate
from mr_trace import traced_stage
from recommender import QueryFilters, Recommendation, matches, rank, recommend_one, with_distance
from route_builder import build_segments, build_waypoints, straight_line_samples
from route_scorer import ScoredRoute, score_route, validate_mode
from scoring_config import PROFILES, SCORING_MODEL
from spatial_data import SpatialData

logger = logging.getLogger(__name__)

# Samples per straight-line burden estimate (steps + 1 points).
BURDEN_LINE_STEPS = 24


@dataclass(frozen=True)
class QueryResult:
    visible: List[Program]
    cities: List[str]
    categories: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "visible": [p.to_dict() for p in self.visible],
            "cities": list(self.cities),
            "categories": list(self.categories),
        }


@dataclass(frozen=True)
class BurdenResult:
    score: int
    layer_averages: Dict[str, float]

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "layerAverages": dict(self.layer_averages)}


@dataclass(frozen=True)
class ComparisonRow:
    program: Program
    distance_miles: float
    travel_minutes: float
    burden_score: float
    distance_band: str
    time_band: str
    burden_band: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "program": self.program.to_dict(),
            "distanceMiles": self.distance_miles,
            "travelMinutes": self.travel_minutes,
            "burdenScore": self.burden_score,
            "distanceBand": self.distance_band,
            "timeBand": self.time_band,
            "burdenBand": self.burden_band,
        }


def relative_band(value: float, maximum: float) -> str:
    """low / medium / high by thirds of the largest value in a comparison."""
    if maximum <= 0:
        return "low"
    ratio = value / maximum
    if ratio < 0.33:
        return "low"
    if ratio < 0.66:
        return "medium"
    return "high"


@functools.lru_cache(maxsize=8)
def _synthetic_table(program_ids: Tuple[int, ...]) -> LoadTable:
    return LoadTable.synthetic(program_ids)


def _location(user_location) -> Optional[LatLon]:
    if user_location is None:
        return None
    return validate_coordinate(user_location[0], user_location[1])


class MindRouteEngine:
    """Route-burden, load, and recommendation queries over a program catalogue."""

    def __init__(
        self,
        field: Optional[ExposomeField] = None,
        spatial: Optional[SpatialData] = None,
        loads: Optional[LoadTable] = None,
        environment=None,
    ):
        self.field = field or ExposomeField()
        self.spatial = spatial or SpatialData()
        self.loads = loads
        # Anything with sample(lat, lon); the field itself by default, or
        # an EnvironmentGrid / real data source.
        self.environment = environment or self.field

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    def load_catalogue(self, feature_collection):
        with traced_stage("catalogue") as stage:
            catalogue, dropped = load_catalogue(feature_collection)
            stage.items = len(catalogue)
        return catalogue, dropped

    def load_table_for(self, catalogue: Catalogue) -> LoadTable:
        """The configured load table, or a synthetic one covering *catalogue*."""
        if self.loads is not None:
            return self.loads
        return _synthetic_table(tuple(catalogue.ids()))

    # ------------------------------------------------------------------
    # Listing and recommendations
    # ------------------------------------------------------------------

    def query(
        self,
        catalogue: Catalogue,
        filters: QueryFilters,
        user_location: Optional[LatLon] = None,
    ) -> QueryResult:
        """Visible programs plus the city / category menus.

        Menus come from programs passing every filter except city and
        category, so picking a city never empties the city menu.
        """
        location = _location(user_location)
        with traced_stage("query") as stage:
            visible: List[Program] = []
            cities = set()
            categories = set()
            for program in catalogue:
                program = with_distance(program, location)
                if not matches(program, filters, apply_city_and_categories=False):
                    continue
                if program.city:
                    cities.add(program.city)
                categories.update(program.categories)
                if matches(program, filters):
                    visible.append(program)
            stage.items = len(visible)
        return QueryResult(visible=visible, cities=sorted(cities), categories=sorted(categories))

    def recommend(
        self,
        catalogue: Catalogue,
        filters: QueryFilters,
        user_location: Optional[LatLon] = None,
    ) -> List[Recommendation]:
        location = _location(user_location)
        with traced_stage("recommend") as stage:
            candidates = []
            for program in catalogue:
                program = with_distance(program, location)
                if matches(program, filters):
                    candidates.append(recommend_one(program, filters, location))
            ranked = rank(candidates)
            stage.items = len(ranked)
        return ranked

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def routes(
        self,
        user_location: LatLon,
        program: Program,
        mode: str = "walking",
        profile: str = "balanced",
        weights: Optional[BurdenWeights] = None,
    ) -> ScoredRoute:
        start = _location(user_location)
        if start is None:
            raise ValueError("A route needs a user location")
        validate_mode(mode)
        weights = weights or BurdenWeights.default()

        with traced_stage("routes") as stage:
            waypoints = build_waypoints(start, program.location, profile, self.spatial)
            segments = build_segments(waypoints, weights, self.environment, self.spatial)
            route = score_route(segments, waypoints, profile, mode)
            stage.items = 1

        logger.debug(
            "Route to program %d: profile=%s mode=%s burden=%.3f minutes=%.1f",
            program.id, profile, mode, route.burden_score, route.duration_minutes,
        )
        return route

    def routes_all(
        self,
        user_location: LatLon,
        program: Program,
        mode: str = "walking",
        weights: Optional[BurdenWeights] = None,
    ) -> List[ScoredRoute]:
        return [self.routes(user_location, program, mode, profile, weights) for profile in PROFILES]

    # ------------------------------------------------------------------
    # Exposome burden
    # ------------------------------------------------------------------

    def _burden_over(self, points: Iterable[LatLon], settings: ExposomeSettings) -> BurdenResult:
        sums = {layer: 0.0 for layer in ALL_LAYERS}
        count = 0
        for lat, lon in points:
            sample = self.field.sample(lat, lon)
            for layer in ALL_LAYERS:
                sums[layer] += sample.values[layer]
            count += 1
        if count == 0:
            raise ValueError("Burden needs at least one sample point")
        averages = {layer.value: total / count for layer, total in sums.items()}
        return BurdenResult(score=composite_score(averages, settings), layer_averages=averages)

    def burden_along(self, route: ScoredRoute, settings: Optional[ExposomeSettings] = None) -> BurdenResult:
        """Composite burden sampled at every waypoint and segment midpoint."""
        settings = settings or ExposomeSettings.default()
        points: List[LatLon] = [route.waypoints[0]]
        for segment, waypoint in zip(route.segments, route.waypoints[1:]):
            points.append((segment.lat, segment.lon))
            points.append(waypoint)
        return self._burden_over(points, settings)

    def burden_between(
        self,
        user_location: LatLon,
        program: Program,
        settings: Optional[ExposomeSettings] = None,
    ) -> BurdenResult:
        """Composite burden over the straight line from user to program."""
        start = _location(user_location)
        if start is None:
            raise ValueError("Burden needs a user location")
        settings = settings or ExposomeSettings.default()
        return self._burden_over(straight_line_samples(start, program.location, BURDEN_LINE_STEPS), settings)

    # ------------------------------------------------------------------
    # Clinic load
    # ------------------------------------------------------------------

    def load_at(self, catalogue: Catalogue, program_id: int, when: datetime) -> float:
        catalogue.get(program_id)
        with traced_stage("load"):
            return self.load_table_for(catalogue).load_at(program_id, when)

    def next_low_load(
        self,
        catalogue: Catalogue,
        program_id: int,
        now: datetime,
        threshold: Optional[float] = None,
    ) -> Optional[LoadWindow]:
        catalogue.get(program_id)
        with traced_stage("load"):
            return self.load_table_for(catalogue).next_low_load(program_id, now, threshold)

    def arrival_load(
        self,
        catalogue: Catalogue,
        program: Program,
        route: ScoredRoute,
        departure: datetime,
    ) -> Program:
        """Copy of *program* with load_at_arrival for departing at *departure*."""
        arrival = departure + timedelta(minutes=route.duration_minutes)
        load = self.load_table_for(catalogue).load_at(program.id, arrival)
        return program.with_transient(load_at_arrival=load)

    # ------------------------------------------------------------------
    # Comparison and overlay
    # ------------------------------------------------------------------

    def compare(
        self,
        catalogue: Catalogue,
        program_ids: Sequence[int],
        user_location: LatLon,
        mode: str = "walking",
        profile: str = "balanced",
        weights: Optional[BurdenWeights] = None,
    ) -> List[ComparisonRow]:
        """Distance, travel time, and burden for several programs, banded relative to each other."""
        programs = [catalogue.get(pid) for pid in program_ids]
        location = _location(user_location)
        if location is None:
            raise ValueError("Comparison needs a user location")

        measured = []
        for program in programs:
            program = with_distance(program, location)
            route = self.routes(location, program, mode, profile, weights)
            measured.append((program, route))
        if not measured:
            return []

        max_distance = max(p.distance_miles for p, _ in measured)
        max_minutes = max(r.duration_minutes for _, r in measured)
        max_burden = max(r.burden_score for _, r in measured)
        return [
            ComparisonRow(
                program=p,
                distance_miles=p.distance_miles,
                travel_minutes=r.duration_minutes,
                burden_score=r.burden_score,
                distance_band=relative_band(p.distance_miles, max_distance),
                time_band=relative_band(r.duration_minutes, max_minutes),
                burden_band=relative_band(r.burden_score, max_burden),
            )
            for p, r in measured
        ]

    def overlay(self, layer="air", rows: int = 12, cols: int = 12) -> List[Dict[str, Any]]:
        layer = parse_layer(layer)
        return [
            {"id": pt.id, "lat": pt.lat, "lon": pt.lon, "value": self.field.value(layer, pt.lat, pt.lon)}
            for pt in self.field.generate_grid(rows, cols)
        ]

    @property
    def model_version(self) -> str:
        return SCORING_MODEL.version
