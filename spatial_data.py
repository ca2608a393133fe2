"""
In-memory spatial index for green spaces, crowd hotspots, and a gridded
environment sampled from the exposome field.

The point sets are small (tens of entries), so queries are linear scans.
Ties are broken by insertion order: the first element at the minimum
distance wins.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from exposome import ExposomeField, ExposomeLayer, ExposomeSample, LA_BOUNDS, air_as_aqi
from geodesy import great_circle_km
from scoring_config import SCORING_MODEL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PointFeature:
    """A green space or crowd hotspot.  magnitude is size / density in [0, 1]."""
    id: str
    lat: float
    lon: float
    magnitude: float
    name: str = ""


@dataclass(frozen=True)
class EnvironmentCell:
    """One lattice cell of the environment grid."""
    lat: float
    lon: float
    aqi: float       # 0-300
    noise: float     # 0-1
    traffic: float   # 0-1


class PointSet:
    """An ordered set of PointFeatures supporting nearest / influence queries."""

    def __init__(self, features: Iterable[PointFeature] = ()):
        self._features: Tuple[PointFeature, ...] = tuple(features)
        for f in self._features:
            if not 0.0 <= f.magnitude <= 1.0:
                raise ValueError(f"Feature {f.id!r} magnitude {f.magnitude} outside [0, 1]")

    def __len__(self) -> int:
        return len(self._features)

    def __iter__(self):
        return iter(self._features)

    def nearest(self, lat: float, lon: float) -> Optional[Tuple[PointFeature, float]]:
        """Return (feature, distance_km) for the closest feature, or None if empty."""
        best: Optional[PointFeature] = None
        best_km = float("inf")
        for f in self._features:
            d = great_circle_km(lat, lon, f.lat, f.lon)
            if d < best_km:
                best, best_km = f, d
        if best is None:
            return None
        return best, best_km

    def influence(self, lat: float, lon: float, radius_km: float) -> float:
        """Max of magnitude * (1 - d / radius) over features within radius_km."""
        if radius_km <= 0:
            raise ValueError("radius_km must be positive")
        strongest = 0.0
        for f in self._features:
            d = great_circle_km(lat, lon, f.lat, f.lon)
            if d < radius_km:
                strongest = max(strongest, f.magnitude * (1.0 - d / radius_km))
        return strongest


class EnvironmentGrid:
    """Regular lattice of AQI / noise / traffic readings.

    Can stand in for the exposome field when sampling route segments;
    ``sample`` returns the nearest cell's readings.
    """

    def __init__(self, cells: Iterable[EnvironmentCell]):
        self._cells: Tuple[EnvironmentCell, ...] = tuple(cells)
        if not self._cells:
            raise ValueError("EnvironmentGrid needs at least one cell")

    def __len__(self) -> int:
        return len(self._cells)

    def __iter__(self):
        return iter(self._cells)

    @classmethod
    def from_field(cls, field: ExposomeField, spacing_deg: float = 0.05) -> "EnvironmentGrid":
        """Sample *field* on a lattice covering LA_BOUNDS at *spacing_deg*."""
        if spacing_deg <= 0:
            raise ValueError("spacing_deg must be positive")
        rows = int(round((LA_BOUNDS["lat_max"] - LA_BOUNDS["lat_min"]) / spacing_deg)) + 1
        cols = int(round((LA_BOUNDS["lon_max"] - LA_BOUNDS["lon_min"]) / spacing_deg)) + 1
        cells = []
        for point in field.generate_grid(rows, cols):
            cells.append(EnvironmentCell(
                lat=point.lat,
                lon=point.lon,
                aqi=field.aqi(point.lat, point.lon),
                noise=field.value(ExposomeLayer.NOISE, point.lat, point.lon),
                traffic=field.value(ExposomeLayer.TRAFFIC, point.lat, point.lon),
            ))
        logger.debug("Built environment grid: %d x %d cells", rows, cols)
        return cls(cells)

    def nearest_cell(self, lat: float, lon: float) -> Tuple[EnvironmentCell, float]:
        best = self._cells[0]
        best_km = great_circle_km(lat, lon, best.lat, best.lon)
        for cell in self._cells[1:]:
            d = great_circle_km(lat, lon, cell.lat, cell.lon)
            if d < best_km:
                best, best_km = cell, d
        return best, best_km

    def sample(self, lat: float, lon: float) -> ExposomeSample:
        """Nearest-cell readings as an ExposomeSample (air, noise, traffic only)."""
        cell, _ = self.nearest_cell(lat, lon)
        return ExposomeSample(
            lat=lat,
            lon=lon,
            values={
                ExposomeLayer.AIR: cell.aqi / 300.0,
                ExposomeLayer.NOISE: cell.noise,
                ExposomeLayer.TRAFFIC: cell.traffic,
            },
        )


# =============================================================================
# Los Angeles reference data
# =============================================================================

LA_GREEN_SPACES = (
    PointFeature("gs1", 34.1367, -118.2987, 1.0, "Griffith Park"),
    PointFeature("gs2", 34.0778, -118.2606, 0.6, "Echo Park"),
    PointFeature("gs3", 34.0142, -118.2859, 0.7, "Exposition Park"),
    PointFeature("gs4", 34.0600, -118.2789, 0.5, "MacArthur Park"),
    PointFeature("gs5", 34.0742, -118.3617, 0.4, "Pan Pacific Park"),
    PointFeature("gs6", 34.0628, -118.3400, 0.3, "Hancock Park"),
    PointFeature("gs7", 34.0639, -118.3553, 0.4, "La Brea Tar Pits Park"),
    PointFeature("gs8", 34.0556, -118.2733, 0.5, "Westlake Park"),
    PointFeature("gs9", 34.0494, -118.2508, 0.3, "Pershing Square"),
    PointFeature("gs10", 34.0556, -118.2472, 0.5, "Grand Park"),
)

LA_CROWD_HOTSPOTS = (
    PointFeature("c1", 34.0522, -118.2437, 0.9, "Downtown LA"),
    PointFeature("c2", 34.1016, -118.3267, 0.85, "Hollywood"),
    PointFeature("c3", 34.0689, -118.4452, 0.7, "Westwood/UCLA"),
    PointFeature("c4", 34.0928, -118.3617, 0.75, "West Hollywood"),
    PointFeature("c5", 34.0442, -118.2569, 0.8, "South Broadway"),
    PointFeature("c6", 34.0494, -118.2508, 0.85, "Pershing Square area"),
    PointFeature("c7", 34.0736, -118.4004, 0.65, "Beverly Grove"),
    PointFeature("c8", 34.0012, -118.2569, 0.6, "South LA"),
)


class SpatialData:
    """Green spaces, crowd hotspots, and an optional environment grid."""

    def __init__(
        self,
        green_spaces: Iterable[PointFeature] = LA_GREEN_SPACES,
        crowd_hotspots: Iterable[PointFeature] = LA_CROWD_HOTSPOTS,
        grid: Optional[EnvironmentGrid] = None,
        green_radius_km: float = SCORING_MODEL.route.green_influence_km,
        crowd_radius_km: float = SCORING_MODEL.route.crowd_influence_km,
    ):
        self.green_spaces = PointSet(green_spaces)
        self.crowd_hotspots = PointSet(crowd_hotspots)
        self.grid = grid
        self.green_radius_km = green_radius_km
        self.crowd_radius_km = crowd_radius_km

    def nearest_green(self, lat: float, lon: float):
        return self.green_spaces.nearest(lat, lon)

    def nearest_crowd(self, lat: float, lon: float):
        return self.crowd_hotspots.nearest(lat, lon)

    def green_influence(self, lat: float, lon: float) -> float:
        return self.green_spaces.influence(lat, lon, self.green_radius_km)

    def crowd_influence(self, lat: float, lon: float) -> float:
        return self.crowd_hotspots.influence(lat, lon, self.crowd_radius_km)

    def nearest_grid(self, lat: float, lon: float) -> Optional[EnvironmentCell]:
        if self.grid is None:
            return None
        cell, _ = self.grid.nearest_cell(lat, lon)
        return cell


def environment_at(
    lat: float,
    lon: float,
    environment,
    spatial: SpatialData,
) -> dict:
    """Readings attached to a route segment midpoint.

    *environment* is anything with ``sample(lat, lon)`` returning an
    ExposomeSample carrying air, noise and traffic (ExposomeField or
    EnvironmentGrid).  Green and crowd come from point-set influence.
    """
    sample = environment.sample(lat, lon)
    return {
        "aqi": air_as_aqi(sample[ExposomeLayer.AIR]),
        "noise": sample[ExposomeLayer.NOISE],
        "traffic": sample[ExposomeLayer.TRAFFIC],
        "green": spatial.green_influence(lat, lon),
        "crowd": spatial.crowd_influence(lat, lon),
    }
