"""
Exposome Field — deterministic environmental layers over Los Angeles.

Synthesises plausible spatial patterns for seven exposure layers so the
route scorer can be exercised without live air-quality, noise, or heat
feeds.  A production deployment swaps ExposomeField for a class with the
same ``value`` / ``sample`` interface backed by real sources.

Shaping:
  - air:     exponential bump around Downtown LA (34.05, -118.25)
  - noise:   sharper, stronger downtown bump than air
  - heat:    linear gradient by latitude within the bounding box
  - green:   inverse of a downtown bump (lower downtown, higher in the hills)
  - safety:  Gaussian ring around downtown
  - crowd:   steep downtown bump
  - traffic: moderate downtown bump

Each layer adds a small hash-based noise term so the overlay looks
heterogeneous.  The hash is taken over the coordinate pair rounded to
1e-6 degrees, so the same coordinate yields bit-identical values in
every process.

All values are in [0, 1]; higher is worse except for ``green``, which is
protective.  Air is additionally exported as an AQI on [0, 300].
"""

import hashlib
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Tuple


class ExposomeLayer(str, Enum):
    AIR = "air"
    NOISE = "noise"
    HEAT = "heat"
    GREEN = "green"
    SAFETY = "safety"
    CROWD = "crowd"
    TRAFFIC = "traffic"

    @property
    def protective(self) -> bool:
        return self is ExposomeLayer.GREEN


ALL_LAYERS: Tuple[ExposomeLayer, ...] = tuple(ExposomeLayer)

# Downtown LA reference point and the bounding box used for gradients
# and overlay grids.
REFERENCE_POINT = (34.05, -118.25)
LA_BOUNDS = {
    "lat_min": 33.7,
    "lat_max": 34.35,
    "lon_min": -118.7,
    "lon_max": -118.0,
}

AQI_MAX = 300.0

# Noise contributes at most NOISE_AMPLITUDE on top of BASE_LEVEL.  Kept
# narrower than the gradient bumps so the spatial pattern dominates.
BASE_LEVEL = 0.2
NOISE_AMPLITUDE = 0.2


def parse_layer(value) -> ExposomeLayer:
    """ExposomeLayer from a layer or its name; ValueError for unknown names."""
    if isinstance(value, ExposomeLayer):
        return value
    try:
        return ExposomeLayer(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown exposome layer {value!r}") from None


def _mapping(data: dict, key: str) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be an object of layer -> value")
    return value


def clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def air_as_aqi(value: float) -> float:
    """Map the normalised air layer onto the AQI scale [0, 300]."""
    return AQI_MAX * clamp01(value)


def coord_noise(lat: float, lon: float) -> float:
    """Deterministic pseudo-random value in [0, 1) for a coordinate pair."""
    key = f"{round(lat, 6):.6f},{round(lon, 6):.6f}".encode("ascii")
    digest = hashlib.blake2b(key, digest_size=8).digest()
    return int.from_bytes(digest, "big") / 2 ** 64


def _angular_distance(lat: float, lon: float) -> float:
    """Distance from the reference point in degrees (pattern only, not km)."""
    d_lat = lat - REFERENCE_POINT[0]
    d_lon = lon - REFERENCE_POINT[1]
    return math.sqrt(d_lat * d_lat + d_lon * d_lon)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class ExposomeSample:
    """Every layer's value at one coordinate."""
    lat: float
    lon: float
    values: Dict[ExposomeLayer, float]

    def __getitem__(self, layer) -> float:
        return self.values[parse_layer(layer)]

    @property
    def aqi(self) -> float:
        return air_as_aqi(self.values[ExposomeLayer.AIR])

    def to_dict(self) -> Dict[str, float]:
        out = {layer.value: v for layer, v in self.values.items()}
        out["aqi"] = self.aqi
        return out


@dataclass(frozen=True)
class GridPoint:
    id: str
    lat: float
    lon: float


@dataclass(frozen=True)
class ExposomeSettings:
    """Which layers count toward the route composite, and how much."""
    active_layers: Dict[ExposomeLayer, bool] = field(default_factory=dict)
    weights: Dict[ExposomeLayer, float] = field(default_factory=dict)
    visible_layer: ExposomeLayer = ExposomeLayer.AIR

    @classmethod
    def default(cls) -> "ExposomeSettings":
        return cls(
            active_layers={layer: True for layer in ALL_LAYERS},
            weights={layer: 1.0 for layer in ALL_LAYERS},
            visible_layer=ExposomeLayer.AIR,
        )

    @classmethod
    def from_dict(cls, data) -> "ExposomeSettings":
        """Build settings from a JSON-style dict; missing keys take defaults."""
        base = cls.default()
        if data is None:
            return base
        if not isinstance(data, dict):
            raise ValueError("Exposome settings must be an object")
        active = dict(base.active_layers)
        weights = dict(base.weights)
        for name, flag in _mapping(data, "activeLayers").items():
            active[parse_layer(name)] = bool(flag)
        for name, w in _mapping(data, "weights").items():
            try:
                w = float(w)
            except (TypeError, ValueError):
                raise ValueError(f"Layer weight for {name!r} must be a number, got {w!r}") from None
            if w < 0 or not math.isfinite(w):
                raise ValueError(f"Layer weight for {name!r} must be a non-negative number")
            weights[parse_layer(name)] = w
        visible = parse_layer(data.get("visibleLayer", base.visible_layer))
        return cls(active_layers=active, weights=weights, visible_layer=visible)

    def is_active(self, layer: ExposomeLayer) -> bool:
        return bool(self.active_layers.get(layer, False))

    def weight(self, layer: ExposomeLayer) -> float:
        return float(self.weights.get(layer, 0.0))

    def with_layer(self, layer, active=None, weight=None) -> "ExposomeSettings":
        layer = parse_layer(layer)
        active_layers = dict(self.active_layers)
        weights = dict(self.weights)
        if active is not None:
            active_layers[layer] = bool(active)
        if weight is not None:
            weights[layer] = float(weight)
        return replace(self, active_layers=active_layers, weights=weights)


# =============================================================================
# FIELD
# =============================================================================

class ExposomeField:
    """Stateless, coordinate-deterministic exposome layers.

    Holds nothing but its constants; safe to share between threads.
    """

    bounds = LA_BOUNDS
    reference = REFERENCE_POINT

    def value(self, layer, lat: float, lon: float) -> float:
        layer = parse_layer(layer)
        dist = _angular_distance(lat, lon)
        base = BASE_LEVEL + NOISE_AMPLITUDE * coord_noise(lat, lon)

        if layer is ExposomeLayer.AIR:
            v = base + 0.55 * math.exp(-2.0 * dist)
        elif layer is ExposomeLayer.NOISE:
            v = base + 0.65 * math.exp(-3.0 * dist)
        elif layer is ExposomeLayer.HEAT:
            span = self.bounds["lat_max"] - self.bounds["lat_min"]
            frac = clamp01((lat - self.bounds["lat_min"]) / span)
            v = base + 0.4 * frac
        elif layer is ExposomeLayer.GREEN:
            v = 1.0 - (base + 0.5 * math.exp(-2.0 * dist))
        elif layer is ExposomeLayer.SAFETY:
            v = base + 0.5 * math.exp(-((dist - 0.25) ** 2) / 0.08)
        elif layer is ExposomeLayer.CROWD:
            v = base + 0.6 * math.exp(-4.0 * dist)
        else:  # TRAFFIC
            v = base + 0.5 * math.exp(-2.5 * dist)

        return clamp01(v)

    def sample(self, lat: float, lon: float) -> ExposomeSample:
        return ExposomeSample(
            lat=lat,
            lon=lon,
            values={layer: self.value(layer, lat, lon) for layer in ALL_LAYERS},
        )

    def aqi(self, lat: float, lon: float) -> float:
        return air_as_aqi(self.value(ExposomeLayer.AIR, lat, lon))

    def generate_grid(self, rows: int = 12, cols: int = 12) -> List[GridPoint]:
        """Evenly spaced lattice covering the bounding box, corners included."""
        if rows < 1 or cols < 1:
            raise ValueError("rows and cols must be positive")
        b = self.bounds
        points = []
        for r in range(rows):
            t_lat = r / (rows - 1 or 1)
            lat = b["lat_min"] + t_lat * (b["lat_max"] - b["lat_min"])
            for c in range(cols):
                t_lon = c / (cols - 1 or 1)
                lon = b["lon_min"] + t_lon * (b["lon_max"] - b["lon_min"])
                points.append(GridPoint(id=f"{r}-{c}", lat=lat, lon=lon))
        return points
