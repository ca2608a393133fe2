"""
Scoring model configuration for MindRoute.

Owns every numeric constant that affects route burden, travel time,
clinic load warnings, and recommendation scores.  Geometry constants
(Earth radius, unit conversions) remain in geodesy.py; exposome shaping
constants remain in exposome.py.

Frozen dataclasses provide type checking and IDE support without
the indirection of YAML/JSON config files.
"""

from dataclasses import dataclass
from typing import Dict, Tuple


# =============================================================================
# Dataclasses
# =============================================================================

@dataclass(frozen=True)
class ProfileAdjustment:
    """Affine adjustment applied to a route's mean segment burden.

    adjusted = clamp(mean * scale + offset, floor, ceiling)
    """
    scale: float
    offset: float
    floor: float = 0.0
    ceiling: float = 1.0

    def apply(self, mean_burden: float) -> float:
        return max(self.floor, min(self.ceiling, mean_burden * self.scale + self.offset))


@dataclass(frozen=True)
class ProfileShaping:
    """How the route builder bends the straight line for one profile."""
    green_pull: float = 0.0           # fraction of the way toward nearest green space
    green_radius_mi: float = 0.0      # pull applies only within this distance
    crowd_push: float = 0.0           # fraction of the offset pushed away from hotspot
    crowd_radius_mi: float = 0.0      # push applies only within this distance
    jitter_deg: float = 0.0           # full width of the uniform jitter window


@dataclass(frozen=True)
class RouteConfig:
    """Route builder and scorer parameters."""
    segment_count: int = 8
    green_influence_km: float = 0.8
    crowd_influence_km: float = 1.6
    # mph by travel mode
    speeds_mph: Tuple[Tuple[str, float], ...] = ()

    def speed_for(self, mode: str) -> float:
        for name, mph in self.speeds_mph:
            if name == mode:
                return mph
        raise ValueError(f"Unknown travel mode {mode!r}")


@dataclass(frozen=True)
class RecommendationPoints:
    """Additive point values for the recommendation score."""
    distance_max: float = 30.0
    distance_per_mile: float = 2.0
    clinic_type: int = 10
    treatment_focus_each: int = 15
    privacy_level: int = 10
    language_each: int = 8
    insurance_each: int = 12
    anonymous: int = 10
    telehealth: int = 8
    walk_in: int = 5
    open_24_7: int = 5
    # Two scores within this many points are ranked by distance instead.
    tie_window: float = 5.0


@dataclass(frozen=True)
class RecommendationLevel:
    """Maps a minimum score threshold to a recommendation level."""
    threshold: int
    level: str
    label: str


@dataclass(frozen=True)
class LoadConfig:
    """Clinic load forecaster parameters."""
    default_load: float = 0.5
    low_load_threshold: float = 0.5
    busy_threshold: float = 0.7
    lookahead_hours: int = 24


@dataclass(frozen=True)
class ScoringModel:
    """Top-level container for all scoring parameters.

    A single module-level instance (SCORING_MODEL) is the source of truth.
    Bump `version` on every change that alters outputs.
    """
    version: str
    route: RouteConfig
    shaping: Dict[str, ProfileShaping]
    adjustments: Dict[str, ProfileAdjustment]
    recommendation: RecommendationPoints
    levels: Tuple[RecommendationLevel, ...]
    load: LoadConfig


# =============================================================================
# SCORING_MODEL — current values
# =============================================================================

PROFILES = ("fastest", "lowStress", "balanced")
TRAVEL_MODES = ("walking", "driving", "transit", "rideshare")

# Fastest routes run through busy corridors, so their burden is inflated;
# low-stress routes are deflated.  For equal input lowStress always
# lands below balanced.
_ADJUSTMENTS = {
    "fastest": ProfileAdjustment(scale=1.3, offset=0.15),
    "lowStress": ProfileAdjustment(scale=0.6, offset=-0.1, floor=0.1),
    "balanced": ProfileAdjustment(scale=0.9, offset=0.1, floor=0.2, ceiling=0.8),
}

_SHAPING = {
    "fastest": ProfileShaping(jitter_deg=0.01),
    "lowStress": ProfileShaping(
        green_pull=0.4,
        green_radius_mi=2.0,
        crowd_push=0.3,
        crowd_radius_mi=1.5,
        jitter_deg=0.005,
    ),
    "balanced": ProfileShaping(
        green_pull=0.15,
        green_radius_mi=1.5,
        jitter_deg=0.008,
    ),
}

SCORING_MODEL = ScoringModel(
    version="1.0.0",

    route=RouteConfig(
        segment_count=8,
        green_influence_km=0.8,
        crowd_influence_km=1.6,
        speeds_mph=(
            ("walking", 3.0),
            ("driving", 25.0),
            ("transit", 15.0),
            ("rideshare", 20.0),
        ),
    ),

    shaping=_SHAPING,
    adjustments=_ADJUSTMENTS,

    recommendation=RecommendationPoints(),

    levels=(
        RecommendationLevel(60, "excellent", "Excellent Match"),
        RecommendationLevel(40, "good", "Good Match"),
        RecommendationLevel(20, "fair", "Fair Match"),
        RecommendationLevel(0, "basic", "Basic Match"),
    ),

    load=LoadConfig(),
)


# Validate at import time (ValueError, not assert, so validation is never
# stripped by python -O).
for _p in PROFILES:
    if _p not in SCORING_MODEL.adjustments or _p not in SCORING_MODEL.shaping:
        raise ValueError(f"Profile {_p!r} is missing from SCORING_MODEL")
for _m in TRAVEL_MODES:
    if SCORING_MODEL.route.speed_for(_m) <= 0:
        raise ValueError(f"Travel mode {_m!r} must have a positive speed")
if [lv.threshold for lv in SCORING_MODEL.levels] != sorted(
    (lv.threshold for lv in SCORING_MODEL.levels), reverse=True
):
    raise ValueError("Recommendation levels must be sorted highest threshold first")
