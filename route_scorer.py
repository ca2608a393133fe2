"""
Route scorer — turns a list of RouteSegments into a ScoredRoute.

burdenScore is the mean segment burden, adjusted per profile so the
three candidates stay distinguishable (see scoring_config._ADJUSTMENTS).
Travel time assumes straight-line distance at a flat speed per mode:
walking 3, driving 25, transit 15, rideshare 20 mph.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from geodesy import LatLon
from route_builder import RouteSegment, validate_profile
from scoring_config import SCORING_MODEL, TRAVEL_MODES

logger = logging.getLogger(__name__)

SEGMENT_LAYERS = ("air", "noise", "green", "crowd", "traffic")


@dataclass(frozen=True)
class ScoredRoute:
    """One candidate route with its burden, timing, and explanation."""
    id: str
    profile: str
    mode: str
    segments: Tuple[RouteSegment, ...]
    waypoints: Tuple[LatLon, ...]
    duration_minutes: float
    distance_miles: float
    burden_score: float
    layer_averages: Dict[str, float] = field(default_factory=dict)
    explanation: str = ""

    @property
    def duration_rounded(self) -> int:
        return int(self.duration_minutes + 0.5)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "profile": self.profile,
            "mode": self.mode,
            "segments": [s.to_dict() for s in self.segments],
            "waypoints": [{"lat": lat, "lon": lon} for lat, lon in self.waypoints],
            "durationMinutes": self.duration_minutes,
            "distanceMiles": self.distance_miles,
            "burdenScore": self.burden_score,
            "layerAverages": dict(self.layer_averages),
            "explanation": self.explanation,
        }


def validate_mode(mode: str) -> str:
    if mode not in TRAVEL_MODES:
        raise ValueError(f"Unknown travel mode {mode!r}; expected one of {', '.join(TRAVEL_MODES)}")
    return mode


def adjust_for_profile(mean_burden: float, profile: str) -> float:
    validate_profile(profile)
    return SCORING_MODEL.adjustments[profile].apply(mean_burden)


def route_length_miles(segments: List[RouteSegment]) -> float:
    return sum(s.length_miles for s in segments)


def duration_minutes(segments: List[RouteSegment], mode: str) -> float:
    """Minutes to cover the polyline at the mode's flat speed."""
    validate_mode(mode)
    speed = SCORING_MODEL.route.speed_for(mode)
    return route_length_miles(segments) / speed * 60.0


def layer_averages(segments: List[RouteSegment]) -> Dict[str, float]:
    """Mean of each reading across segments; air is normalised AQI (aqi / 300)."""
    if not segments:
        return {layer: 0.0 for layer in SEGMENT_LAYERS}
    n = len(segments)
    return {
        "air": sum(s.aqi for s in segments) / 300.0 / n,
        "noise": sum(s.noise for s in segments) / n,
        "green": sum(s.green for s in segments) / n,
        "crowd": sum(s.crowd for s in segments) / n,
        "traffic": sum(s.traffic for s in segments) / n,
    }


# (profile, upper bound exclusive, template).  The last row for each
# profile uses an infinite bound.  {minutes} and {percent} are filled in.
_EXPLANATIONS = (
    ("fastest", 0.4,
     "Quick route with minimal stress. Takes you directly to your destination "
     "in {minutes} minutes with low environmental burden."),
    ("fastest", 0.6,
     "Fastest path available. May pass through some busy areas but saves time "
     "at {minutes} minutes of travel. Best for time-sensitive visits."),
    ("fastest", float("inf"),
     "Shortest route ({minutes} min) but passes through high-traffic zones. "
     "Recommended if speed is your priority over comfort."),
    ("lowStress", 0.3,
     "Most peaceful route with {percent}% burden. Passes through parks and quiet "
     "streets. Ideal for reducing anxiety before your appointment."),
    ("lowStress", 0.5,
     "Calming route that prioritizes green spaces and avoids crowds. Takes "
     "{minutes} minutes with moderate comfort. Good for mental preparation."),
    ("lowStress", float("inf"),
     "Low-stress path that seeks quieter areas. Slightly longer at {minutes} "
     "minutes but provides a more relaxed journey."),
    ("balanced", 0.4,
     "Well-balanced option: {minutes} minutes with low burden. Offers a good "
     "compromise between speed and comfort."),
    ("balanced", 0.6,
     "Balanced route taking {minutes} minutes. Moderately comfortable while "
     "still being reasonably fast. Good default choice."),
    ("balanced", float("inf"),
     "Compromise route: {minutes} minutes with {percent}% burden. Faster than "
     "low-stress but more comfortable than fastest."),
)


def explain(profile: str, burden_score: float, minutes: float) -> str:
    validate_profile(profile)
    for row_profile, bound, template in _EXPLANATIONS:
        if row_profile == profile and burden_score < bound:
            return template.format(
                minutes=int(minutes + 0.5),
                percent=int(burden_score * 100 + 0.5),
            )
    raise ValueError(f"No explanation for burden {burden_score!r}")


def route_id(profile: str, mode: str, waypoints) -> str:
    """Stable id: the same profile, mode, and polyline give the same id."""
    start, end = waypoints[0], waypoints[-1]
    key = f"{profile}|{mode}|{start[0]:.6f},{start[1]:.6f}|{end[0]:.6f},{end[1]:.6f}"
    return f"{profile}-{hashlib.blake2b(key.encode('ascii'), digest_size=4).hexdigest()}"


def score_route(
    segments: List[RouteSegment],
    waypoints: List[LatLon],
    profile: str,
    mode: str,
) -> ScoredRoute:
    """Aggregate segment burdens, timing, and per-layer averages."""
    validate_profile(profile)
    validate_mode(mode)
    if len(segments) < 1 or len(waypoints) < 2:
        raise ValueError("A scored route needs at least one segment and two waypoints")

    mean_burden = sum(s.burden for s in segments) / len(segments)
    burden_score = adjust_for_profile(mean_burden, profile)
    minutes = duration_minutes(segments, mode)

    route = ScoredRoute(
        id=route_id(profile, mode, waypoints),
        profile=profile,
        mode=mode,
        segments=tuple(segments),
        waypoints=tuple(waypoints),
        duration_minutes=minutes,
        distance_miles=route_length_miles(segments),
        burden_score=burden_score,
        layer_averages=layer_averages(segments),
        explanation=explain(profile, burden_score, minutes),
    )
    logger.debug(
        "Scored route %s: mode=%s burden=%.3f (mean %.3f) minutes=%.1f",
        route.id, mode, burden_score, mean_burden, minutes,
    )
    return route
