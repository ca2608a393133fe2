"""
Route builder — candidate polylines between a user and a program.

Three profiles bend the straight line differently:

  fastest    straight line plus a little jitter
  lowStress  pulled toward the nearest green space (within 2 mi) and
             pushed away from the nearest crowd hotspot (within 1.5 mi)
  balanced   a gentler green pull (within 1.5 mi), no crowd push

There is no road network: waypoints are illustrative, and segment
readings come from the exposome environment at each segment midpoint.

Jitter is derived from a hash of (profile, endpoints, waypoint index),
so the same request always yields the same polyline.  The polyline does
not depend on travel mode or burden weights, which lets the scorer
compare modes over an identical path.  The first and last waypoints are
pinned to the user and program locations.
"""

import hashlib
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from burden import BurdenWeights, segment_burden
from geodesy import LatLon, great_circle_km, interpolate, km_to_miles, midpoint
from scoring_config import PROFILES, SCORING_MODEL, ProfileShaping
from spatial_data import SpatialData, environment_at


@dataclass(frozen=True)
class RouteSegment:
    """Readings at one segment's midpoint.

    aqi is on the 0-300 scale; crowd, noise, green, traffic and burden
    are in [0, 1].  length_miles is the straight-line length of the
    segment between its two waypoints.
    """
    lat: float
    lon: float
    crowd: float
    noise: float
    aqi: float
    green: float
    traffic: float
    burden: float
    length_miles: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "lat": self.lat,
            "lon": self.lon,
            "crowd": self.crowd,
            "noise": self.noise,
            "aqi": self.aqi,
            "green": self.green,
            "traffic": self.traffic,
            "burden": self.burden,
            "lengthMiles": self.length_miles,
        }


def validate_profile(profile: str) -> str:
    if profile not in PROFILES:
        raise ValueError(f"Unknown routing profile {profile!r}; expected one of {', '.join(PROFILES)}")
    return profile


def _jitter(profile: str, start: LatLon, end: LatLon, index: int, axis: str, width: float) -> float:
    """Deterministic offset uniformly spread over [-width/2, width/2)."""
    if width <= 0:
        return 0.0
    key = (
        f"{profile}|{start[0]:.6f},{start[1]:.6f}|{end[0]:.6f},{end[1]:.6f}|{index}|{axis}"
    ).encode("ascii")
    digest = hashlib.blake2b(key, digest_size=8).digest()
    u = int.from_bytes(digest, "big") / 2 ** 64
    return (u - 0.5) * width


def _shape_point(
    mid: LatLon,
    shaping: ProfileShaping,
    spatial: SpatialData,
) -> LatLon:
    """Apply green pull and crowd push to a midline point."""
    lat, lon = mid

    if shaping.green_pull > 0:
        hit = spatial.nearest_green(*mid)
        if hit is not None:
            green, dist_km = hit
            if km_to_miles(dist_km) < shaping.green_radius_mi:
                lat += (green.lat - mid[0]) * shaping.green_pull
                lon += (green.lon - mid[1]) * shaping.green_pull

    if shaping.crowd_push > 0:
        hit = spatial.nearest_crowd(*mid)
        if hit is not None:
            crowd, dist_km = hit
            if km_to_miles(dist_km) < shaping.crowd_radius_mi:
                lat += (mid[0] - crowd.lat) * shaping.crowd_push
                lon += (mid[1] - crowd.lon) * shaping.crowd_push

    return (lat, lon)


def build_waypoints(
    start: LatLon,
    end: LatLon,
    profile: str,
    spatial: SpatialData,
    segment_count: Optional[int] = None,
) -> List[LatLon]:
    """Return segment_count + 1 waypoints from *start* to *end*."""
    validate_profile(profile)
    n = SCORING_MODEL.route.segment_count if segment_count is None else segment_count
    if n < 1:
        raise ValueError("segment_count must be at least 1")
    shaping = SCORING_MODEL.shaping[profile]

    waypoints: List[LatLon] = []
    for i in range(n + 1):
        if i == 0:
            waypoints.append((start[0], start[1]))
            continue
        if i == n:
            waypoints.append((end[0], end[1]))
            continue
        mid = interpolate(start, end, i / n)
        lat, lon = _shape_point(mid, shaping, spatial)
        lat += _jitter(profile, start, end, i, "lat", shaping.jitter_deg)
        lon += _jitter(profile, start, end, i, "lon", shaping.jitter_deg)
        waypoints.append((lat, lon))
    return waypoints


def build_segments(
    waypoints: List[LatLon],
    weights: BurdenWeights,
    environment,
    spatial: SpatialData,
) -> List[RouteSegment]:
    """Sample the environment at each segment midpoint and score it."""
    if len(waypoints) < 2:
        raise ValueError("A route needs at least two waypoints")

    segments: List[RouteSegment] = []
    for a, b in zip(waypoints, waypoints[1:]):
        mid_lat, mid_lon = midpoint(a, b)
        env = environment_at(mid_lat, mid_lon, environment, spatial)
        segments.append(RouteSegment(
            lat=mid_lat,
            lon=mid_lon,
            crowd=env["crowd"],
            noise=env["noise"],
            aqi=env["aqi"],
            green=env["green"],
            traffic=env["traffic"],
            burden=segment_burden(
                crowd=env["crowd"],
                noise=env["noise"],
                aqi=env["aqi"],
                green=env["green"],
                traffic=env["traffic"],
                weights=weights,
            ),
            length_miles=km_to_miles(great_circle_km(a[0], a[1], b[0], b[1])),
        ))
    return segments


def straight_line_samples(start: LatLon, end: LatLon, steps: int = 24) -> List[Tuple[float, float]]:
    """steps + 1 evenly spaced points from start to end, both ends included."""
    if steps < 1:
        raise ValueError("steps must be at least 1")
    return [interpolate(start, end, i / steps) for i in range(steps + 1)]
