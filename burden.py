"""
Burden model — combines exposure readings into a single stress value.

Two views of the same idea:

  segment_burden   per-segment value in [0, 1] under the routing
                   profile's BurdenWeights (crowd, noise, air, traffic
                   add; green subtracts).
  composite_score  whole-route 0-100 score from per-layer averages under
                   ExposomeSettings.  Only active layers count; the green
                   layer contributes (1 - average).

Both are monotone: raising an adverse reading never lowers the result,
raising green never raises it.
"""

import math
from dataclasses import dataclass, asdict
from typing import Dict, Mapping

from exposome import AQI_MAX, ExposomeLayer, ExposomeSettings, clamp01, parse_layer

WEIGHT_KEYS = ("crowd", "noise", "green", "air", "traffic")


@dataclass(frozen=True)
class BurdenWeights:
    """User weights for the routing profile, each in [0, 1]."""
    crowd: float = 0.3
    noise: float = 0.2
    green: float = 0.2
    air: float = 0.2
    traffic: float = 0.1

    def __post_init__(self):
        for key in WEIGHT_KEYS:
            w = getattr(self, key)
            if isinstance(w, bool) or not isinstance(w, (int, float)) or not math.isfinite(w):
                raise ValueError(f"Burden weight {key!r} must be a number, got {w!r}")
            if not 0.0 <= w <= 1.0:
                raise ValueError(f"Burden weight {key!r}={w} outside [0, 1]")

    @classmethod
    def default(cls) -> "BurdenWeights":
        return cls()

    @classmethod
    def neutral(cls) -> "BurdenWeights":
        return cls(crowd=0.2, noise=0.2, green=0.2, air=0.2, traffic=0.2)

    @classmethod
    def from_dict(cls, data) -> "BurdenWeights":
        """Build from a JSON-style dict.  Accepts ``aqi`` as an alias of ``air``."""
        if data is None:
            return cls.default()
        if not isinstance(data, dict):
            raise ValueError("Burden weights must be an object of name -> number")
        values = dict(asdict(cls.default()))
        for key, value in data.items():
            if key == "aqi":
                key = "air"
            if key not in values:
                raise ValueError(f"Unknown burden weight {key!r}")
            try:
                values[key] = float(value)
            except (TypeError, ValueError):
                raise ValueError(f"Burden weight {key!r} must be a number, got {value!r}") from None
        return cls(**values)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def segment_burden(
    crowd: float,
    noise: float,
    aqi: float,
    green: float,
    traffic: float,
    weights: BurdenWeights,
) -> float:
    """Weighted burden for one route segment, clamped to [0, 1].

    *aqi* is on the 0-300 scale; everything else is already in [0, 1].
    """
    raw = (
        crowd * weights.crowd
        + noise * weights.noise
        + (aqi / AQI_MAX) * weights.air
        + traffic * weights.traffic
        - green * weights.green
    )
    return clamp01(raw)


def composite_score(
    layer_averages: Mapping,
    settings: ExposomeSettings,
) -> int:
    """Weighted 0-100 burden over the active layers.

    Layers missing from *layer_averages* are skipped.  Returns 0 when no
    active layer carries weight.
    """
    numer = 0.0
    denom = 0.0
    for key, avg in layer_averages.items():
        layer = parse_layer(key)
        if not settings.is_active(layer):
            continue
        w = settings.weight(layer)
        value = 1.0 - avg if layer is ExposomeLayer.GREEN else avg
        numer += w * value
        denom += w
    if denom == 0:
        return 0
    # floor(x + 0.5) rather than round() to avoid banker's rounding at .5
    return int(math.floor(100.0 * numer / denom + 0.5))
