"""
Filter / Recommender — which programs to show, and which to suggest first.

matches()        hard filters: search text, city, categories (OR by
                 default, AND on request), distance cap, and capability
                 requirements (clinic type, treatment focus, privacy,
                 languages, insurance, tri-state toggles).
score_program()  additive 0-N score with a human-readable reason for
                 every contributor, in a fixed order.
rank()           score descending; scores within 5 points of each other
                 are ordered by distance instead, closest first.

Distances are computed on per-query copies of Programs; the catalogue
itself is never mutated.
"""

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from catalogue import Program
from geodesy import LatLon, great_circle_km, km_to_miles
from scoring_config import SCORING_MODEL

logger = logging.getLogger(__name__)

ALL_CITIES_SENTINEL = "All"


class CategoryMode(str, Enum):
    ANY = "any"
    ALL = "all"


class DistanceUnit(str, Enum):
    MILES = "miles"
    KM = "km"


@dataclass(frozen=True)
class QueryFilters:
    """Hard filters plus the selections that earn recommendation points."""
    search: str = ""
    city: str = ""
    categories: Tuple[str, ...] = ()
    category_mode: CategoryMode = CategoryMode.ANY
    max_distance: Optional[float] = None
    distance_unit: DistanceUnit = DistanceUnit.MILES

    clinic_types: Tuple[str, ...] = ()
    treatment_focus: Tuple[str, ...] = ()
    privacy_levels: Tuple[str, ...] = ()
    languages: Tuple[str, ...] = ()
    insurance: Tuple[str, ...] = ()

    # None = no preference
    allows_anonymous: Optional[bool] = None
    telehealth: Optional[bool] = None
    guardian_not_required: Optional[bool] = None

    @classmethod
    def from_dict(cls, data) -> "QueryFilters":
        """Build from a JSON-style dict using camelCase keys."""
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError("filters must be an object")

        def _tuple(key):
            value = data.get(key) or ()
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, (list, tuple)):
                raise ValueError(f"{key} must be a string or a list of strings")
            return tuple(str(v).strip() for v in value if str(v).strip())

        def _tri(key):
            value = data.get(key)
            return None if value is None else bool(value)

        def _choice(enum_cls, key, default):
            value = data.get(key) or default
            if not isinstance(value, str):
                raise ValueError(f"{key} must be a string, got {value!r}")
            return enum_cls(value)

        max_distance = data.get("maxDistance")
        if max_distance == "":
            max_distance = None
        if max_distance is not None:
            try:
                max_distance = float(max_distance)
            except (TypeError, ValueError):
                raise ValueError(f"maxDistance must be a number, got {max_distance!r}") from None
        return cls(
            search=str(data.get("search") or ""),
            city=str(data.get("city") or ""),
            categories=_tuple("categories"),
            category_mode=_choice(CategoryMode, "categoryMode", CategoryMode.ANY.value),
            max_distance=max_distance,
            distance_unit=_choice(DistanceUnit, "distanceUnit", DistanceUnit.MILES.value),
            clinic_types=_tuple("clinicTypes"),
            treatment_focus=_tuple("treatmentFocus"),
            privacy_levels=_tuple("privacyLevels"),
            languages=_tuple("languages"),
            insurance=_tuple("insurance"),
            allows_anonymous=_tri("allowsAnonymous"),
            telehealth=_tri("telehealth"),
            guardian_not_required=_tri("guardianNotRequired"),
        )


@dataclass(frozen=True)
class Recommendation:
    program: Program
    score: float
    reasons: Tuple[str, ...]
    recommendation_level: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "program": self.program.to_dict(),
            "score": self.score,
            "reasons": list(self.reasons),
            "recommendationLevel": self.recommendation_level,
            "recommendationLabel": recommendation_label(self.recommendation_level),
        }


# =============================================================================
# DISTANCE
# =============================================================================

def with_distance(program: Program, user_location: Optional[LatLon]) -> Program:
    """Copy of *program* with distance_km / distance_miles filled in."""
    if user_location is None:
        return program
    km = great_circle_km(user_location[0], user_location[1], program.latitude, program.longitude)
    return program.with_transient(distance_km=km, distance_miles=km_to_miles(km))


# =============================================================================
# HARD FILTERS
# =============================================================================

def _lower_set(values: Iterable[str]) -> set:
    return {v.lower() for v in values}


def matches_search(program: Program, filters: QueryFilters) -> bool:
    query = filters.search.strip().lower()
    if not query:
        return True
    haystack = f"{program.name} {program.city} {program.description or ''}".lower()
    return query in haystack


def matches_city(program: Program, filters: QueryFilters) -> bool:
    city = filters.city.strip()
    if not city or city == ALL_CITIES_SENTINEL:
        return True
    return program.city == city


def matches_categories(program: Program, filters: QueryFilters) -> bool:
    if not filters.categories:
        return True
    have = set(program.categories)
    if filters.category_mode is CategoryMode.ALL:
        return all(c in have for c in filters.categories)
    return any(c in have for c in filters.categories)


def matches_distance(program: Program, filters: QueryFilters) -> bool:
    """Reject only when both a cap and a computed distance exist."""
    if filters.max_distance is None or filters.max_distance <= 0:
        return True
    if filters.distance_unit is DistanceUnit.KM:
        if program.distance_km is None:
            return True
        return program.distance_km <= filters.max_distance
    if program.distance_miles is None:
        return True
    return program.distance_miles <= filters.max_distance


def matches_capabilities(program: Program, filters: QueryFilters) -> bool:
    if filters.clinic_types and (program.clinic_type or "").lower() not in _lower_set(filters.clinic_types):
        return False
    if filters.treatment_focus and not (_lower_set(program.treatment_focus) & _lower_set(filters.treatment_focus)):
        return False
    if filters.privacy_levels and (program.privacy_level or "").lower() not in _lower_set(filters.privacy_levels):
        return False
    if filters.languages and not (_lower_set(program.languages) & _lower_set(filters.languages)):
        return False
    if filters.insurance and not (_lower_set(program.insurance) & _lower_set(filters.insurance)):
        return False
    for toggle in ("allows_anonymous", "telehealth", "guardian_not_required"):
        wanted = getattr(filters, toggle)
        if wanted is not None and getattr(program, toggle) is not wanted:
            return False
    return True


def matches(program: Program, filters: QueryFilters, apply_city_and_categories: bool = True) -> bool:
    """All hard filters.  *program* should already carry its distance."""
    if not matches_search(program, filters):
        return False
    if not matches_distance(program, filters):
        return False
    if not matches_capabilities(program, filters):
        return False
    if apply_city_and_categories:
        if not matches_city(program, filters):
            return False
        if not matches_categories(program, filters):
            return False
    return True


# =============================================================================
# SCORING
# =============================================================================

def _matched(selected: Sequence[str], offered: Sequence[str]) -> List[str]:
    offered_lower = _lower_set(offered)
    return [s for s in selected if s.lower() in offered_lower]


def _distance_reason(miles: float) -> str:
    if miles < 2:
        return "Very close to you"
    if miles < 5:
        return "Close location"
    return f"{miles:.1f} miles away"


def score_program(
    program: Program,
    filters: QueryFilters,
    user_location: Optional[LatLon] = None,
) -> Tuple[float, List[str]]:
    """Additive recommendation score and its reasons, in table order."""
    pts = SCORING_MODEL.recommendation
    score = 0.0
    reasons: List[str] = []

    if user_location is not None and program.distance_miles is None:
        program = with_distance(program, user_location)
    if program.distance_miles is not None:
        distance_score = max(0.0, pts.distance_max - program.distance_miles * pts.distance_per_mile)
        if distance_score > 0:
            score += distance_score
            reasons.append(_distance_reason(program.distance_miles))

    if filters.clinic_types and program.clinic_type and \
            program.clinic_type.lower() in _lower_set(filters.clinic_types):
        score += pts.clinic_type
        reasons.append(f"{program.clinic_type} type match")

    focus = _matched(filters.treatment_focus, program.treatment_focus)
    if focus:
        score += pts.treatment_focus_each * len(focus)
        reasons.append(f"Offers: {', '.join(focus)}")

    if filters.privacy_levels and program.privacy_level and \
            program.privacy_level.lower() in _lower_set(filters.privacy_levels):
        score += pts.privacy_level
        reasons.append("Privacy level match")

    languages = _matched(filters.languages, program.languages)
    if languages:
        score += pts.language_each * len(languages)
        reasons.append(f"Speaks: {', '.join(languages)}")

    insurance = _matched(filters.insurance, program.insurance)
    if insurance:
        score += pts.insurance_each * len(insurance)
        reasons.append(f"Accepts: {', '.join(insurance)}")

    if filters.allows_anonymous is not None and program.allows_anonymous is filters.allows_anonymous:
        score += pts.anonymous
        reasons.append(
            "Allows anonymous visits" if program.allows_anonymous
            else "Anonymous visit preference matched"
        )

    if filters.telehealth is not None and program.telehealth is filters.telehealth:
        score += pts.telehealth
        reasons.append(
            "Telehealth available" if program.telehealth
            else "In-person preference matched"
        )

    if program.walk_in:
        score += pts.walk_in
        reasons.append("Walk-in available")

    if program.open_24_7:
        score += pts.open_24_7
        reasons.append("Open 24/7")

    return score, reasons


def recommendation_level(score: float) -> str:
    for level in SCORING_MODEL.levels:
        if score >= level.threshold:
            return level.level
    return SCORING_MODEL.levels[-1].level


def recommendation_label(level: str) -> str:
    """Display label for a level name, e.g. "good" -> "Good Match"."""
    for entry in SCORING_MODEL.levels:
        if entry.level == level:
            return entry.label
    raise ValueError(f"Unknown recommendation level {level!r}")


def recommend_one(
    program: Program,
    filters: QueryFilters,
    user_location: Optional[LatLon] = None,
) -> Recommendation:
    program = with_distance(program, user_location)
    score, reasons = score_program(program, filters, user_location)
    return Recommendation(
        program=program,
        score=score,
        reasons=tuple(reasons),
        recommendation_level=recommendation_level(score),
    )


def _compare(a: Recommendation, b: Recommendation) -> int:
    window = SCORING_MODEL.recommendation.tie_window
    da, db = a.program.distance_miles, b.program.distance_miles
    if abs(a.score - b.score) <= window and da is not None and db is not None and da != db:
        return -1 if da < db else 1
    if a.score != b.score:
        return -1 if a.score > b.score else 1
    return (a.program.id > b.program.id) - (a.program.id < b.program.id)


def rank(recommendations: Iterable[Recommendation]) -> List[Recommendation]:
    """Score descending; near-ties (within 5 points) go to the closer program.

    The near-tie rule is not transitive (50/46/42 points at 10/5/1 miles
    form a cycle), so the input is put in program-id order first and the
    result depends only on which recommendations are passed in.
    """
    by_id = sorted(recommendations, key=lambda r: r.program.id)
    ranked = sorted(by_id, key=functools.cmp_to_key(_compare))
    logger.debug("Ranked %d recommendations", len(ranked))
    return ranked
