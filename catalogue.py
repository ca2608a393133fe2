"""
Program catalogue — normalises an ArcGIS-style feature collection into
clean, typed Program records.

The raw directory of Los Angeles mental-health programs is a JSON
object with a ``features`` array; each feature has an ``attributes``
map and an optional ``geometry`` with ``x``/``y``.  Field names vary
between exports (``org_name`` vs ``Name``, ``latitude`` vs ``POINT_Y``,
...), so every tolerance for messy input lives in this module.
Everything downstream receives fully-typed Program objects and never
touches raw attributes.

Records without usable coordinates are dropped (never surfaced with a
placeholder location) and counted.  A malformed collection raises
BadCatalogueFormat.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "Unnamed Program"
DEFAULT_STATE = "CA"

# (lat key, lon key) pairs on the attributes map, in priority order.
# geometry.y / geometry.x is tried after all of these.
_COORDINATE_KEYS = (
    ("latitude", "longitude"),
    ("LATITUDE", "LONGITUDE"),
    ("POINT_Y", "POINT_X"),
)

_ID_KEYS = ("OBJECTID", "objectid", "FID", "id")

_TRUE_STRINGS = {"true", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "no", "n", "0"}


class BadCatalogueFormat(ValueError):
    """The feature collection is structurally wrong at the top level."""


class UnknownProgram(KeyError):
    """A query referenced a program id that is not in the catalogue."""

    def __init__(self, program_id):
        super().__init__(program_id)
        self.program_id = program_id

    def __str__(self):
        return f"Unknown program id {self.program_id!r}"


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Program:
    """A normalised directory entry (a "clinic" in the UI)."""
    id: int
    name: str
    latitude: float
    longitude: float
    address1: str = ""
    city: str = ""
    state: str = DEFAULT_STATE
    org_name: Optional[str] = None
    program_name: Optional[str] = None
    address2: Optional[str] = None
    zip: Optional[str] = None

    phones: Optional[str] = None
    email: Optional[str] = None
    url: Optional[str] = None
    hours: Optional[str] = None

    description: Optional[str] = None
    info1: Optional[str] = None
    info2: Optional[str] = None

    category1: Optional[str] = None
    category2: Optional[str] = None
    category3: Optional[str] = None
    categories: Tuple[str, ...] = ()

    # Service profile.  Only curated records carry these; ArcGIS exports
    # leave them empty.
    clinic_type: Optional[str] = None
    treatment_focus: Tuple[str, ...] = ()
    appointment_types: Tuple[str, ...] = ()
    insurance: Tuple[str, ...] = ()
    languages: Tuple[str, ...] = ()
    privacy_level: Optional[str] = None
    allows_anonymous: Optional[bool] = None
    telehealth: Optional[bool] = None
    guardian_not_required: Optional[bool] = None

    # Transient, set on per-query copies only (see with_distance in
    # recommender.py and arrival_load in engine.py).
    distance_km: Optional[float] = field(default=None, compare=False)
    distance_miles: Optional[float] = field(default=None, compare=False)
    load_at_arrival: Optional[float] = field(default=None, compare=False)

    @property
    def location(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    @property
    def walk_in(self) -> bool:
        return any(a.lower() == "walk-in" for a in self.appointment_types)

    @property
    def open_24_7(self) -> bool:
        hours = (self.hours or "").lower()
        return "24/7" in hours or "24 hours" in hours

    def with_transient(self, **values) -> "Program":
        """Return a copy carrying query-time fields; the catalogue copy is untouched."""
        return replace(self, **values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "orgName": self.org_name,
            "programName": self.program_name,
            "address1": self.address1,
            "address2": self.address2,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "phones": self.phones,
            "email": self.email,
            "url": self.url,
            "hours": self.hours,
            "description": self.description,
            "info1": self.info1,
            "info2": self.info2,
            "categories": list(self.categories),
            "clinicType": self.clinic_type,
            "treatmentFocus": list(self.treatment_focus),
            "appointmentTypes": list(self.appointment_types),
            "insurance": list(self.insurance),
            "languages": list(self.languages),
            "privacyLevel": self.privacy_level,
            "allowsAnonymous": self.allows_anonymous,
            "telehealth": self.telehealth,
            "guardianNotRequired": self.guardian_not_required,
            "distanceKm": self.distance_km,
            "distanceMiles": self.distance_miles,
            "loadAtArrival": self.load_at_arrival,
        }


class Catalogue:
    """Immutable, ordered collection of Programs indexed by id."""

    def __init__(self, programs=()):
        self._programs: Tuple[Program, ...] = tuple(programs)
        self._by_id: Dict[int, Program] = {}
        for p in self._programs:
            if p.id in self._by_id:
                raise ValueError(f"Duplicate program id {p.id}")
            self._by_id[p.id] = p

    def __iter__(self) -> Iterator[Program]:
        return iter(self._programs)

    def __len__(self) -> int:
        return len(self._programs)

    def __contains__(self, program_id) -> bool:
        return program_id in self._by_id

    def __eq__(self, other):
        if not isinstance(other, Catalogue):
            return NotImplemented
        return self._programs == other._programs

    def __repr__(self):
        return f"Catalogue({len(self._programs)} programs)"

    @property
    def programs(self) -> Tuple[Program, ...]:
        return self._programs

    def get(self, program_id) -> Program:
        try:
            return self._by_id[program_id]
        except KeyError:
            raise UnknownProgram(program_id) from None

    def ids(self) -> List[int]:
        return [p.id for p in self._programs]

    def cities(self) -> List[str]:
        return sorted({p.city for p in self._programs if p.city})

    def categories(self) -> List[str]:
        return sorted({c for p in self._programs for c in p.categories})


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _clean_str(value) -> Optional[str]:
    """Trimmed string, or None for missing / blank values."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _first_str(attrs: dict, *keys) -> Optional[str]:
    for key in keys:
        text = _clean_str(attrs.get(key))
        if text is not None:
            return text
    return None


def _as_number(value) -> Optional[float]:
    """Finite float from a number or numeric string; None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _as_int_id(value) -> Optional[int]:
    number = _as_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def _as_bool(value) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def _first_bool(attrs: dict, *keys) -> Optional[bool]:
    for key in keys:
        flag = _as_bool(attrs.get(key))
        if flag is not None:
            return flag
    return None


def _split_list(value) -> Tuple[str, ...]:
    """Comma-split, trim, drop empties, de-duplicate preserving order."""
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        parts = []
        for item in value:
            parts.extend(_split_list(item))
    else:
        text = _clean_str(value)
        parts = text.split(",") if text else []
    seen = []
    for part in parts:
        part = part.strip()
        if part and part not in seen:
            seen.append(part)
    return tuple(seen)


def _first_list(attrs: dict, *keys) -> Tuple[str, ...]:
    for key in keys:
        parts = _split_list(attrs.get(key))
        if parts:
            return parts
    return ()


def normalize_url(url) -> Optional[str]:
    """Trim and ensure an http(s) scheme; None when absent."""
    text = _clean_str(url)
    if text is None:
        return None
    if text.lower().startswith(("http://", "https://")):
        return text
    return "https://" + text


def flatten_categories(*raw_fields) -> Tuple[str, ...]:
    """Flatten cat1..cat3 into one ordered, de-duplicated tuple."""
    flat: List[str] = []
    for raw in raw_fields:
        for cat in _split_list(raw):
            if cat not in flat:
                flat.append(cat)
    return tuple(flat)


def resolve_name(attrs: dict) -> str:
    return _first_str(attrs, "org_name", "Name", "name") or PLACEHOLDER_NAME


def resolve_coordinates(attrs: dict, geometry) -> Optional[Tuple[float, float]]:
    """First complete numeric (lat, lon) pair, or None."""
    pairs = [(attrs.get(lat_key), attrs.get(lon_key)) for lat_key, lon_key in _COORDINATE_KEYS]
    if isinstance(geometry, dict):
        pairs.append((geometry.get("y"), geometry.get("x")))

    for raw_lat, raw_lon in pairs:
        if raw_lat is None and raw_lon is None:
            continue
        lat = _as_number(raw_lat)
        lon = _as_number(raw_lon)
        if lat is None or lon is None:
            continue
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            return None
        return (lat, lon)
    return None


# =============================================================================
# NORMALISATION
# =============================================================================

def normalize_feature(feature, program_id: Optional[int] = None) -> Optional[Program]:
    """Convert one raw feature into a Program, or None if it must be dropped.

    *program_id* overrides the id read from the attributes; load_catalogue
    uses it to assign ids to records that carry none.
    """
    if not isinstance(feature, dict):
        return None
    attrs = feature.get("attributes")
    if not isinstance(attrs, dict):
        attrs = {}

    coords = resolve_coordinates(attrs, feature.get("geometry"))
    if coords is None:
        return None

    if program_id is None:
        program_id = read_feature_id(feature)
        if program_id is None:
            return None

    cat1 = _clean_str(attrs.get("cat1"))
    cat2 = _clean_str(attrs.get("cat2"))
    cat3 = _clean_str(attrs.get("cat3"))

    return Program(
        id=program_id,
        name=resolve_name(attrs),
        org_name=_clean_str(attrs.get("org_name")),
        program_name=_first_str(attrs, "Name", "name"),
        address1=_first_str(attrs, "addrln1", "address1", "address") or "",
        address2=_first_str(attrs, "addrln2", "address2"),
        city=_clean_str(attrs.get("city")) or "",
        state=_clean_str(attrs.get("state")) or DEFAULT_STATE,
        zip=_first_str(attrs, "zip", "zipcode"),
        latitude=coords[0],
        longitude=coords[1],
        phones=_first_str(attrs, "phones", "phone"),
        email=_clean_str(attrs.get("email")),
        url=normalize_url(_first_str(attrs, "url", "link")),
        hours=_clean_str(attrs.get("hours")),
        description=_clean_str(attrs.get("description")),
        info1=_clean_str(attrs.get("info1")),
        info2=_clean_str(attrs.get("info2")),
        category1=cat1,
        category2=cat2,
        category3=cat3,
        categories=flatten_categories(cat1, cat2, cat3),
        clinic_type=_first_str(attrs, "clinic_type", "type"),
        treatment_focus=_first_list(attrs, "treatment_focus", "focus"),
        appointment_types=_first_list(attrs, "appointment_type", "appointment_types"),
        insurance=_split_list(attrs.get("insurance")),
        languages=_split_list(attrs.get("languages")),
        privacy_level=_clean_str(attrs.get("privacy_level")),
        allows_anonymous=_as_bool(attrs.get("allows_anonymous")),
        telehealth=_first_bool(attrs, "telehealth", "online"),
        guardian_not_required=_first_bool(attrs, "guardian_not_required", "noGuardianRequired"),
    )


def read_feature_id(feature) -> Optional[int]:
    if not isinstance(feature, dict):
        return None
    attrs = feature.get("attributes")
    if not isinstance(attrs, dict):
        return None
    for key in _ID_KEYS:
        program_id = _as_int_id(attrs.get(key))
        if program_id is not None:
            return program_id
    return None


def _features_of(feature_collection) -> list:
    if isinstance(feature_collection, dict):
        features = feature_collection.get("features")
        if not isinstance(features, (list, tuple)):
            raise BadCatalogueFormat("Feature collection has no 'features' array")
        return list(features)
    if isinstance(feature_collection, (list, tuple)):
        return list(feature_collection)
    raise BadCatalogueFormat(
        f"Feature collection must be an object or array, got {type(feature_collection).__name__}"
    )


def load_catalogue(feature_collection) -> Tuple[Catalogue, int]:
    """Normalise a whole feature collection.

    Returns (catalogue, dropped_count).  Ids come from OBJECTID (or a
    variant); a record repeating an earlier id is dropped, and records
    without any id are numbered after the largest explicit id in input
    order so repeated loads give identical ids.
    """
    features = _features_of(feature_collection)

    explicit_ids = [read_feature_id(f) for f in features]
    next_id = max((i for i in explicit_ids if i is not None), default=0) + 1

    programs: List[Program] = []
    seen_ids = set()
    dropped = 0

    for index, (feature, explicit_id) in enumerate(zip(features, explicit_ids)):
        if explicit_id is None:
            program_id = next_id
            next_id += 1
        else:
            program_id = explicit_id

        if program_id in seen_ids:
            logger.debug("Dropping feature %d: duplicate id %d", index, program_id)
            dropped += 1
            continue

        program = normalize_feature(feature, program_id=program_id)
        if program is None:
            logger.debug("Dropping feature %d: no usable coordinates", index)
            dropped += 1
            continue

        seen_ids.add(program_id)
        programs.append(program)

    logger.info("Catalogue loaded: %d programs, %d dropped", len(programs), dropped)
    return Catalogue(programs), dropped
