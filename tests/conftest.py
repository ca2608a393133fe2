"""Shared fixtures for the MindRoute test suite.

Provides a Flask test client reading the bundled sample catalogue, plus
small in-memory feature collections for engine-level tests.
"""

import copy
import os

import pytest

# Configure the host BEFORE importing app (it reads env at import time)
os.environ.pop("SENTRY_DSN", None)
os.environ.pop("MINDROUTE_CATALOGUE_URL", None)
os.environ["MINDROUTE_CATALOGUE_PATH"] = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data", "programs_sample.json"
)
os.environ.setdefault("RATE_LIMIT_DEFAULT", "10000/minute")

from app import app, reset_catalogue  # noqa: E402
from catalogue import load_catalogue  # noqa: E402
from engine import MindRouteEngine  # noqa: E402


_FEATURES = {
    "features": [
        {
            "attributes": {
                "OBJECTID": 1,
                "org_name": " Alpha Clinic ",
                "cat1": "Youth, CBT",
                "cat2": "CBT",
                "addrln1": "1 Main",
                "city": "LA",
                "url": "example.org/a",
                "languages": "Spanish, English",
                "insurance": "Medicaid",
                "appointment_type": "walk-in",
            },
            "geometry": {"x": -118.25, "y": 34.05},
        },
        {
            "attributes": {
                "OBJECTID": 2,
                "Name": "Beta Counseling",
                "cat1": "Counseling",
                "city": "Pasadena",
                "latitude": 34.1478,
                "longitude": -118.1445,
                "languages": "English",
                "insurance": "Private Insurance",
                "hours": "24/7",
            },
        },
        {
            "attributes": {
                "OBJECTID": 3,
                "name": "Gamma Youth Center",
                "cat1": "Youth",
                "cat3": "Crisis Intervention",
                "city": "LA",
                "POINT_X": -118.30,
                "POINT_Y": 34.10,
                "telehealth": True,
            },
        },
        {
            # No coordinates: dropped
            "attributes": {"OBJECTID": 4, "org_name": "Delta House", "city": "LA"},
        },
    ]
}


@pytest.fixture()
def feature_collection():
    """A fresh copy of a four-feature collection (one record has no coordinates)."""
    return copy.deepcopy(_FEATURES)


@pytest.fixture()
def catalogue(feature_collection):
    catalogue, _ = load_catalogue(feature_collection)
    return catalogue


@pytest.fixture()
def engine():
    return MindRouteEngine()


@pytest.fixture()
def client():
    """Flask test client over the bundled sample catalogue."""
    app.config["TESTING"] = True
    reset_catalogue()
    with app.test_client() as c:
        yield c
    reset_catalogue()
