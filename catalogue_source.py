"""
Catalogue source — reads the raw ArcGIS feature collection for the host.

The engine never does I/O; the host calls read_feature_collection() once
at startup (or on first request) and hands the decoded JSON to
MindRouteEngine.load_catalogue().

Sources, in priority order:
  - MINDROUTE_CATALOGUE_URL   remote ArcGIS JSON (FeatureServer query or file)
  - MINDROUTE_CATALOGUE_PATH  local JSON file (default data/programs_sample.json)
"""

import json
import logging
import os
import time
from typing import Any, Optional

import requests

from catalogue import BadCatalogueFormat
from mr_trace import get_trace

logger = logging.getLogger(__name__)

DEFAULT_CATALOGUE_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", "programs_sample.json")
_FETCH_TIMEOUT = 20  # seconds


def catalogue_path() -> str:
    return os.environ.get("MINDROUTE_CATALOGUE_PATH") or DEFAULT_CATALOGUE_PATH


def catalogue_url() -> Optional[str]:
    return os.environ.get("MINDROUTE_CATALOGUE_URL") or None


def read_file(path: str) -> Any:
    """Decode a JSON catalogue file.  Undecodable JSON is BadCatalogueFormat."""
    with open(path, "r", encoding="utf-8") as fh:
        try:
            return json.load(fh)
        except json.JSONDecodeError as e:
            raise BadCatalogueFormat(f"Catalogue file {path} is not valid JSON: {e}") from e


def fetch_url(url: str, session: Optional[requests.Session] = None) -> Any:
    """Download and decode a remote catalogue.

    Network failures propagate as requests exceptions; a response that is
    not JSON raises BadCatalogueFormat.
    """
    session = session or requests.Session()
    t0 = time.time()
    resp = session.get(url, timeout=_FETCH_TIMEOUT, headers={"Accept": "application/json"})
    elapsed_ms = int((time.time() - t0) * 1000)

    trace = get_trace()
    if trace:
        trace.record_fetch(
            service="arcgis",
            endpoint="catalogue",
            elapsed_ms=elapsed_ms,
            status_code=resp.status_code,
        )

    resp.raise_for_status()
    try:
        return resp.json()
    except ValueError as e:
        raise BadCatalogueFormat(f"Catalogue at {url} is not valid JSON") from e


def read_feature_collection() -> Any:
    """Raw feature collection from the configured source."""
    url = catalogue_url()
    if url:
        logger.info("Fetching catalogue from %s", url)
        return fetch_url(url)
    path = catalogue_path()
    logger.info("Reading catalogue from %s", path)
    return read_file(path)
