import os
import logging
import threading
import uuid
from datetime import datetime

from flask import Flask, request, jsonify, g
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import BadRequest
from werkzeug.middleware.proxy_fix import ProxyFix
from dotenv import load_dotenv

from burden import BurdenWeights
from catalogue import BadCatalogueFormat, UnknownProgram
from catalogue_source import read_feature_collection
from clinic_load import is_busy
from engine import MindRouteEngine
from exposome import ExposomeSettings
from geodesy import OutOfRangeCoordinate, validate_coordinate
from mr_trace import TraceContext, get_trace, set_trace, clear_trace
from recommender import QueryFilters

load_dotenv()

# ---------------------------------------------------------------------------
# Sentry error tracking — gated on SENTRY_DSN; silent when unset (local dev)
# ---------------------------------------------------------------------------
_sentry_dsn = os.environ.get("SENTRY_DSN")
if _sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    import requests.exceptions

    def _sentry_before_send(event, hint):
        """Demote expected failures to breadcrumbs; only unexpected errors become Sentry events."""
        exc_info = hint.get("exc_info")
        if exc_info:
            exc_type, exc_value, _ = exc_info
            msg = str(exc_value) if exc_value else ""
            # Bad user input and unknown ids are client errors, not bugs
            if exc_type is not None and issubclass(exc_type, (OutOfRangeCoordinate, UnknownProgram)):
                sentry_sdk.add_breadcrumb(category="request", message=msg, level="warning")
                return None
            # Remote catalogue timeouts / request failures
            if exc_type is not None and issubclass(exc_type, requests.exceptions.RequestException):
                sentry_sdk.add_breadcrumb(category="catalogue", message=msg, level="warning")
                return None
        return event

    sentry_sdk.init(
        dsn=_sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.0,
        environment=os.environ.get("MINDROUTE_ENVIRONMENT", "production"),
        before_send=_sentry_before_send,
    )

app = Flask(__name__)

# Proxy fix — most PaaS hosts run behind a reverse proxy that sets
# X-Forwarded-For.  ProxyFix rewrites request.remote_addr to the real
# client IP so both Flask-Limiter and logging see the correct address.
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Rate limiting.  In-memory storage is per-process (with 2 gunicorn
# workers the effective limit is ~2x nominal).
# ---------------------------------------------------------------------------
RATE_LIMIT_DEFAULT = os.environ.get("RATE_LIMIT_DEFAULT", "120/minute")

limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=[RATE_LIMIT_DEFAULT],
    storage_uri="memory://",
)
logging.getLogger("flask-limiter").setLevel(logging.WARNING)

engine = MindRouteEngine()

# ---------------------------------------------------------------------------
# Catalogue — loaded once per process on first use.  Read-only afterwards.
# ---------------------------------------------------------------------------
_catalogue_lock = threading.Lock()
_catalogue_state = {"catalogue": None, "dropped": 0}


def get_catalogue():
    """Return (catalogue, dropped_count), loading it on first call."""
    with _catalogue_lock:
        if _catalogue_state["catalogue"] is None:
            raw = read_feature_collection()
            catalogue, dropped = engine.load_catalogue(raw)
            _catalogue_state["catalogue"] = catalogue
            _catalogue_state["dropped"] = dropped
            logger.info("Catalogue ready: %d programs (%d dropped)", len(catalogue), dropped)
        return _catalogue_state["catalogue"], _catalogue_state["dropped"]


def reset_catalogue():
    """Forget the loaded catalogue so the next request reloads it."""
    with _catalogue_lock:
        _catalogue_state["catalogue"] = None
        _catalogue_state["dropped"] = 0


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

@app.before_request
def _set_request_context():
    g.request_id = uuid.uuid4().hex[:12]
    ctx = TraceContext(trace_id=g.request_id, model_version=engine.model_version)
    set_trace(ctx)


@app.after_request
def _after_request(response):
    trace = get_trace()
    if trace is not None and trace.stages:
        trace.log_summary()
    clear_trace()
    response.headers["X-Request-ID"] = getattr(g, "request_id", "")
    return response


def _error(message, status):
    return jsonify({"error": message, "request_id": getattr(g, "request_id", None)}), status


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------

def _json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")
    return body


def _user_location(body: dict):
    loc = body.get("userLocation")
    if loc is None:
        return None
    if not isinstance(loc, dict):
        raise OutOfRangeCoordinate("userLocation must be an object with lat and lon")
    return validate_coordinate(loc.get("lat"), loc.get("lon", loc.get("lng")))


def _int_field(value, field_name: str) -> int:
    if isinstance(value, bool):
        raise BadRequest(f"{field_name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequest(f"{field_name} must be an integer, got {value!r}")


def _program_id(value) -> int:
    return _int_field(value, "programId")


def _parse_time(value, field_name: str) -> datetime:
    if value is None:
        return datetime.now()
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise BadRequest(f"{field_name} must be an ISO-8601 timestamp")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.route("/healthz")
@limiter.exempt
def healthz():
    """Lightweight health-check endpoint for monitoring."""
    try:
        catalogue, dropped = get_catalogue()
    except (BadCatalogueFormat, OSError) as e:
        logger.warning("Health check: catalogue unavailable: %s", e)
        return jsonify({"status": "degraded", "error": str(e)}), 503
    return jsonify({
        "status": "ok",
        "programs": len(catalogue),
        "dropped": dropped,
        "model_version": engine.model_version,
    })


@app.route("/api/query", methods=["POST"])
def api_query():
    body = _json_body()
    catalogue, _ = get_catalogue()
    result = engine.query(catalogue, QueryFilters.from_dict(body.get("filters")), _user_location(body))
    return jsonify(result.to_dict())


@app.route("/api/recommend", methods=["POST"])
def api_recommend():
    body = _json_body()
    catalogue, _ = get_catalogue()
    ranked = engine.recommend(catalogue, QueryFilters.from_dict(body.get("filters")), _user_location(body))
    limit = body.get("limit")
    if limit is not None:
        ranked = ranked[: max(0, _int_field(limit, "limit"))]
    return jsonify({"recommendations": [r.to_dict() for r in ranked]})


@app.route("/api/programs/<int:program_id>")
def api_program(program_id):
    catalogue, _ = get_catalogue()
    return jsonify(catalogue.get(program_id).to_dict())


@app.route("/api/routes", methods=["POST"])
def api_routes():
    """Scored routes to a program.  Omit "profile" to get all three."""
    body = _json_body()
    catalogue, _ = get_catalogue()
    program = catalogue.get(_program_id(body.get("programId")))
    location = _user_location(body)
    if location is None:
        raise OutOfRangeCoordinate("userLocation is required for routing")
    mode = body.get("mode", "walking")
    weights = BurdenWeights.from_dict(body.get("weights"))
    departure = _parse_time(body.get("departure"), "departure")

    profile = body.get("profile")
    if profile:
        routes = [engine.routes(location, program, mode, profile, weights)]
    else:
        routes = engine.routes_all(location, program, mode, weights)

    payload = []
    for route in routes:
        arriving = engine.arrival_load(catalogue, program, route, departure)
        item = route.to_dict()
        item["loadAtArrival"] = arriving.load_at_arrival
        item["busyAtArrival"] = is_busy(arriving.load_at_arrival)
        payload.append(item)
    return jsonify({"programId": program.id, "routes": payload})


@app.route("/api/burden", methods=["POST"])
def api_burden():
    body = _json_body()
    catalogue, _ = get_catalogue()
    program = catalogue.get(_program_id(body.get("programId")))
    location = _user_location(body)
    if location is None:
        raise OutOfRangeCoordinate("userLocation is required for burden estimates")
    settings = ExposomeSettings.from_dict(body.get("settings"))
    return jsonify(engine.burden_between(location, program, settings).to_dict())


@app.route("/api/compare", methods=["POST"])
def api_compare():
    body = _json_body()
    catalogue, _ = get_catalogue()
    program_ids = body.get("programIds") or []
    if not isinstance(program_ids, list):
        raise BadRequest("programIds must be a list of integers")
    ids = [_program_id(v) for v in program_ids]
    location = _user_location(body)
    if location is None:
        raise OutOfRangeCoordinate("userLocation is required for comparison")
    rows = engine.compare(
        catalogue,
        ids,
        location,
        mode=body.get("mode", "walking"),
        profile=body.get("profile", "balanced"),
        weights=BurdenWeights.from_dict(body.get("weights")),
    )
    return jsonify({"comparison": [row.to_dict() for row in rows]})


@app.route("/api/programs/<int:program_id>/load")
def api_program_load(program_id):
    catalogue, _ = get_catalogue()
    at = _parse_time(request.args.get("at"), "at")
    threshold = request.args.get("threshold", type=float)
    load = engine.load_at(catalogue, program_id, at)
    window = engine.next_low_load(catalogue, program_id, at, threshold)
    return jsonify({
        "programId": program_id,
        "at": at.isoformat(),
        "load": load,
        "busy": is_busy(load),
        "nextLowLoad": window.to_dict() if window else None,
    })


@app.route("/api/exposome/grid")
def api_exposome_grid():
    layer = request.args.get("layer", "air")
    rows = request.args.get("rows", 12, type=int)
    cols = request.args.get("cols", 12, type=int)
    if not (1 <= rows <= 60 and 1 <= cols <= 60):
        raise BadRequest("rows and cols must be between 1 and 60")
    return jsonify({"layer": layer, "points": engine.overlay(layer, rows, cols)})


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

@app.errorhandler(UnknownProgram)
def unknown_program(e):
    return _error(str(e), 404)


@app.errorhandler(OutOfRangeCoordinate)
def out_of_range(e):
    return _error(str(e), 400)


@app.errorhandler(BadCatalogueFormat)
def bad_catalogue(e):
    logger.error("Catalogue could not be loaded: %s", e)
    return _error("Program catalogue is unavailable", 503)


@app.errorhandler(ValueError)
def invalid_value(e):
    return _error(str(e), 400)


@app.errorhandler(BadRequest)
def bad_request(e):
    return _error(e.description, 400)


@app.errorhandler(404)
def not_found(e):
    return _error("Not found", 404)


@app.errorhandler(429)
def rate_limit_exceeded(e):
    return _error("Too many requests. Please wait and try again.", 429)


@app.errorhandler(500)
def internal_error(e):
    return _error("Internal server error", 500)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5001))
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
