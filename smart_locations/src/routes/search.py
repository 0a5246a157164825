"""
Search routes: nearby places by tag filters or keyword, live-tracking re-query,
and address-anchored search.
"""
from quart import Blueprint, jsonify

from smart_locations.providers.normalizer import mark_newly_observed
from smart_locations.providers.overpass_provider import UpstreamUnavailable
from smart_locations.src.auth import require_auth
from smart_locations.src.routes.payload import json_object, not_an_object
from smart_locations.src.search_service import InvalidSearchRequest, SearchRequest

bp = Blueprint('search', __name__, url_prefix='/api')


def _unavailable(exc: UpstreamUnavailable):
    return jsonify({
        "error": "All Overpass API endpoints unavailable",
        "details": str(exc.last_error) if exc.last_error else "Unknown error",
    }), 502


def _service():
    from smart_locations.src import app as app_module
    if app_module.search_service is None:
        raise RuntimeError("search service not started")
    return app_module.search_service


@bp.route("/search", methods=["POST"])
@require_auth
async def search():
    """Nearby places for `{lat, lon, tags | keyword, limit, radiusKm, bbox?}`."""
    payload = await json_object()
    if payload is None:
        return not_an_object()
    try:
        search_request = SearchRequest.from_payload(payload)
    except InvalidSearchRequest as e:
        return jsonify({"error": str(e)}), 400

    try:
        places = await _service().search(search_request)
    except UpstreamUnavailable as e:
        return _unavailable(e)
    return jsonify({"places": [p.to_dict() for p in places]})


@bp.route("/search/track", methods=["POST"])
@require_auth
async def search_track():
    """Live-tracking re-poll: same body as /search plus `previous: [{id, type}]`.

    Places not present in `previous` are flagged `isNewlyAdded`.
    """
    from smart_locations.src.app import config

    payload = await json_object()
    if payload is None:
        return not_an_object()
    try:
        search_request = SearchRequest.from_payload(payload)
    except InvalidSearchRequest as e:
        return jsonify({"error": str(e)}), 400
    previous = payload.get("previous") or []
    if not isinstance(previous, list):
        return jsonify({"error": "previous must be a list"}), 400

    try:
        places = await _service().search(search_request, timeout=config.timeout_config.tracking)
    except UpstreamUnavailable as e:
        return _unavailable(e)
    flagged = mark_newly_observed(places, previous)
    return jsonify({"places": [p.to_dict() for p in flagged]})


@bp.route("/search/address", methods=["POST"])
@require_auth
async def search_address():
    """Geocode `address` first, then search around it (or inside it, for broad areas)."""
    payload = await json_object()
    if payload is None:
        return not_an_object()
    address = (payload.get("address") or "").strip() if isinstance(payload.get("address"), str) else ""
    if not address:
        return jsonify({"error": "address required"}), 400

    try:
        origin, bbox, places = await _service().search_near_address(
            address,
            tags=payload.get("tags"),
            keyword=payload.get("keyword"),
            limit=payload.get("limit"),
            radius_km=payload.get("radiusKm"),
        )
    except InvalidSearchRequest as e:
        return jsonify({"error": str(e)}), 400
    except UpstreamUnavailable as e:
        return _unavailable(e)
    if origin is None:
        return jsonify({"error": "No results for address"}), 404
    return jsonify({
        "center": {"lat": origin.lat, "lon": origin.lon},
        "bbox": [bbox.south, bbox.west, bbox.north, bbox.east] if bbox else None,
        "places": [p.to_dict() for p in places],
    })


def register(app):
    """Register search blueprint with app"""
    app.register_blueprint(bp)
