"""
Geocoding routes: address autocomplete and reverse lookup (Nominatim pass-through).
"""
from quart import Blueprint, request, jsonify, current_app

from smart_locations.providers import geocoding
from smart_locations.src.auth import require_auth

bp = Blueprint('geocode', __name__, url_prefix='/api')


@bp.route('/address-search', methods=['GET'])
@require_auth
async def address_search():
    from smart_locations.src.app import aiohttp_session

    query = (request.args.get('q') or '').strip()
    if len(query) < 3:
        return jsonify({'error': 'Query must be at least 3 characters'}), 400
    try:
        results = await geocoding.search_addresses(query, limit=8, session=aiohttp_session)
    except Exception as e:
        current_app.logger.error('Address search error: %s', e)
        return jsonify({'error': 'Failed to search addresses'}), 500
    return jsonify(results)


@bp.route('/reverse-geocode', methods=['GET'])
@require_auth
async def reverse_geocode():
    from smart_locations.src.app import aiohttp_session

    try:
        lat = float(request.args['lat'])
        lon = float(request.args['lon'])
    except (KeyError, ValueError):
        return jsonify({'error': 'lat and lon required'}), 400
    try:
        data = await geocoding.reverse_geocode(lat, lon, session=aiohttp_session)
    except Exception as e:
        current_app.logger.error('Reverse geocoding error: %s', e)
        return jsonify({'error': 'Geocoding failed'}), 502
    return jsonify({'display_name': data.get('display_name', ''), 'address': data.get('address') or {}})


def register(app):
    app.register_blueprint(bp)
