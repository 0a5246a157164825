"""
Preference routes: the signed-in user's Favorites tag list.
"""
from quart import Blueprint, g, jsonify

from smart_locations.src.auth import require_auth
from smart_locations.src.routes.payload import json_object, not_an_object

bp = Blueprint('preferences', __name__, url_prefix='/api/preferences')


@bp.route('/attractions', methods=['GET'])
@require_auth
async def get_attractions():
    from smart_locations.src.app import preference_store
    return jsonify(await preference_store.load_attractions(g.auth_claims['sub']))


@bp.route('/attractions', methods=['PUT'])
@require_auth
async def put_attractions():
    from smart_locations.src.app import preference_store

    payload = await json_object()
    if payload is None:
        return not_an_object()
    tags = payload.get('tags')
    categories = payload.get('customCategories') or []
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        return jsonify({'error': 'tags must be a list of strings'}), 400
    if not isinstance(categories, list):
        return jsonify({'error': 'customCategories must be a list'}), 400
    saved = await preference_store.save_attractions(g.auth_claims['sub'], tags, categories)
    return jsonify({'saved': saved}), (200 if saved else 503)


@bp.route('/attractions', methods=['DELETE'])
@require_auth
async def reset_attractions():
    from smart_locations.src.app import preference_store

    saved = await preference_store.reset_attractions(g.auth_claims['sub'])
    return jsonify({'saved': saved}), (200 if saved else 503)


def register(app):
    app.register_blueprint(bp)
