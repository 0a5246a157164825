"""
AI routes: free-form narrative Q&A and visit-plan reports for a place list.
"""
from quart import Blueprint, jsonify, current_app

from smart_locations.groq.narrative import NarrativeError
from smart_locations.src.auth import require_auth
from smart_locations.src.routes.payload import json_object, not_an_object

bp = Blueprint('ai', __name__, url_prefix='/api')


@bp.route('/narrative', methods=['POST'])
@require_auth
async def narrative():
    from smart_locations.src.app import narrative_client

    payload = await json_object()
    if payload is None:
        return not_an_object()
    prompt = payload.get('prompt')
    if not prompt or not isinstance(prompt, str):
        return jsonify({'error': 'Prompt is required'}), 400
    try:
        text = await narrative_client.generate(prompt)
    except NarrativeError as e:
        current_app.logger.warning('Narrative failed: %s', e.message)
        return jsonify({'error': e.message}), 503
    return jsonify({'response': text})


@bp.route('/generate-report', methods=['POST'])
@require_auth
async def generate_report():
    from smart_locations.src.app import narrative_client

    payload = await json_object()
    if payload is None:
        return not_an_object()
    elements = payload.get('elements')
    if not isinstance(elements, list) or not elements:
        return jsonify({'error': 'Elements array is required'}), 400
    try:
        report = await narrative_client.generate_report(elements)
    except NarrativeError as e:
        current_app.logger.warning('Report generation failed: %s', e.message)
        return jsonify({'error': 'Failed to generate report', 'details': e.message}), 503
    return jsonify({'report': report})


def register(app):
    app.register_blueprint(bp)
