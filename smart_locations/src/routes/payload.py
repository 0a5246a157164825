"""
Request body helpers shared by the JSON blueprints.
"""
from quart import request, jsonify


async def json_object():
    """Return the JSON body as a dict, `{}` when absent or unparseable, None when it is not an object."""
    payload = await request.get_json(silent=True)
    if payload is None:
        return {}
    return payload if isinstance(payload, dict) else None


def not_an_object():
    return jsonify({'error': 'JSON object body required'}), 400
