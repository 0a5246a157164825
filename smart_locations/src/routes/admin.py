"""
Admin routes: health check, metrics and cache statistics
"""
import time
from quart import Blueprint, jsonify, current_app

from smart_locations.src.metrics import get_metrics as get_metrics_dict
from smart_locations.src.auth import require_auth

bp = Blueprint('admin', __name__)


@bp.route('/healthz')
async def healthz():
    """Lightweight health endpoint returning component status."""
    from smart_locations.src.app import aiohttp_session, redis_client, search_service, config

    return jsonify({
        'app': 'ok',
        'time': time.time(),
        'ready': search_service is not None and aiohttp_session is not None,
        'redis': redis_client is not None,
        'groq': bool(config.groq_api_key),
        'auth': config.auth_config.enabled,
        'overpass_endpoints': len(config.provider_config.overpass_endpoints),
        'settings': config.to_dict(),
    })


@bp.route('/metrics/json')
async def metrics_json():
    """Return simple JSON metrics (counters and latency summaries)"""
    try:
        return jsonify(await get_metrics_dict())
    except Exception:
        current_app.logger.exception('Failed to get metrics')
        return jsonify({'error': 'failed to fetch metrics'}), 500


@bp.route('/admin/cache')
@require_auth
async def cache_stats():
    """Cache backend and entry count; keys are not exposed."""
    from smart_locations.src.app import result_cache
    try:
        stats = await result_cache.stats()
        return jsonify({'backend': stats['backend'], 'size': stats['size']})
    except Exception:
        current_app.logger.exception('Failed to read cache stats')
        return jsonify({'error': 'failed to read cache stats'}), 500


def register(app):
    app.register_blueprint(bp)
