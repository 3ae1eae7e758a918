import redis
from flask import Blueprint, current_app, jsonify

from coderoom.extensions import current_coderoom

bp = Blueprint('health', __name__)


@bp.route('/health')
def health():
    return jsonify({"status": "healthy"})


@bp.route('/health/redis')
def check_redis():
    """Check the Redis instance used as Socket.IO message queue"""
    try:
        # Connect to Redis
        redis_client = redis.from_url(current_app.config['REDIS_URL'])

        # Test connection
        redis_client.ping()

        # Get Redis info
        info = redis_client.info()

        return jsonify({
            "status": "connected",
            "message_queue_enabled": bool(current_app.config['SOCKETIO_MESSAGE_QUEUE']),
            "redis_version": info.get('redis_version'),
            "connected_clients": info.get('connected_clients'),
            "used_memory_human": info.get('used_memory_human'),
            "uptime_in_seconds": info.get('uptime_in_seconds')
        }), 200

    except redis.ConnectionError as e:
        return jsonify({
            "status": "disconnected",
            "error": str(e),
            "message": "Cannot connect to Redis"
        }), 503
    except redis.RedisError as e:
        return jsonify({
            "status": "error",
            "error": str(e)
        }), 500


@bp.route('/health/sandbox')
def check_sandbox():
    """Check that the sandbox runtime can launch programs"""
    coderoom = current_coderoom()
    executor = coderoom.supervisor.executor

    with coderoom.coordinator.lock:
        active = len(coderoom.coordinator.executions)

    if executor.runtime_available():
        return jsonify({
            "status": "available",
            "runtime": executor.runtime,
            "active_executions": active
        }), 200

    return jsonify({
        "status": "unavailable",
        "runtime": executor.runtime,
        "message": f"{executor.docker_binary} was not found on PATH"
    }), 503
