import os
from pathlib import Path
from dotenv import load_dotenv

# Get the base directory (repository root)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_FILE = BASE_DIR / '.env'

load_dotenv(ENV_FILE, override=True)


def _env_bool(name, default):
    return os.getenv(name, str(default)).lower() in ('1', 'true', 'yes')


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Debug mode
    DEBUG = _env_bool('DEBUG', False)

    # Socket.IO
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    # Leave empty for a single process; point at Redis to fan out emits across workers
    SOCKETIO_MESSAGE_QUEUE = os.getenv('SOCKETIO_MESSAGE_QUEUE', '')
    SOCKETIO_ASYNC_MODE = os.getenv('SOCKETIO_ASYNC_MODE', 'threading')
    CORS_ALLOWED_ORIGINS = os.getenv('CORS_ALLOWED_ORIGINS', '*')
    PRESENCE_NAMESPACE = '/webrtc'

    # Sandbox
    WORKSPACE_ROOT = os.getenv('WORKSPACE_ROOT', str(BASE_DIR / 'temp'))
    SANDBOX_RUNTIME = os.getenv('SANDBOX_RUNTIME', 'docker')
    DOCKER_BINARY = os.getenv('DOCKER_BINARY', 'docker')
    SANDBOX_MEMORY = os.getenv('SANDBOX_MEMORY', '512m')
    SANDBOX_CPUS = os.getenv('SANDBOX_CPUS', '1')
    SANDBOX_PIDS_LIMIT = int(os.getenv('SANDBOX_PIDS_LIMIT', '256'))
    SANDBOX_NETWORK = os.getenv('SANDBOX_NETWORK', 'none')
    SANDBOX_STOP_TIMEOUT = int(os.getenv('SANDBOX_STOP_TIMEOUT', '2'))
    LANGUAGES_FILE = os.getenv('LANGUAGES_FILE', '')

    # Liveness sweeps (seconds)
    SWEEPERS_ENABLED = _env_bool('SWEEPERS_ENABLED', True)
    FAST_SWEEP_INTERVAL = float(os.getenv('FAST_SWEEP_INTERVAL', '15'))
    INACTIVITY_TIMEOUT = float(os.getenv('INACTIVITY_TIMEOUT', '30'))
    DEEP_SWEEP_INTERVAL = float(os.getenv('DEEP_SWEEP_INTERVAL', '120'))
    STALE_USERNAME_THRESHOLD = float(os.getenv('STALE_USERNAME_THRESHOLD', '120'))

    # Chat / presence limits
    CHAT_HISTORY_LIMIT = 50
    CHAT_MESSAGE_MAX_LENGTH = 1000
    CHAT_MIN_INTERVAL = 0.5
    USERNAME_MAX_LENGTH = 30

    ICE_SERVERS = [
        {'urls': 'stun:stun.l.google.com:19302'},
        {'urls': 'stun:stun1.l.google.com:19302'},
    ]

    @staticmethod
    def init_app(app):
        Path(app.config['WORKSPACE_ROOT']).mkdir(parents=True, exist_ok=True)
