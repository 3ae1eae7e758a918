import logging

from flask import Flask, jsonify

from coderoom.api import init_api
from coderoom.config import Config
from coderoom.extensions import CodeRoom
from coderoom.services.code_execution_service import ExecutionSupervisor
from coderoom.services.code_session_service import SessionService
from coderoom.services.language_registry import LanguageRegistry
from coderoom.services.liveness_sweeper import LivenessSweeper
from coderoom.services.presence_service import PresenceService
from coderoom.services.sandbox_executor import SandboxExecutor
from coderoom.socketio_app import init_socketio
from coderoom.sockets.execution_events import register_execution_events
from coderoom.sockets.presence_events import register_presence_events
from coderoom.state import Coordinator
from coderoom.transport import SocketIOTransport

logger = logging.getLogger(__name__)


def create_app(config_object=Config):
    logging.basicConfig(level=logging.INFO)

    app = Flask(__name__)
    app.config.from_object(config_object)
    config_object.init_app(app)

    socketio = init_socketio(app)

    coordinator = Coordinator()
    registry = LanguageRegistry.from_config(app.config)
    executor = SandboxExecutor.from_config(registry, app.config)
    presence_transport = SocketIOTransport(socketio, app.config['PRESENCE_NAMESPACE'])

    coderoom = CodeRoom(
        coordinator=coordinator,
        registry=registry,
        sessions=SessionService(coordinator, app.config['WORKSPACE_ROOT']),
        supervisor=ExecutionSupervisor(coordinator, executor),
        presence=PresenceService.from_config(coordinator, presence_transport, app.config),
        socketio=socketio,
    )
    coderoom.sweeper = LivenessSweeper.from_config(coderoom.presence, app.config)
    app.extensions['coderoom'] = coderoom

    register_execution_events(socketio, coderoom)
    register_presence_events(socketio, coderoom, namespace=app.config['PRESENCE_NAMESPACE'])

    # REST API with Swagger
    init_api(app)

    from coderoom.routes import health_routes
    app.register_blueprint(health_routes.bp)

    @app.route("/")
    def home():
        return jsonify({
            "message": "CodeRoom API is running!",
            "status": "success",
            "documentation": "/docs"
        })

    if app.config['SWEEPERS_ENABLED']:
        coderoom.sweeper.start(socketio)

    logger.info(f"CodeRoom ready (sandbox runtime: {executor.runtime}, workspaces in {app.config['WORKSPACE_ROOT']})")
    return app
