from dataclasses import dataclass
from typing import Any, Optional

from flask import current_app


@dataclass
class CodeRoom:
    """Everything one app instance wires together, stored on ``app.extensions``."""
    coordinator: Any
    registry: Any
    sessions: Any
    supervisor: Any
    presence: Any
    socketio: Any
    sweeper: Optional[Any] = None


def current_coderoom():
    return current_app.extensions['coderoom']
