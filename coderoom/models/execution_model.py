import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class EventKind(str, Enum):
    OUTPUT = 'output'
    WAITING_FOR_INPUT = 'waitingForInput'
    FINISHED = 'finished'


@dataclass(frozen=True)
class ExecutionEvent:
    """One item on a sandbox's output channel.

    A run produces any number of OUTPUT and WAITING_FOR_INPUT events and
    exactly one FINISHED event, which may carry a last chunk of text.
    """
    kind: EventKind
    execution_id: Optional[str] = None
    text: Optional[str] = None
    exit_code: Optional[int] = None
    error: bool = False

    @classmethod
    def output(cls, execution_id, text):
        return cls(EventKind.OUTPUT, execution_id, text)

    @classmethod
    def waiting_for_input(cls, execution_id):
        return cls(EventKind.WAITING_FOR_INPUT, execution_id)

    @classmethod
    def finished(cls, execution_id, text=None, exit_code=None, error=False):
        return cls(EventKind.FINISHED, execution_id, text, exit_code, error)


@dataclass
class ExecutionHandle:
    session_id: str
    language: str
    container_name: Optional[str] = None
    process: Any = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: float = field(default_factory=time.time)
    stopped: bool = False
