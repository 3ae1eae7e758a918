import logging
import threading
import uuid

from coderoom.errors import SandboxLaunchError
from coderoom.models.execution_model import EventKind, ExecutionEvent

# Configure logging
logger = logging.getLogger(__name__)


class ExecutionSupervisor:
    """Keeps at most one live sandbox run per session.

    The executor never sees another run of the same session: a new execute
    call stops and forgets the previous handle before the next one starts,
    and events from a superseded run are dropped here.

    Only registry changes happen under the coordinator lock. Waiting for a
    killed process and removing its container happen under a per-session
    lock, so a slow container engine delays that session alone.
    Lock order: session lock, then coordinator lock.
    """

    def __init__(self, state, executor):
        self.state = state
        self.executor = executor
        self._live = set()
        self._session_locks = {}

    def execute(self, session_id, workspace_path, language_id, source_code, on_event):
        with self._session_lock(session_id):
            with self.state.lock:
                previous = self._detach(session_id)
                execution_id = str(uuid.uuid4())
                self._live.add(execution_id)

            if previous is not None:
                logger.info(f"🛑 Stopping existing run {previous.id} for session {session_id}")
                self.executor.release(previous)

            try:
                handle = self.executor.start(
                    session_id,
                    workspace_path,
                    language_id,
                    source_code,
                    self._relay(session_id, on_event),
                    execution_id=execution_id,
                )
            except SandboxLaunchError as e:
                with self.state.lock:
                    self._live.discard(execution_id)
                logger.error(f"❌ Failed to start run for session {session_id}: {e.message}")
                on_event(ExecutionEvent.finished(None, f"Error: {e.message}\r\n", error=True))
                return None

            with self.state.lock:
                # a run that already finished has left the live set
                if execution_id in self._live:
                    self.state.executions[session_id] = handle
            logger.info(f"📤 Run {handle.id} tracked for session {session_id}")
            return handle

    def send_input(self, session_id, text):
        with self.state.lock:
            return self.executor.send_input(self.state.executions.get(session_id), text)

    def active(self, session_id):
        return self.state.executions.get(session_id)

    def stop(self, session_id):
        with self._session_lock(session_id):
            with self.state.lock:
                handle = self._detach(session_id)
            if handle is None:
                return False
            self.executor.release(handle)
            logger.info(f"Run {handle.id} for session {session_id} stopped")
            return True

    def _detach(self, session_id):
        # caller holds the coordinator lock
        handle = self.state.executions.pop(session_id, None)
        if handle is not None:
            self._live.discard(handle.id)
            self.executor.halt(handle)
        return handle

    def _session_lock(self, session_id):
        with self.state.lock:
            lock = self._session_locks.get(session_id)
            if lock is None:
                lock = self._session_locks[session_id] = threading.Lock()
            return lock

    def _relay(self, session_id, on_event):
        def relay(event):
            with self.state.lock:
                if event.execution_id not in self._live:
                    return
                if event.kind is EventKind.FINISHED:
                    self._live.discard(event.execution_id)
                    current = self.state.executions.get(session_id)
                    if current is not None and current.id == event.execution_id:
                        del self.state.executions[session_id]
                on_event(event)
        return relay
