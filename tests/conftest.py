import queue
from collections import defaultdict

import pytest

from coderoom import create_app
from coderoom.config import Config
from coderoom.models.execution_model import EventKind
from coderoom.services.presence_service import PresenceService
from coderoom.state import Coordinator
from coderoom.transport import Transport


class FakeTransport(Transport):
    """Records what would go over the wire; connections exist only when added."""

    def __init__(self):
        self.connected = set()
        self.emitted = []
        self.disconnected = []
        self.rooms = defaultdict(set)
        self.on_disconnect = None

    def connect(self, *connection_ids):
        self.connected.update(connection_ids)

    def drop(self, connection_id):
        """The connection vanished without a disconnect event reaching the app."""
        self.connected.discard(connection_id)

    def emit(self, event, data=None, to=None, skip=None):
        self.emitted.append((event, data, to, skip))

    def enter_room(self, connection_id, room):
        self.rooms[room].add(connection_id)

    def leave_room(self, connection_id, room):
        self.rooms[room].discard(connection_id)

    def disconnect(self, connection_id):
        if connection_id not in self.connected:
            return
        self.connected.discard(connection_id)
        self.disconnected.append(connection_id)
        if self.on_disconnect is not None:
            self.on_disconnect(connection_id)

    def is_connected(self, connection_id):
        return connection_id in self.connected

    def events(self, name, to=None):
        return [e for e in self.emitted if e[0] == name and (to is None or e[2] == to)]

    def index_of(self, name, to=None):
        for i, e in enumerate(self.emitted):
            if e[0] == name and (to is None or e[2] == to):
                return i
        return -1


class Clock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class EventCollector:
    """on_event callback that lets a test wait for the end of a run."""

    def __init__(self):
        self.events = []
        self._queue = queue.Queue()

    def __call__(self, event):
        self.events.append(event)
        self._queue.put(event)

    def wait_finished(self, timeout=15):
        while True:
            event = self._queue.get(timeout=timeout)
            if event.kind is EventKind.FINISHED:
                return event

    def wait_for(self, kind, timeout=15):
        while True:
            event = self._queue.get(timeout=timeout)
            if event.kind is kind:
                return event

    @property
    def text(self):
        return ''.join(e.text for e in self.events if e.text)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def coordinator():
    return Coordinator()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def presence(coordinator, transport, clock):
    service = PresenceService(coordinator, transport, clock=clock)
    # a real server runs the disconnect handler when it closes a connection
    transport.on_disconnect = service.leave_or_disconnect
    return service


@pytest.fixture
def app(tmp_path):
    test_config = type('TestConfig', (Config,), {
        'TESTING': True,
        'DEBUG': False,
        'WORKSPACE_ROOT': str(tmp_path / 'workspaces'),
        'SANDBOX_RUNTIME': 'local',
        'SWEEPERS_ENABLED': False,
        'SOCKETIO_MESSAGE_QUEUE': '',
        'LANGUAGES_FILE': '',
    })
    return create_app(test_config)


@pytest.fixture
def coderoom(app):
    return app.extensions['coderoom']


@pytest.fixture
def http(app):
    return app.test_client()


@pytest.fixture
def collector():
    return EventCollector()
