import threading

import pytest

from coderoom.errors import SandboxLaunchError
from coderoom.models.execution_model import EventKind, ExecutionEvent, ExecutionHandle
from coderoom.services.code_execution_service import ExecutionSupervisor
from coderoom.services.language_registry import LanguageRegistry
from coderoom.services.sandbox_executor import SandboxExecutor


class FakeExecutor:
    """Hands out handles and lets the test push events through them."""

    def __init__(self):
        self.calls = []
        self.callbacks = {}
        self.inputs = []
        self.fail_with = None

    def start(self, session_id, workspace_path, language_id, source_code, on_event, execution_id=None):
        self.calls.append(('start', execution_id))
        if self.fail_with is not None:
            raise self.fail_with
        handle = ExecutionHandle(session_id=session_id, language=language_id, id=execution_id)
        self.callbacks[handle.id] = on_event
        return handle

    def halt(self, handle):
        self.calls.append(('halt', handle.id))
        handle.stopped = True

    def release(self, handle):
        self.calls.append(('release', handle.id))

    def send_input(self, handle, text):
        if handle is None or handle.stopped:
            return False
        self.inputs.append((handle.id, text))
        return True

    def push(self, handle, event):
        self.callbacks[handle.id](event)


@pytest.fixture
def fake():
    return FakeExecutor()


@pytest.fixture
def supervisor(coordinator, fake):
    return ExecutionSupervisor(coordinator, fake)


class TestSingleRunPerSession:
    def test_new_run_stops_previous_first(self, supervisor, fake, collector):
        first = supervisor.execute('s1', '/tmp/s1', 'python', 'a', collector)
        second = supervisor.execute('s1', '/tmp/s1', 'python', 'b', collector)

        assert fake.calls == [
            ('start', first.id), ('halt', first.id), ('release', first.id), ('start', second.id),
        ]
        assert first.stopped
        assert supervisor.active('s1') is second

    def test_superseded_run_events_are_dropped(self, supervisor, fake, collector):
        first = supervisor.execute('s1', '/tmp/s1', 'python', 'a', collector)
        second = supervisor.execute('s1', '/tmp/s1', 'python', 'b', collector)

        fake.push(first, ExecutionEvent.output(first.id, 'late'))
        fake.push(first, ExecutionEvent.finished(first.id, 'done', exit_code=0))
        fake.push(second, ExecutionEvent.output(second.id, 'fresh'))

        assert [e.text for e in collector.events] == ['fresh']
        assert supervisor.active('s1') is second

    def test_sessions_are_independent(self, supervisor, fake, collector):
        a = supervisor.execute('s1', '/tmp/s1', 'python', 'a', collector)
        b = supervisor.execute('s2', '/tmp/s2', 'python', 'b', collector)

        assert not a.stopped
        assert supervisor.active('s1') is a
        assert supervisor.active('s2') is b


class TestCompletion:
    def test_finished_run_is_untracked(self, supervisor, fake, collector):
        handle = supervisor.execute('s1', '/tmp/s1', 'python', 'a', collector)

        fake.push(handle, ExecutionEvent.output(handle.id, 'hi\n'))
        fake.push(handle, ExecutionEvent.finished(handle.id, 'bye', exit_code=0))

        assert supervisor.active('s1') is None
        assert [e.kind for e in collector.events] == [EventKind.OUTPUT, EventKind.FINISHED]

    def test_nothing_is_relayed_after_finish(self, supervisor, fake, collector):
        handle = supervisor.execute('s1', '/tmp/s1', 'python', 'a', collector)

        fake.push(handle, ExecutionEvent.finished(handle.id, 'bye', exit_code=0))
        fake.push(handle, ExecutionEvent.output(handle.id, 'ghost'))

        assert len(collector.events) == 1

    def test_launch_failure_reports_a_terminal_error(self, supervisor, fake, collector):
        fake.fail_with = SandboxLaunchError('Failed to start execution environment: no docker')

        assert supervisor.execute('s1', '/tmp/s1', 'python', 'a', collector) is None

        (event,) = collector.events
        assert event.kind is EventKind.FINISHED
        assert event.error
        assert event.text == 'Error: Failed to start execution environment: no docker\r\n'
        assert supervisor.active('s1') is None


class TestInputAndStop:
    def test_input_goes_to_current_run(self, supervisor, fake, collector):
        supervisor.execute('s1', '/tmp/s1', 'python', 'a', collector)
        second = supervisor.execute('s1', '/tmp/s1', 'python', 'b', collector)

        assert supervisor.send_input('s1', 'Ada') is True
        assert fake.inputs == [(second.id, 'Ada')]

    def test_input_without_run_is_refused(self, supervisor):
        assert supervisor.send_input('s1', 'Ada') is False

    def test_stop_is_idempotent(self, supervisor, fake, collector):
        handle = supervisor.execute('s1', '/tmp/s1', 'python', 'a', collector)

        assert supervisor.stop('s1') is True
        assert supervisor.stop('s1') is False
        assert handle.stopped
        assert supervisor.active('s1') is None

        fake.push(handle, ExecutionEvent.output(handle.id, 'late'))
        assert collector.events == []


def test_real_run_is_preempted_by_the_next(coordinator, tmp_path, collector):
    supervisor = ExecutionSupervisor(coordinator, SandboxExecutor(LanguageRegistry(), runtime='local'))
    workspace = tmp_path / 's1'

    first = supervisor.execute('s1', workspace, 'python', 'import time\ntime.sleep(30)', collector)
    second = supervisor.execute('s1', workspace, 'python', 'print("second")', collector)
    finished = collector.wait_finished()

    assert first.process.poll() is not None
    assert finished.execution_id == second.id
    assert finished.exit_code == 0
    assert 'second' in collector.text
    assert all(e.execution_id == second.id for e in collector.events if e.kind is not EventKind.OUTPUT)


class SlowReleaseExecutor(FakeExecutor):
    """Container removal that hangs until the test lets it finish."""

    def __init__(self):
        super().__init__()
        self.releasing = threading.Event()
        self.gate = threading.Event()

    def release(self, handle):
        super().release(handle)
        self.releasing.set()
        self.gate.wait(timeout=10)


class TestSlowContainerCleanup:
    @pytest.fixture
    def slow(self):
        return SlowReleaseExecutor()

    @pytest.fixture
    def supervisor(self, coordinator, slow):
        return ExecutionSupervisor(coordinator, slow)

    def test_other_rooms_are_not_blocked_by_preemption(self, supervisor, slow, coordinator,
                                                        presence, transport, collector):
        first = supervisor.execute('s1', '/tmp/s1', 'python', 'a', collector)
        preempt = threading.Thread(
            target=supervisor.execute, args=('s1', '/tmp/s1', 'python', 'b', collector), daemon=True)
        preempt.start()
        assert slow.releasing.wait(timeout=5)

        transport.connect('c9')
        joined = threading.Thread(target=presence.join, args=('other-room', 'c9', 'zed'), daemon=True)
        joined.start()
        joined.join(timeout=1)

        assert not joined.is_alive()
        assert coordinator.rooms['other-room'].members == {'c9'}
        assert supervisor.active('s1') is None
        assert [c[0] for c in slow.calls] == ['start', 'halt', 'release']

        slow.gate.set()
        preempt.join(timeout=5)

        assert slow.calls[:3] == [('start', first.id), ('halt', first.id), ('release', first.id)]
        assert slow.calls[3][0] == 'start'
        assert supervisor.active('s1').id == slow.calls[3][1]

    def test_other_sessions_can_start_while_one_is_cleaning_up(self, supervisor, slow, collector):
        supervisor.execute('s1', '/tmp/s1', 'python', 'a', collector)
        threading.Thread(target=supervisor.stop, args=('s1',), daemon=True).start()
        assert slow.releasing.wait(timeout=5)

        started = threading.Thread(
            target=supervisor.execute, args=('s2', '/tmp/s2', 'python', 'b', collector), daemon=True)
        started.start()
        started.join(timeout=1)

        assert not started.is_alive()
        assert supervisor.active('s2') is not None
        slow.gate.set()
