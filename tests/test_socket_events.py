import time

import pytest

from coderoom.services.presence_service import DUPLICATE_LOGIN_MESSAGE

PRESENCE = '/webrtc'


@pytest.fixture
def socketio(coderoom):
    return coderoom.socketio


@pytest.fixture
def session_id(http):
    response = http.post('/api/sessions', json={'language': 'python', 'code': ''})
    return response.get_json()['sessionId']


def names(received):
    return [packet['name'] for packet in received]


def args_of(received, name):
    return [packet['args'][0] for packet in received if packet['name'] == name]


def collect_until(client, name, timeout=15):
    received = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        received.extend(client.get_received())
        if name in names(received):
            return received
        time.sleep(0.05)
    raise AssertionError(f"{name} not received; got {names(received)}")


class TestExecutionPath:
    def test_join_unknown_session_is_an_error(self, app, socketio):
        client = socketio.test_client(app)

        client.emit('join', {'sessionId': 'missing', 'username': 'ada'})

        assert args_of(client.get_received(), 'error') == [{'message': 'Session not found'}]

    def test_join_announces_user_to_others(self, app, socketio, session_id):
        ada = socketio.test_client(app)
        bob = socketio.test_client(app)

        ada.emit('join', {'sessionId': session_id, 'username': 'ada'})
        ada.get_received()
        bob.emit('join', {'sessionId': session_id, 'username': 'bob'})

        (joined,) = args_of(bob.get_received(), 'joined')
        assert joined['sessionId'] == session_id
        assert joined['language'] == 'python'
        assert sorted(u['username'] for u in joined['users']) == ['ada', 'bob']
        (announced,) = args_of(ada.get_received(), 'userJoined')
        assert announced['user']['username'] == 'bob'

    def test_execute_streams_output_to_the_room(self, app, socketio, session_id):
        ada = socketio.test_client(app)
        bob = socketio.test_client(app)
        ada.emit('join', {'sessionId': session_id, 'username': 'ada'})
        bob.emit('join', {'sessionId': session_id, 'username': 'bob'})
        bob.get_received()

        ada.emit('execute', {'sessionId': session_id, 'code': 'print(1)'})

        received = collect_until(bob, 'executionEnded')
        assert args_of(received, 'executionStarted')[0]['username'] == 'ada'
        output = ''.join(args_of(received, 'output'))
        assert 'Running python code...' in output
        assert '1\n' in output
        assert 'Process exited with code 0' in output
        assert args_of(received, 'executionEnded') == [{}]

    def test_execute_requires_membership(self, app, socketio, session_id):
        client = socketio.test_client(app)

        client.emit('execute', {'sessionId': session_id, 'code': 'print(1)'})

        assert args_of(client.get_received(), 'error') == [{'message': 'User not identified in session'}]

    def test_input_without_running_program(self, app, socketio, session_id):
        client = socketio.test_client(app)
        client.emit('join', {'sessionId': session_id, 'username': 'ada'})
        client.get_received()

        client.emit('input', {'sessionId': session_id, 'input': 'hello'})

        assert args_of(client.get_received(), 'output') == ['No active process to receive input\r\n']

    def test_input_reaches_the_waiting_program(self, app, socketio, session_id):
        ada = socketio.test_client(app)
        bob = socketio.test_client(app)
        ada.emit('join', {'sessionId': session_id, 'username': 'ada'})
        bob.emit('join', {'sessionId': session_id, 'username': 'bob'})
        code = 'name = input("What is your name? ")\nprint("Hello, " + name)'

        ada.emit('execute', {'sessionId': session_id, 'code': code})
        collect_until(ada, 'waitingForInput')
        bob.get_received()
        ada.emit('input', {'sessionId': session_id, 'input': 'Grace'})

        received = collect_until(bob, 'executionEnded')
        assert args_of(received, 'userInput')[0]['input'] == 'Grace'
        assert 'Hello, Grace' in ''.join(args_of(received, 'output'))

    def test_chat_message_is_broadcast(self, app, socketio, session_id):
        ada = socketio.test_client(app)
        ada.emit('join', {'sessionId': session_id, 'username': 'ada'})
        ada.get_received()

        ada.emit('chatMessage', {'sessionId': session_id, 'message': '  hi all  '})

        (message,) = args_of(ada.get_received(), 'newChatMessage')
        assert message['content'] == 'hi all'
        assert message['sender'] == 'ada'

    def test_disconnect_removes_user_from_roster(self, app, socketio, coderoom, session_id):
        ada = socketio.test_client(app)
        bob = socketio.test_client(app)
        ada.emit('join', {'sessionId': session_id, 'username': 'ada'})
        bob.emit('join', {'sessionId': session_id, 'username': 'bob'})
        bob.get_received()

        ada.disconnect()

        (left,) = args_of(bob.get_received(), 'userLeft')
        assert left['user']['username'] == 'ada'
        assert [u['username'] for u in coderoom.sessions.get_users(session_id)] == ['bob']


class TestPresencePath:
    def test_join_room_sends_roster_and_history(self, app, socketio):
        alice = socketio.test_client(app, namespace=PRESENCE)

        alice.emit('join-room', 'r1', 'alice', namespace=PRESENCE)

        received = alice.get_received(PRESENCE)
        assert [u['username'] for u in args_of(received, 'user-list')[0]] == ['alice']
        assert args_of(received, 'chat-history') == [[]]

    def test_invalid_username_is_rejected_and_closed(self, app, socketio):
        client = socketio.test_client(app, namespace=PRESENCE)

        client.emit('join-room', 'r1', 'not-valid', namespace=PRESENCE)

        received = [p for p in client.queue if p['namespace'] == PRESENCE]
        assert args_of(received, 'error') == [{'message': 'Invalid username format'}]
        assert not client.is_connected(PRESENCE)

    def test_duplicate_username_evicts_older_connection(self, app, socketio, coderoom):
        first = socketio.test_client(app, namespace=PRESENCE)
        second = socketio.test_client(app, namespace=PRESENCE)
        first.emit('join-room', 'r1', 'bob', namespace=PRESENCE)
        first.queue.clear()

        second.emit('join-room', 'r1', 'bob', namespace=PRESENCE)

        evicted = [p for p in first.queue if p['namespace'] == PRESENCE]
        assert args_of(evicted, 'error') == [{'message': DUPLICATE_LOGIN_MESSAGE}]
        assert not first.is_connected(PRESENCE)

        user_list = args_of(second.get_received(PRESENCE), 'user-list')[-1]
        assert len(user_list) == 1
        assert coderoom.coordinator.rooms['r1'].members == {user_list[0]['id']}

    def test_chat_reaches_the_whole_room(self, app, socketio):
        alice = socketio.test_client(app, namespace=PRESENCE)
        bob = socketio.test_client(app, namespace=PRESENCE)
        alice.emit('join-room', 'r1', 'alice', namespace=PRESENCE)
        bob.emit('join-room', 'r1', 'bob', namespace=PRESENCE)
        alice.get_received(PRESENCE)
        bob.get_received(PRESENCE)

        alice.emit('chat', 'hello bob', namespace=PRESENCE)

        for client in (alice, bob):
            (message,) = args_of(client.get_received(PRESENCE), 'chat')
            assert message['content'] == 'hello bob'
            assert message['senderUsername'] == 'alice'

    def test_leave_notifies_remaining_members(self, app, socketio, coderoom):
        alice = socketio.test_client(app, namespace=PRESENCE)
        bob = socketio.test_client(app, namespace=PRESENCE)
        alice.emit('join-room', 'r1', 'alice', namespace=PRESENCE)
        bob.emit('join-room', 'r1', 'bob', namespace=PRESENCE)
        bob.get_received(PRESENCE)

        alice.emit('leave', namespace=PRESENCE)

        (left,) = args_of(bob.get_received(PRESENCE), 'user-left')
        assert left['username'] == 'alice'
        assert 'alice' not in coderoom.coordinator.usernames
