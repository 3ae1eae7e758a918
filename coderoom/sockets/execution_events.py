import logging

from flask import request
from flask_socketio import emit, join_room, leave_room

from coderoom.models.execution_model import EventKind
from coderoom.models.presence_model import ChatMessage, User

logger = logging.getLogger(__name__)


def room_relay(socketio, session_id, namespace='/'):
    """Forward one run's events to everyone in the session room."""
    def on_event(event):
        if event.text:
            socketio.emit('output', event.text, to=session_id, namespace=namespace)
        if event.kind is EventKind.WAITING_FOR_INPUT:
            socketio.emit('waitingForInput', True, to=session_id, namespace=namespace)
        elif event.kind is EventKind.FINISHED:
            logger.info(f"Execution finished for session {session_id}")
            socketio.emit('executionEnded', {'error': True} if event.error else {},
                          to=session_id, namespace=namespace)
    return on_event


def register_execution_events(socketio, coderoom, namespace='/'):
    state = coderoom.coordinator
    sessions = coderoom.sessions
    supervisor = coderoom.supervisor

    def _payload(data):
        return data if isinstance(data, dict) else {}

    def _leave_session(connection_id):
        session_id = state.session_connections.pop(connection_id, None)
        if session_id is None:
            return None, None
        removed = sessions.remove_user(session_id, connection_id)
        if removed is not None:
            emit('userLeft', {
                'user': removed.get_info(),
                'users': [u.get_info() for u in sessions.get_users(session_id)],
            }, to=session_id, include_self=False)
        return session_id, removed

    @socketio.on('join', namespace=namespace)
    def on_join(data):
        data = _payload(data)
        session_id = data.get('sessionId')
        username = data.get('username')
        sid = request.sid

        with state.lock:
            session = sessions.get_session(session_id)
            if session is None:
                emit('error', {'message': 'Session not found'})
                return

            previous = state.session_connections.get(sid)
            if previous is not None and previous != session_id:
                _leave_session(sid)
                leave_room(previous)

            display_name = username.strip() if isinstance(username, str) and username.strip() else f"User-{sid[:4]}"
            user = User(id=sid, username=display_name, connection_id=sid, current_room_id=session_id)

            if not sessions.add_user(session_id, user):
                existing = sessions.find_user(session_id, sid)
                if existing is None:
                    emit('error', {'message': 'Failed to add user to session'})
                    return
                logger.warning(f"User {sid} already in session {session_id}, reusing entry")
                existing.connection_id = sid
                existing.touch()
                user = existing

            join_room(session_id)
            state.session_connections[sid] = session_id

            document = sessions.get_document(session.document_id)
            users = [u.get_info() for u in sessions.get_users(session_id)]

            emit('joined', {
                'sessionId': session.id,
                'documentId': session.document_id,
                'language': document.language if document else None,
                'users': users,
            })
            emit('userJoined', {'user': user.get_info(), 'users': users}, to=session_id, include_self=False)

        logger.info(f"User {user.username} ({user.id}) joined session {session_id}")

    @socketio.on('execute', namespace=namespace)
    def on_execute(data):
        data = _payload(data)
        session_id = data.get('sessionId')
        code = data.get('code')
        sid = request.sid

        with state.lock:
            session = sessions.get_session(session_id)
            if session is None:
                emit('error', {'message': 'Session not found'})
                return
            user = sessions.find_user(session_id, sid)
            if user is None:
                emit('error', {'message': 'User not identified in session'})
                return
            document = sessions.get_document(session.document_id)
            if document is None:
                emit('error', {'message': 'Associated document not found'})
                return
            if not isinstance(code, str):
                emit('error', {'message': 'Code must be a string'})
                return

            # snapshot only; the sync service holds the live text
            document.update_content(code)

            emit('executionStarted', {'userId': user.id, 'username': user.username}, to=session_id)
            workspace_path = session.workspace_path
            language = document.language

        # outside the coordinator lock: preempting a run may wait on the container engine
        logger.info(f"Executing code for session {session_id}, language: {language}")
        supervisor.execute(
            session_id,
            workspace_path,
            language,
            code,
            room_relay(socketio, session_id, namespace),
        )

    @socketio.on('input', namespace=namespace)
    def on_input(data):
        data = _payload(data)
        session_id = data.get('sessionId')
        text = data.get('input')
        sid = request.sid

        with state.lock:
            if sessions.get_session(session_id) is None:
                emit('error', {'message': 'Session not found'})
                return
            user = sessions.find_user(session_id, sid)
            if user is None:
                emit('error', {'message': 'User not identified'})
                return
            if not isinstance(text, str):
                emit('error', {'message': 'Input must be a string'})
                return

            if supervisor.active(session_id) is None:
                emit('output', 'No active process to receive input\r\n')
                return

            if supervisor.send_input(session_id, text):
                emit('userInput', {
                    'input': text,
                    'userId': user.id,
                    'username': user.username,
                }, to=session_id, include_self=False)
            else:
                emit('output', 'Failed to send input to process\r\n')

    @socketio.on('chatMessage', namespace=namespace)
    def on_chat_message(data):
        data = _payload(data)
        session_id = data.get('sessionId')
        message = data.get('message')
        user = sessions.find_user(session_id, request.sid) if session_id else None

        if user is None or not isinstance(message, str):
            logger.warning(f"Invalid chat message received from {request.sid}")
            return

        content = message.strip()[:coderoom.presence.max_message_length]
        if not content:
            return

        chat = ChatMessage(session_id, user.username, content, user.id)
        emit('newChatMessage', chat.get_data(), to=session_id)

    @socketio.on('disconnect', namespace=namespace)
    def on_disconnect(reason=None):
        sid = request.sid
        with state.lock:
            session_id, removed = _leave_session(sid)
        # a running program keeps going after its author leaves
        if removed is not None:
            logger.info(f"User {removed.username} ({sid}) disconnected from session {session_id}")
        else:
            logger.info(f"Client disconnected: {sid} (was not in a session)")
