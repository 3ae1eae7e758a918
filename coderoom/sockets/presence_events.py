import logging

from flask import request
from flask_socketio import disconnect, emit

from coderoom.errors import ValidationError

logger = logging.getLogger(__name__)


def register_presence_events(socketio, coderoom, namespace='/webrtc'):
    presence = coderoom.presence

    @socketio.on('connect', namespace=namespace)
    def on_connect(auth=None):
        logger.info(f"Presence connection opened: {request.sid}")

    @socketio.on('join-room', namespace=namespace)
    def on_join_room(room_id=None, username=None):
        if not isinstance(room_id, str) or not room_id.strip():
            emit('error', {'message': 'Valid room id is required'})
            return

        try:
            presence.join(room_id, request.sid, username)
        except ValidationError as e:
            logger.info(f"Rejecting join from {request.sid}: {e.message}")
            emit('error', {'message': e.message})
            disconnect()

    @socketio.on('signal', namespace=namespace)
    def on_signal(data):
        if not isinstance(data, dict):
            return
        presence.relay_signal(request.sid, data.get('to'), data)

    @socketio.on('chat', namespace=namespace)
    def on_chat(message):
        try:
            presence.post_chat(request.sid, message)
        except ValidationError as e:
            emit('error', {'message': e.message})

    @socketio.on('media', namespace=namespace)
    def on_media(status):
        presence.update_media(request.sid, status)

    @socketio.on('heartbeat', namespace=namespace)
    def on_heartbeat(*args):
        presence.heartbeat(request.sid)

    @socketio.on('leave', namespace=namespace)
    def on_leave(*args):
        logger.info(f"Connection {request.sid} leaving its room")
        presence.leave_or_disconnect(request.sid)

    @socketio.on('disconnect', namespace=namespace)
    def on_disconnect(reason=None):
        logger.info(f"Presence connection closed: {request.sid}")
        presence.leave_or_disconnect(request.sid)
