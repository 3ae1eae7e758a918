import logging
import time
from dataclasses import dataclass
from typing import Optional

from coderoom.errors import ValidationError
from coderoom.models.presence_model import ChatMessage, Room, User, UsernameRecord

logger = logging.getLogger(__name__)

DUPLICATE_LOGIN_MESSAGE = 'You have connected from another location.'


@dataclass(frozen=True)
class ConnectionRecord:
    """Identity of a connection, usable after the live socket is gone."""
    connection_id: str
    room_id: Optional[str] = None
    username: Optional[str] = None


class PresenceService:
    """Rooms, members, the global username registry and signaling relay."""

    def __init__(self, state, transport, history_limit=50, max_message_length=1000,
                 min_message_interval=0.5, max_username_length=30, clock=time.time):
        self.state = state
        self.transport = transport
        self.history_limit = history_limit
        self.max_message_length = max_message_length
        self.min_message_interval = min_message_interval
        self.max_username_length = max_username_length
        self.clock = clock

    @classmethod
    def from_config(cls, state, transport, config, clock=time.time):
        return cls(
            state,
            transport,
            history_limit=config['CHAT_HISTORY_LIMIT'],
            max_message_length=config['CHAT_MESSAGE_MAX_LENGTH'],
            min_message_interval=config['CHAT_MIN_INTERVAL'],
            max_username_length=config['USERNAME_MAX_LENGTH'],
            clock=clock,
        )

    def validate_username(self, raw_username):
        if not isinstance(raw_username, str) or not raw_username.strip():
            raise ValidationError('Valid username is required')
        username = raw_username.strip()
        # generated connection ids contain these, keep them out of the name space
        if '-' in username or '_' in username or len(username) > self.max_username_length:
            raise ValidationError('Invalid username format')
        return username

    def find_user(self, connection_id):
        return self.state.users.get(connection_id)

    def members(self, room_id):
        room = self.state.rooms.get(room_id)
        if room is None:
            return []
        return [self.state.users[c] for c in room.members if c in self.state.users]

    def join(self, room_id, connection_id, raw_username):
        """Register ``connection_id`` in ``room_id``; raises ValidationError on a bad name."""
        username = self.validate_username(raw_username)

        with self.state.lock:
            logger.info(f"{username} ({connection_id}) attempting to join room {room_id}")

            self.disconnect_duplicate_usernames(username, connection_id)

            user = self.state.users.get(connection_id)
            if user is not None and user.current_room_id != room_id:
                # same connection switching rooms
                self.leave_or_disconnect(connection_id)
                user = None

            room = self.state.rooms.get(room_id)
            if room is None:
                room = Room(room_id, history_limit=self.history_limit)
                self.state.rooms[room_id] = room
                logger.info(f"Initialized room {room_id}")

            now = self.clock()
            announce = True
            if user is None:
                user = User(
                    id=connection_id,
                    username=username,
                    connection_id=connection_id,
                    current_room_id=room_id,
                    last_activity=now,
                    joined_at=now,
                )
                self.state.users[connection_id] = user
            else:
                # re-sent join for the room it is already in
                announce = user.username != username
                old = self.state.usernames.get(user.username)
                if announce and old is not None and old.connection_id == connection_id:
                    del self.state.usernames[user.username]
                user.username = username
                user.touch(now)

            self.state.usernames[username] = UsernameRecord(connection_id, room_id, now)
            room.members.add(connection_id)
            self.transport.enter_room(connection_id, room_id)

            self.prune_room(room_id, keep=connection_id)

            logger.info(f"Room {room_id} users: {[f'{u.username} ({u.id})' for u in self.members(room_id)]}")

            self.transport.emit('user-list', [u.get_info() for u in self.members(room_id)], to=connection_id)
            self.transport.emit('chat-history', [m.get_data() for m in room.messages], to=connection_id)
            if announce:
                self.transport.emit('user-joined', user.get_info(), to=room_id, skip=connection_id)
            return user

    def disconnect_duplicate_usernames(self, username, connection_id):
        """Evict whichever other connection currently holds ``username``."""
        with self.state.lock:
            record = self.state.usernames.get(username)
            if record is None or record.connection_id == connection_id:
                return False

            old_connection = record.connection_id
            logger.info(f"Found duplicate user {username} ({old_connection}). Disconnecting old connection.")

            if self.transport.is_connected(old_connection):
                self.transport.emit('error', {'message': DUPLICATE_LOGIN_MESSAGE}, to=old_connection)
                self.transport.disconnect(old_connection)
            else:
                logger.info(f"Old connection {old_connection} for {username} not found, cleaning up data.")

            self.leave_or_disconnect(ConnectionRecord(old_connection, record.room_id, username))

            if self.state.usernames.get(username) is record:
                del self.state.usernames[username]
            return True

    def leave_or_disconnect(self, record):
        """Remove a connection from presence state. Safe for unknown or already removed connections.

        ``record`` is a ConnectionRecord or a bare connection id.
        """
        if isinstance(record, str):
            record = ConnectionRecord(record)

        with self.state.lock:
            connection_id = record.connection_id
            user = self.state.users.pop(connection_id, None)
            room_id = user.current_room_id if user else record.room_id
            username = user.username if user else record.username
            removed = user is not None

            room = self.state.rooms.get(room_id) if room_id else None
            if room is not None and connection_id in room.members:
                room.members.discard(connection_id)
                removed = True
                if self.transport.is_connected(connection_id):
                    self.transport.leave_room(connection_id, room_id)
                logger.info(f"Removed {username} ({connection_id}) from room {room_id}")

                self.transport.emit('user-left', {'id': connection_id, 'username': username}, to=room_id)

                if not room.members:
                    del self.state.rooms[room_id]
                    logger.info(f"Room {room_id} deleted (empty)")

            current = self.state.usernames.get(username) if username else None
            if current is not None and current.connection_id == connection_id:
                del self.state.usernames[username]
                logger.info(f"Removed username tracking for {username}")

            return removed

    def prune_room(self, room_id, keep=None):
        """Drop members of one room whose connection no longer exists."""
        with self.state.lock:
            room = self.state.rooms.get(room_id)
            if room is None:
                return
            for connection_id in list(room.members):
                if connection_id == keep or self.transport.is_connected(connection_id):
                    continue
                user = self.state.users.get(connection_id)
                logger.info(f"Cleaning up stale connection {connection_id} in room {room_id}")
                self.leave_or_disconnect(ConnectionRecord(connection_id, room_id, user.username if user else None))

    def relay_signal(self, from_connection_id, target_connection_id, payload):
        sender = self.state.users.get(from_connection_id)
        if sender is None or not target_connection_id or not isinstance(payload, dict):
            return False

        # ICE candidates are too chatty to log
        if payload.get('type') != 'ice-candidate':
            logger.info(f"Signal {payload.get('type')} from {sender.username} ({from_connection_id}) to {target_connection_id}")

        self.transport.emit('signal', {
            **payload,
            'from': from_connection_id,
            'fromUsername': sender.username,
        }, to=target_connection_id)
        return True

    def post_chat(self, connection_id, raw_message):
        with self.state.lock:
            user = self.state.users.get(connection_id)
            room = self.state.rooms.get(user.current_room_id) if user else None
            if room is None:
                logger.warning(f"Chat message from unknown user/room: {connection_id}")
                return None

            if not isinstance(raw_message, str):
                raise ValidationError('Invalid chat message format')

            content = raw_message.strip()[:self.max_message_length]
            if not content:
                return None

            now = self.clock()
            if user.last_message_at is not None and now - user.last_message_at < self.min_message_interval:
                return None
            user.last_message_at = now
            self._touch(user, now)

            message = ChatMessage(room.id, user.username, content, user.id)
            room.messages.append(message)
            self.transport.emit('chat', message.get_data(), to=room.id)
            return message

    def update_media(self, connection_id, status):
        with self.state.lock:
            user = self.state.users.get(connection_id)
            if user is None or user.current_room_id is None:
                return None

            changes = {}
            if isinstance(status, dict):
                changes = {key: status[key] for key in ('audio', 'video') if isinstance(status.get(key), bool)}
            if not changes:
                logger.warning(f"Invalid media status received from {user.username}")
                return None

            now = self.clock()
            user.set_media_status(changes, now)
            self._touch(user, now)

            self.transport.emit('media', {
                'userId': user.id,
                'username': user.username,
                'audio': user.media_status['audio'],
                'video': user.media_status['video'],
            }, to=user.current_room_id, skip=connection_id)
            return user.media_status

    def heartbeat(self, connection_id):
        with self.state.lock:
            user = self.state.users.get(connection_id)
            if user is not None:
                self._touch(user, self.clock())

    def _touch(self, user, now):
        user.touch(now)
        record = self.state.usernames.get(user.username)
        if record is not None and record.connection_id == user.connection_id:
            record.last_updated = now
