import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _ms(seconds):
    return int(seconds * 1000)


@dataclass
class User:
    id: str
    username: str
    connection_id: str
    current_room_id: Optional[str] = None
    media_status: dict = field(default_factory=lambda: {'audio': False, 'video': False})
    last_activity: float = field(default_factory=time.time)
    joined_at: float = field(default_factory=time.time)
    last_message_at: Optional[float] = None

    def touch(self, now=None):
        self.last_activity = time.time() if now is None else now

    def set_media_status(self, status, now=None):
        self.media_status = {**self.media_status, **status}
        self.touch(now)

    def get_info(self):
        return {
            'id': self.id,
            'username': self.username,
            'socketId': self.connection_id,
            'currentRoomId': self.current_room_id,
            'mediaStatus': dict(self.media_status),
            'lastActivity': _ms(self.last_activity),
            'joinTime': _ms(self.joined_at),
        }


@dataclass(frozen=True)
class ChatMessage:
    room_id: str
    sender_name: str
    content: str
    sender_user_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def get_data(self):
        return {
            'id': self.id,
            'roomId': self.room_id,
            'sender': self.sender_name,
            'senderUsername': self.sender_name,
            'senderUserId': self.sender_user_id,
            'content': self.content,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class Room:
    # members holds connection ids; the User records live in the coordinator's arena
    id: str
    history_limit: int = 50
    members: set = field(default_factory=set)
    messages: deque = None

    def __post_init__(self):
        if self.messages is None:
            self.messages = deque(maxlen=self.history_limit)


@dataclass
class UsernameRecord:
    connection_id: str
    room_id: str
    last_updated: float = field(default_factory=time.time)
