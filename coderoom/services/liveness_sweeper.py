import logging
import time

from coderoom.services.presence_service import ConnectionRecord

logger = logging.getLogger(__name__)


class LivenessSweeper:
    """Periodic repair of presence state against the connections that actually exist.

    Both passes repair through PresenceService.leave_or_disconnect, the same
    routine a real disconnect uses, so they are safe to run alongside live
    join and leave events.
    """

    def __init__(self, presence, inactivity_timeout=30, stale_threshold=120,
                 fast_interval=15, deep_interval=120, clock=time.time):
        self.presence = presence
        self.state = presence.state
        self.transport = presence.transport
        self.inactivity_timeout = inactivity_timeout
        self.stale_threshold = stale_threshold
        self.fast_interval = fast_interval
        self.deep_interval = deep_interval
        self.clock = clock
        self._running = False

    @classmethod
    def from_config(cls, presence, config, clock=time.time):
        return cls(
            presence,
            inactivity_timeout=config['INACTIVITY_TIMEOUT'],
            stale_threshold=config['STALE_USERNAME_THRESHOLD'],
            fast_interval=config['FAST_SWEEP_INTERVAL'],
            deep_interval=config['DEEP_SWEEP_INTERVAL'],
            clock=clock,
        )

    def start(self, socketio):
        self._running = True
        socketio.start_background_task(self._loop, socketio, self.fast_interval, self.fast_sweep)
        socketio.start_background_task(self._loop, socketio, self.deep_interval, self.deep_sweep)
        logger.info(f"Liveness sweeps scheduled every {self.fast_interval}s and {self.deep_interval}s")

    def stop(self):
        self._running = False

    def _loop(self, socketio, interval, sweep):
        while self._running:
            socketio.sleep(interval)
            if not self._running:
                break
            try:
                sweep()
            except Exception:
                logger.exception(f"{sweep.__name__} failed")

    def fast_sweep(self, now=None):
        """Remove members whose connection is gone or who went quiet too long."""
        now = self.clock() if now is None else now
        removed = []

        with self.state.lock:
            for room_id, room in list(self.state.rooms.items()):
                for connection_id in list(room.members):
                    if self.state.rooms.get(room_id) is not room or connection_id not in room.members:
                        continue

                    user = self.state.users.get(connection_id)
                    connected = self.transport.is_connected(connection_id)
                    inactive = user is None or now - user.last_activity > self.inactivity_timeout
                    if connected and not inactive:
                        continue

                    username = user.username if user else None
                    logger.info(f"Cleaning up {'inactive' if connected else 'disconnected'} user "
                                f"{username} ({connection_id}) from room {room_id}")
                    if connected:
                        self.transport.disconnect(connection_id)
                    self.presence.leave_or_disconnect(ConnectionRecord(connection_id, room_id, username))
                    removed.append(connection_id)

                self._drop_if_empty(room_id, room)

        return removed

    def deep_sweep(self, now=None):
        """Cross-check the username registry, room membership and live connections."""
        now = self.clock() if now is None else now
        repaired = []
        logger.info("Performing deep cleanup...")

        with self.state.lock:
            # 1. username records pointing at gone or stale connections
            for username, record in list(self.state.usernames.items()):
                if self.state.usernames.get(username) is not record:
                    continue
                connected = self.transport.is_connected(record.connection_id)
                stale = now - record.last_updated > self.stale_threshold
                if connected and not stale:
                    continue

                logger.info(f"Removing stale/disconnected username record for {username} "
                            f"(connection {record.connection_id} {'exists' if connected else 'missing'})")
                self._repair(ConnectionRecord(record.connection_id, record.room_id, username), connected)
                if self.state.usernames.get(username) is record:
                    del self.state.usernames[username]
                repaired.append(record.connection_id)

            # 2. room members whose registry entry is missing or owned by another connection
            for room_id, room in list(self.state.rooms.items()):
                for connection_id in list(room.members):
                    if self.state.rooms.get(room_id) is not room or connection_id not in room.members:
                        continue

                    user = self.state.users.get(connection_id)
                    record = self.state.usernames.get(user.username) if user else None
                    connected = self.transport.is_connected(connection_id)
                    if connected and record is not None and record.connection_id == connection_id:
                        continue

                    username = user.username if user else None
                    logger.info(f"Deep clean: mismatch or missing connection/username data for "
                                f"{username} ({connection_id}). Cleaning up.")
                    self._repair(ConnectionRecord(connection_id, room_id, username), connected)
                    repaired.append(connection_id)

                self._drop_if_empty(room_id, room)

            # 3. users that no room lists any more
            for connection_id, user in list(self.state.users.items()):
                room = self.state.rooms.get(user.current_room_id)
                if room is not None and connection_id in room.members:
                    continue
                logger.info(f"Deep clean: {user.username} ({connection_id}) is not in any room. Cleaning up.")
                self._repair(ConnectionRecord(connection_id, user.current_room_id, user.username),
                             self.transport.is_connected(connection_id))
                repaired.append(connection_id)

        logger.info("Deep cleanup finished.")
        return repaired

    def _repair(self, record, connected):
        if connected:
            self.transport.disconnect(record.connection_id)
        self.presence.leave_or_disconnect(record)

    def _drop_if_empty(self, room_id, room):
        if self.state.rooms.get(room_id) is room and not room.members:
            del self.state.rooms[room_id]
            logger.info(f"Room {room_id} deleted (empty) during cleanup")
