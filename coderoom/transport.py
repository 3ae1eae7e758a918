class Transport:
    """What the presence and execution paths need from a connection server."""

    def emit(self, event, data=None, to=None, skip=None):
        raise NotImplementedError

    def enter_room(self, connection_id, room):
        raise NotImplementedError

    def leave_room(self, connection_id, room):
        raise NotImplementedError

    def disconnect(self, connection_id):
        raise NotImplementedError

    def is_connected(self, connection_id):
        raise NotImplementedError


class SocketIOTransport(Transport):
    """Transport bound to one namespace of a Flask-SocketIO server."""

    def __init__(self, socketio, namespace='/'):
        self.socketio = socketio
        self.namespace = namespace

    def emit(self, event, data=None, to=None, skip=None):
        self.socketio.emit(event, data, to=to, skip_sid=skip, namespace=self.namespace)

    def enter_room(self, connection_id, room):
        self.socketio.server.enter_room(connection_id, room, namespace=self.namespace)

    def leave_room(self, connection_id, room):
        self.socketio.server.leave_room(connection_id, room, namespace=self.namespace)

    def disconnect(self, connection_id):
        if not self.is_connected(connection_id):
            return
        self.socketio.server.disconnect(connection_id, namespace=self.namespace)

    def is_connected(self, connection_id):
        try:
            return self.socketio.server.manager.is_connected(connection_id, self.namespace)
        except KeyError:
            return False
