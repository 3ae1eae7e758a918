from flask_socketio import SocketIO


def init_socketio(app):
    """Create the Socket.IO server for this Flask app"""
    options = {
        'async_mode': app.config['SOCKETIO_ASYNC_MODE'],
        'cors_allowed_origins': app.config['CORS_ALLOWED_ORIGINS'],
    }
    # Redis fan-out lets several server processes emit to the same rooms
    if app.config['SOCKETIO_MESSAGE_QUEUE']:
        options['message_queue'] = app.config['SOCKETIO_MESSAGE_QUEUE']

    return SocketIO(app, **options)
