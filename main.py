from coderoom import create_app
import os

app = create_app()
socketio = app.extensions['coderoom'].socketio

if __name__ == "__main__":
    # Must bind to 0.0.0.0 for Docker
    socketio.run(
        app,
        host='0.0.0.0',  # Listen on all interfaces
        port=int(os.getenv('PORT', '5000')),
        debug=os.getenv('DEBUG', 'False').lower() == 'true',
        allow_unsafe_werkzeug=True
    )
