import logging
import shutil
from pathlib import Path

from coderoom.errors import DirectoryIOError
from coderoom.models.code_sessions_model import CodeSession, Document

logger = logging.getLogger(__name__)


class SessionService:
    def __init__(self, state, workspace_root):
        self.state = state
        self.workspace_root = Path(workspace_root)

    def create_session(self, language='python', initial_code=''):
        document = Document(language=language, content=initial_code)
        session = CodeSession(document_id=document.id)
        session.workspace_path = str(self.workspace_root / session.id)

        # nothing is registered until the workspace exists
        try:
            Path(session.workspace_path).mkdir(parents=True)
        except OSError as e:
            logger.error(f"❌ Error creating session directory {session.workspace_path}: {e}")
            raise DirectoryIOError(f"Could not create session workspace: {e}") from e

        with self.state.lock:
            document.session_id = session.id
            self.state.documents[document.id] = document
            self.state.sessions[session.id] = session
            self.state.session_users[session.id] = {}

        logger.info(f"📝 Created session {session.id} linked to document {document.id} ({language})")
        return session, document

    #get a coding session by session_id
    def get_session(self, session_id):
        if not isinstance(session_id, str):
            return None
        return self.state.sessions.get(session_id)

    def get_document(self, document_id):
        if not isinstance(document_id, str):
            return None
        return self.state.documents.get(document_id)

    def end_session(self, session_id):
        with self.state.lock:
            session = self.state.sessions.get(session_id)
            if session is None:
                return False

            try:
                if Path(session.workspace_path).exists():
                    shutil.rmtree(session.workspace_path)
            except OSError as e:
                logger.error(f"Error removing session directory {session.workspace_path}: {e}")

            if self.state.documents.pop(session.document_id, None) is not None:
                logger.info(f"Removed document {session.document_id}")

            del self.state.sessions[session_id]
            self.state.session_users.pop(session_id, None)
            for connection_id, joined in list(self.state.session_connections.items()):
                if joined == session_id:
                    del self.state.session_connections[connection_id]

        logger.info(f"Ended session {session_id}")
        return True

    #session roster (execution path)
    def add_user(self, session_id, user):
        """Add a user to a session roster; False if the session is gone or the id is already there."""
        with self.state.lock:
            roster = self.state.session_users.get(session_id)
            if roster is None or user.id in roster:
                return False
            roster[user.id] = user
            user.current_room_id = session_id
            user.touch()
            return True

    def find_user(self, session_id, user_id):
        if not isinstance(session_id, str):
            return None
        return self.state.session_users.get(session_id, {}).get(user_id)

    def remove_user(self, session_id, user_id):
        with self.state.lock:
            roster = self.state.session_users.get(session_id)
            if not roster or user_id not in roster:
                return None
            user = roster.pop(user_id)
            user.current_room_id = None
            return user

    def get_users(self, session_id):
        return list(self.state.session_users.get(session_id, {}).values())
