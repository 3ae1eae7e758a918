class CodeRoomError(Exception):
    """Base class for errors surfaced to a single connection or request."""

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(CodeRoomError):
    """Malformed username, chat message or media payload."""


class NotFoundError(CodeRoomError):
    """Unknown session, document or language."""


class SandboxLaunchError(CodeRoomError):
    """The runtime process could not be started."""


class UnsupportedLanguage(SandboxLaunchError, NotFoundError):
    def __init__(self, language_id):
        super().__init__(f'Language not supported: {language_id}')
        self.language_id = language_id


class DirectoryIOError(CodeRoomError):
    """Workspace directory could not be created."""
