import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class Document:
    # content is a snapshot only, the collaborative sync service owns the real text
    language: str
    content: str = ''
    session_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def update_content(self, content):
        self.content = content
        self.updated_at = datetime.utcnow()

    def get_info(self):
        return {
            "id": self.id,
            "language": self.language,
            "sessionId": self.session_id,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass
class CodeSession:
    document_id: str
    workspace_path: str = ''
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.utcnow)

    def get_info(self):
        return {
            "id": self.id,
            "documentId": self.document_id,
            "path": self.workspace_path,
            "createdAt": self.created_at.isoformat(),
        }
