"""
Conversation management service.
Handles chat sessions and their append-only message history.
"""
from typing import Any, Dict, List, Optional, Tuple

from ..db.repositories import ConversationRepository, MessageRecord, SessionRecord
from ..errors import MessageOrderError, SessionNotFoundError
from ..logging_config import logger
from ..models import MessageRole

SESSION_TITLE_CHARS = 50


def session_title(first_message: str) -> str:
    """First 50 characters of the opening message, with '...' if cut."""
    title = first_message[:SESSION_TITLE_CHARS]
    return title + "..." if len(first_message) > SESSION_TITLE_CHARS else title


class ActiveSession:
    """
    A session that exists in the store. Messages are appended strictly in
    order, and an assistant message must answer a preceding user message.
    """

    def __init__(self, repository: ConversationRepository, record: SessionRecord, created: bool = False):
        self.repository = repository
        self.record = record
        self.created = created
        self._awaiting_answer = False

    @property
    def id(self) -> int:
        return self.record.id

    @property
    def document_id(self) -> str:
        return self.record.document_id

    def append_user(self, content: str) -> MessageRecord:
        if self._awaiting_answer:
            raise MessageOrderError(f"Session {self.id} already has an unanswered user message")
        message = self.repository.insert_message(self.id, MessageRole.USER, content)
        self._awaiting_answer = True
        logger.debug("Stored message", session_id=self.id, role="user", message_id=message.id)
        return message

    def append_assistant(self, content: str, citations: Optional[List[Dict[str, Any]]] = None) -> MessageRecord:
        if not self._awaiting_answer:
            raise MessageOrderError(f"Session {self.id} has no user message to answer")
        message = self.repository.insert_message(self.id, MessageRole.ASSISTANT, content, citations=citations)
        self._awaiting_answer = False
        logger.debug("Stored message", session_id=self.id, role="assistant", message_id=message.id)
        return message


class ConversationService:
    def __init__(self, repository: ConversationRepository):
        self.repository = repository

    def open_session(self, document_id: str, session_id: Optional[int], first_message: str) -> ActiveSession:
        """
        Use the caller's session, or create one for the document on first use.

        Raises:
            SessionNotFoundError: if session_id is unknown or belongs to another document
        """
        if session_id is None:
            record = self.repository.create_session(document_id, session_title(first_message))
            logger.info("Created new chat session", session_id=record.id, document_id=document_id)
            return ActiveSession(self.repository, record, created=True)

        record = self.repository.get_session(session_id)
        if record is None:
            raise SessionNotFoundError(f"Chat session {session_id} not found")
        if record.document_id != document_id:
            # Sessions are never reused across documents
            raise SessionNotFoundError(f"Chat session {session_id} does not belong to document {document_id}")
        logger.info("Using existing chat session", session_id=session_id)
        return ActiveSession(self.repository, record)

    def list_sessions(self, document_id: str) -> List[SessionRecord]:
        return self.repository.list_sessions(document_id)

    def get_conversation(self, session_id: int) -> Tuple[SessionRecord, List[MessageRecord]]:
        """
        Retrieve a session and all its messages in chronological order.

        Raises:
            SessionNotFoundError: if the session does not exist
        """
        record = self.repository.get_session(session_id)
        if record is None:
            raise SessionNotFoundError(f"Chat session {session_id} not found")
        return record, self.repository.list_messages(session_id)
