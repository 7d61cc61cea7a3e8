"""
Row-level access to documents, chunks, embeddings and chat history.

Every write runs in its own transaction. SQLAlchemy errors surface as
PersistenceError so callers never see driver exceptions.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import Update, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..chunking import TextChunk
from ..errors import DuplicateDocumentError, PersistenceError
from ..models import (
    ChatMessage, ChatSession, ChunkEmbedding, Document, DocumentChunk, DocumentStatus, MessageRole,
)


@dataclass
class DocumentRecord:
    id: str
    title: str
    file_name: str
    file_size: Optional[int]
    bucket: str
    storage_path: str
    page_count: Optional[int]
    status: DocumentStatus
    created_at: Optional[datetime] = None


@dataclass
class SessionRecord:
    id: int
    document_id: str
    title: str
    created_at: Optional[datetime] = None


@dataclass
class MessageRecord:
    id: int
    session_id: int
    role: MessageRole
    content: str
    citations: Optional[List[Dict[str, Any]]] = None
    created_at: Optional[datetime] = None


@dataclass
class DocumentSummary:
    document: DocumentRecord
    num_chunks: int = 0


def status_update(
    document_id: str,
    expected: DocumentStatus,
    new: DocumentStatus,
    page_count: Optional[int] = None,
) -> Update:
    """UPDATE that only matches while the row is still in the expected status."""
    values = {"processing_status": new.value}
    if page_count is not None:
        values["page_count"] = page_count
    return (
        update(Document)
        .where(Document.id == document_id, Document.processing_status == expected.value)
        .values(**values)
    )


def _to_document(row: Document) -> DocumentRecord:
    return DocumentRecord(
        id=row.id,
        title=row.title,
        file_name=row.file_name,
        file_size=row.file_size,
        bucket=row.bucket,
        storage_path=row.storage_path,
        page_count=row.page_count,
        status=DocumentStatus(row.processing_status),
        created_at=row.created_at,
    )


def _to_session(row: ChatSession) -> SessionRecord:
    return SessionRecord(id=row.id, document_id=row.document_id, title=row.title, created_at=row.created_at)


def _to_message(row: ChatMessage) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        session_id=row.session_id,
        role=MessageRole(row.role),
        content=row.content,
        citations=row.citations,
        created_at=row.created_at,
    )


class DocumentRepository:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create_document(
        self,
        *,
        title: str,
        file_name: str,
        file_size: Optional[int],
        bucket: str,
        storage_path: str,
        page_count: Optional[int],
    ) -> DocumentRecord:
        row = Document(
            id=str(uuid.uuid4()),
            title=title,
            file_name=file_name,
            file_size=file_size,
            bucket=bucket,
            storage_path=storage_path,
            page_count=page_count,
            processing_status=DocumentStatus.PROCESSING.value,
        )
        try:
            with self.session_factory() as db, db.begin():
                db.add(row)
                db.flush()
                db.refresh(row)
                return _to_document(row)
        except IntegrityError as e:
            raise DuplicateDocumentError(f"{bucket}/{storage_path} is already ingested or being ingested") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create document: {e}") from e

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        try:
            with self.session_factory() as db:
                row = db.get(Document, document_id)
                return _to_document(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read document: {e}") from e

    def list_documents(self) -> List[DocumentSummary]:
        """All documents, newest first, with chunk counts."""
        counts = (
            select(DocumentChunk.document_id, func.count(DocumentChunk.id).label("num_chunks"))
            .group_by(DocumentChunk.document_id)
            .subquery()
        )
        stmt = (
            select(Document, func.coalesce(counts.c.num_chunks, 0))
            .outerjoin(counts, counts.c.document_id == Document.id)
            .order_by(Document.created_at.desc())
        )
        try:
            with self.session_factory() as db:
                return [DocumentSummary(_to_document(doc), int(n)) for doc, n in db.execute(stmt).all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list documents: {e}") from e

    def update_status(
        self,
        document_id: str,
        expected: DocumentStatus,
        new: DocumentStatus,
        page_count: Optional[int] = None,
    ) -> bool:
        """
        Compare-and-set the processing status.

        Returns:
            False if the row was not in the expected status
        """
        stmt = status_update(document_id, expected, new, page_count)
        try:
            with self.session_factory() as db, db.begin():
                return db.execute(stmt).rowcount == 1
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update document status: {e}") from e

    def insert_chunks(self, document_id: str, chunks: Sequence[TextChunk]) -> List[str]:
        """Insert all chunks in one transaction; returns their ids in chunk order."""
        rows = [
            DocumentChunk(
                id=str(uuid.uuid4()),
                document_id=document_id,
                page_number=c.page_number,
                content=c.content,
                chunk_index=c.chunk_index,
                char_start=c.char_start,
                char_end=c.char_end,
            )
            for c in chunks
        ]
        try:
            with self.session_factory() as db, db.begin():
                db.add_all(rows)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to store chunks: {e}") from e
        return [r.id for r in rows]

    def insert_embeddings(self, document_id: str, chunk_ids: Sequence[str], vectors: Sequence[List[float]]):
        """Insert one embedding per chunk in one transaction."""
        if len(chunk_ids) != len(vectors):
            raise PersistenceError(f"{len(vectors)} embeddings for {len(chunk_ids)} chunks")
        rows = [
            ChunkEmbedding(chunk_id=cid, document_id=document_id, embedding=vec)
            for cid, vec in zip(chunk_ids, vectors)
        ]
        try:
            with self.session_factory() as db, db.begin():
                db.add_all(rows)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to store embeddings: {e}") from e

    def delete_chunks(self, document_id: str) -> int:
        """Remove a document's chunks (embeddings cascade)."""
        try:
            with self.session_factory() as db, db.begin():
                return db.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document_id)).rowcount
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to delete chunks: {e}") from e

    def count_chunks(self, document_id: str) -> int:
        return self._count(DocumentChunk, DocumentChunk.document_id == document_id)

    def count_embeddings(self, document_id: str) -> int:
        return self._count(ChunkEmbedding, ChunkEmbedding.document_id == document_id)

    def delete_document(self, document_id: str) -> bool:
        try:
            with self.session_factory() as db, db.begin():
                return db.execute(delete(Document).where(Document.id == document_id)).rowcount == 1
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to delete document: {e}") from e

    def _count(self, model, condition) -> int:
        try:
            with self.session_factory() as db:
                return db.execute(select(func.count()).select_from(model).where(condition)).scalar_one()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to count rows: {e}") from e


class ConversationRepository:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create_session(self, document_id: str, title: str) -> SessionRecord:
        row = ChatSession(document_id=document_id, title=title)
        try:
            with self.session_factory() as db, db.begin():
                db.add(row)
                db.flush()
                db.refresh(row)
                return _to_session(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create chat session: {e}") from e

    def get_session(self, session_id: int) -> Optional[SessionRecord]:
        try:
            with self.session_factory() as db:
                row = db.get(ChatSession, session_id)
                return _to_session(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read chat session: {e}") from e

    def list_sessions(self, document_id: str) -> List[SessionRecord]:
        stmt = (
            select(ChatSession)
            .where(ChatSession.document_id == document_id)
            .order_by(ChatSession.created_at.desc(), ChatSession.id.desc())
        )
        try:
            with self.session_factory() as db:
                return [_to_session(r) for r in db.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list chat sessions: {e}") from e

    def insert_message(
        self,
        session_id: int,
        role: MessageRole,
        content: str,
        citations: Optional[List[Dict[str, Any]]] = None,
    ) -> MessageRecord:
        row = ChatMessage(session_id=session_id, role=role.value, content=content, citations=citations)
        try:
            with self.session_factory() as db, db.begin():
                db.add(row)
                db.flush()
                db.refresh(row)
                return _to_message(row)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to store {role.value} message: {e}") from e

    def list_messages(self, session_id: int) -> List[MessageRecord]:
        """Messages in append order."""
        stmt = (
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        )
        try:
            with self.session_factory() as db:
                return [_to_message(r) for r in db.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read chat messages: {e}") from e
