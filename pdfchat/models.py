from enum import Enum

from sqlalchemy import (
    Column, String, Text, Integer, ForeignKey, BigInteger, TIMESTAMP, text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from pgvector.sqlalchemy import Vector

Base = declarative_base()

# Mirrors db/scripts/*.sql; the scripts are the source of truth for DDL.


class Document(Base):
    __tablename__ = "documents"
    id = Column(String, primary_key=True)
    title = Column(Text, nullable=False)
    file_name = Column(Text, nullable=False)
    file_size = Column(BigInteger)
    bucket = Column(Text, nullable=False)
    storage_path = Column(Text, nullable=False)
    page_count = Column(Integer)
    processing_status = Column(Text, nullable=False, server_default=text("'processing'"))
    created_at = Column(TIMESTAMP(timezone=True), server_default=text("NOW()"))


class DocumentChunk(Base):
    __tablename__ = "document_chunks"
    id = Column(String, primary_key=True)
    document_id = Column(String, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    page_number = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    chunk_index = Column(Integer, nullable=False)
    char_start = Column(Integer, nullable=False)
    char_end = Column(Integer, nullable=False)


class ChunkEmbedding(Base):
    __tablename__ = "chunk_embeddings"
    chunk_id = Column(String, ForeignKey("document_chunks.id", ondelete="CASCADE"), primary_key=True)
    document_id = Column(String, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    # Dimension is fixed by the embedding provider, not by the schema
    embedding = Column(Vector(), nullable=False)


class ChatSession(Base):
    __tablename__ = "chat_sessions"
    id = Column(BigInteger, primary_key=True)
    document_id = Column(String, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=text("clock_timestamp()"))


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    id = Column(BigInteger, primary_key=True)
    session_id = Column(BigInteger, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False)
    role = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    citations = Column(JSONB)
    created_at = Column(TIMESTAMP(timezone=True), server_default=text("clock_timestamp()"))


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not DocumentStatus.PROCESSING


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
