"""
Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

Role = Literal["user", "assistant"]
Status = Literal["processing", "complete", "failed"]


class Citation(BaseModel):
    """A pointer from an answer back to the chunk that supports it."""
    page: int
    content: str
    similarity: float = Field(..., ge=0.0, le=1.0)


class ProcessDocumentBody(BaseModel):
    """Request body for ingesting a file already in the blob store."""
    bucket: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)


class ProcessDocumentResponse(BaseModel):
    document_id: str
    page_count: int
    chunk_count: int
    status: Status = "complete"


class ChatBody(BaseModel):
    """Request body for asking a question about one document."""
    document_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, description="The question to ask")
    session_id: Optional[int] = Field(None, description="Existing session ID or None to start a new one")
    model: Optional[str] = Field(None, description="Model identifier, e.g. 'openai:gpt-4o-mini'")


class ChatResponse(BaseModel):
    response: str
    citations: List[Citation]
    session_id: int
    message_id: int


class DocumentOut(BaseModel):
    id: str
    title: str
    file_name: str
    file_size: Optional[int] = None
    bucket: str
    storage_path: str
    page_count: Optional[int] = None
    status: Status
    created_at: Optional[datetime] = None
    num_chunks: Optional[int] = None


class SessionOut(BaseModel):
    id: int
    document_id: str
    title: str
    created_at: Optional[datetime] = None


class MessageOut(BaseModel):
    id: int
    role: Role
    content: str
    citations: Optional[List[Citation]] = None
    created_at: Optional[datetime] = None


class ConversationOut(BaseModel):
    session: SessionOut
    messages: List[MessageOut]
