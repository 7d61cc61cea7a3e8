"""
Chat-related API routes.
Handles question answering and chat session history.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..db.repositories import SessionRecord
from ..dependencies import get_conversation_service, get_rag_service
from ..errors import DocumentNotFoundError, PdfChatError, RetrievalError, SessionNotFoundError
from ..logging_config import logger
from ..schemas import ChatBody, ChatResponse, ConversationOut, MessageOut, SessionOut
from ..services.conversation_service import ConversationService
from ..services.rag_service import RagService

router = APIRouter(prefix="/api", tags=["chat"])


def _session_out(record: SessionRecord) -> SessionOut:
    return SessionOut(id=record.id, document_id=record.document_id, title=record.title, created_at=record.created_at)


@router.post("/chat", response_model=ChatResponse)
async def chat(payload: ChatBody, service: RagService = Depends(get_rag_service)):
    """
    Answer a question about one document.

    Workflow:
    1. Create or reuse the chat session
    2. Store user message
    3. Embed the question and retrieve relevant chunks
    4. Generate the answer from page-tagged context
    5. Store assistant message with citations
    """
    try:
        answer = await service.answer_question(
            payload.document_id,
            payload.message,
            session_id=payload.session_id,
            model=payload.model,
        )
    except (DocumentNotFoundError, SessionNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RetrievalError as e:
        logger.error("Document search failed", document_id=payload.document_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to search document")
    except PdfChatError as e:
        logger.error("Error processing chat", document_id=payload.document_id, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logger.error("Error processing chat", exc_info=e, document_id=payload.document_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    return ChatResponse(
        response=answer.response,
        citations=answer.citations,
        session_id=answer.session_id,
        message_id=answer.message_id,
    )


@router.get("/documents/{doc_id}/sessions", response_model=List[SessionOut])
async def list_sessions(doc_id: str, service: ConversationService = Depends(get_conversation_service)):
    """Chat sessions of a document, newest first."""
    try:
        return [_session_out(s) for s in service.list_sessions(doc_id)]
    except PdfChatError as e:
        logger.error("Error listing sessions", doc_id=doc_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/sessions/{session_id}", response_model=ConversationOut)
async def get_session(session_id: int, service: ConversationService = Depends(get_conversation_service)):
    """
    Retrieve all messages from a session.
    Returns messages in chronological order.
    """
    try:
        record, messages = service.get_conversation(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PdfChatError as e:
        logger.error("Error fetching session", session_id=session_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")

    return ConversationOut(
        session=_session_out(record),
        messages=[
            MessageOut(
                id=m.id,
                role=m.role.value,
                content=m.content,
                citations=m.citations,
                created_at=m.created_at,
            )
            for m in messages
        ],
    )
