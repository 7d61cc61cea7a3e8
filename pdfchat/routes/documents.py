"""
Document management API routes.
Handles ingestion, listing, status and deletion.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..config import get_settings
from ..db.repositories import DocumentRecord
from ..dependencies import get_document_service
from ..errors import (
    DocumentNotFoundError, DownloadError, DuplicateDocumentError, ExtractionError, PdfChatError,
)
from ..logging_config import logger
from ..schemas import DocumentOut, ProcessDocumentBody, ProcessDocumentResponse
from ..services.document_service import DocumentService, ProcessResult

router = APIRouter(prefix="/api", tags=["documents"])


def _document_out(document: DocumentRecord, num_chunks: Optional[int] = None) -> DocumentOut:
    return DocumentOut(
        id=document.id,
        title=document.title,
        file_name=document.file_name,
        file_size=document.file_size,
        bucket=document.bucket,
        storage_path=document.storage_path,
        page_count=document.page_count,
        status=document.status.value,
        created_at=document.created_at,
        num_chunks=num_chunks,
    )


def _processed(result: ProcessResult) -> ProcessDocumentResponse:
    return ProcessDocumentResponse(
        document_id=result.document_id,
        page_count=result.page_count,
        chunk_count=result.chunk_count,
    )


def _ingestion_error(e: Exception) -> HTTPException:
    if isinstance(e, DownloadError):
        return HTTPException(status_code=400, detail="Failed to download file")
    if isinstance(e, DuplicateDocumentError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ExtractionError):
        return HTTPException(status_code=500, detail=f"Failed to extract text: {e}")
    if isinstance(e, PdfChatError):
        return HTTPException(status_code=500, detail=str(e))
    logger.error("Unexpected ingestion error", exc_info=e)
    return HTTPException(status_code=500, detail="Internal server error")


# ==================== Ingestion ====================

@router.post("/documents/process", response_model=ProcessDocumentResponse)
async def process_document(
    payload: ProcessDocumentBody,
    service: DocumentService = Depends(get_document_service),
):
    """
    Ingest a PDF that is already in the blob store.

    Process:
    1. Download the file
    2. Extract text
    3. Split text into page-tagged chunks
    4. Generate embeddings in batches
    5. Mark the document complete (or failed)
    """
    try:
        result = await service.process_document(payload.bucket, payload.path, payload.title)
    except Exception as e:
        raise _ingestion_error(e) from e
    return _processed(result)


@router.post("/documents/upload", response_model=ProcessDocumentResponse)
async def upload_document(
    file: UploadFile = File(...),
    title: str = Form(None),
    service: DocumentService = Depends(get_document_service),
):
    """Upload a PDF, store it, and ingest it."""
    max_bytes = get_settings().max_upload_bytes
    filename = file.filename or "document.pdf"

    if not (filename.lower().endswith(".pdf") or file.content_type == "application/pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are supported")

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File '{filename}' is too large. Max size is {max_bytes // (1024 * 1024)} MB.",
        )

    logger.info("Processing upload", filename=filename, size_bytes=len(data))
    try:
        result = await service.upload_and_process(filename, data, title)
    except Exception as e:
        raise _ingestion_error(e) from e
    return _processed(result)


# ==================== Listing & status ====================

@router.get("/documents", response_model=List[DocumentOut])
async def list_documents(service: DocumentService = Depends(get_document_service)):
    """Returns all documents with status and chunk counts."""
    try:
        summaries = service.list_documents()
    except PdfChatError as e:
        logger.error("Error listing documents", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
    logger.info("Listed documents", count=len(summaries))
    return [_document_out(s.document, s.num_chunks) for s in summaries]


@router.get("/documents/{doc_id}", response_model=DocumentOut)
async def get_document(doc_id: str, service: DocumentService = Depends(get_document_service)):
    """Document metadata and processing status."""
    try:
        return _document_out(service.get_document(doc_id))
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PdfChatError as e:
        logger.error("Error reading document", doc_id=doc_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


# ==================== Deletion ====================

@router.delete("/documents/{doc_id}")
async def delete_document(doc_id: str, service: DocumentService = Depends(get_document_service)):
    """
    Deletes a document; chunks, embeddings and chat sessions cascade.
    """
    try:
        service.delete_document(doc_id)
    except DocumentNotFoundError:
        logger.warning("Document not found for deletion", doc_id=doc_id)
        raise HTTPException(status_code=404, detail="Document not found")
    except PdfChatError as e:
        logger.error("Error deleting document", doc_id=doc_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
    return {"ok": True, "deleted": doc_id}
