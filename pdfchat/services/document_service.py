"""
Document ingestion service.

Pipeline: download -> create document (processing) -> extract -> chunk ->
persist chunks -> embed -> persist embeddings -> mark complete.
Any failure after the document row exists marks it failed.
"""
import os
import uuid
from dataclasses import dataclass
from time import perf_counter
from typing import List, Optional

from ..chunking import Chunker
from ..db.repositories import DocumentRecord, DocumentRepository, DocumentSummary
from ..embedding import EmbeddingBatchCoordinator
from ..errors import (
    DocumentNotFoundError, ExtractionError, InvalidStatusTransition, PdfChatError, PersistenceError,
)
from ..logging_config import logger
from ..models import DocumentStatus
from ..storage import BlobStore
from ..text_extraction import TextExtractor, count_pdf_pages, estimate_page_count


@dataclass(frozen=True)
class ProcessResult:
    document_id: str
    page_count: int
    chunk_count: int


class DocumentLifecycle:
    """
    Status state machine of one document: processing -> complete | failed.
    Terminal states never change.
    """

    def __init__(self, repository: DocumentRepository, document: DocumentRecord):
        self.repository = repository
        self.document_id = document.id
        self.status = document.status

    def complete(self, page_count: Optional[int] = None):
        self._transition(DocumentStatus.COMPLETE, page_count)

    def fail(self) -> bool:
        """
        Best-effort move to failed. Never raises; returns whether it stuck.
        """
        if self.status.is_terminal:
            logger.warning("Document already terminal", document_id=self.document_id, status=self.status.value)
            return False
        try:
            self._transition(DocumentStatus.FAILED)
        except PdfChatError as e:
            logger.error("Could not mark document failed", document_id=self.document_id, error=str(e))
            return False
        return True

    def _transition(self, target: DocumentStatus, page_count: Optional[int] = None):
        if self.status.is_terminal:
            raise InvalidStatusTransition(
                f"Document {self.document_id} is {self.status.value}; cannot become {target.value}"
            )
        if not self.repository.update_status(self.document_id, self.status, target, page_count=page_count):
            raise InvalidStatusTransition(
                f"Document {self.document_id} is no longer {self.status.value}"
            )
        logger.info("Document status changed", document_id=self.document_id, old=self.status.value, new=target.value)
        self.status = target


class DocumentService:
    def __init__(
        self,
        repository: DocumentRepository,
        blob_store: BlobStore,
        extractor: TextExtractor,
        chunker: Chunker,
        embedder: EmbeddingBatchCoordinator,
        upload_bucket: str = "pdfs",
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.extractor = extractor
        self.chunker = chunker
        self.embedder = embedder
        self.upload_bucket = upload_bucket

    async def process_document(self, bucket: str, path: str, title: str) -> ProcessResult:
        """
        Ingest a PDF from the blob store.

        Raises:
            DownloadError, DuplicateDocumentError, PersistenceError: before the
                document row exists; nothing was recorded.
            Any PdfChatError after that point, once the document is marked failed.
        """
        t = perf_counter()
        logger.info("Processing document", bucket=bucket, path=path, title=title)

        content = self.blob_store.download(bucket, path)
        file_name = os.path.basename(path) or title
        exact_pages = count_pdf_pages(content)

        document = self.repository.create_document(
            title=title,
            file_name=file_name,
            file_size=len(content),
            bucket=bucket,
            storage_path=path,
            page_count=exact_pages,
        )
        lifecycle = DocumentLifecycle(self.repository, document)

        try:
            text = await self.extractor.extract(content, file_name)
            if not text.strip():
                raise ExtractionError(f"No extractable text in {file_name}")
            logger.info("Parsed content", document_id=document.id, length=len(text))

            page_count = exact_pages or estimate_page_count(text)
            chunks = self.chunker.chunk(text, page_count)
            if not chunks:
                # page markers with no text between them
                raise ExtractionError(f"No extractable text in {file_name}")
            chunk_ids = self.repository.insert_chunks(document.id, chunks)
            logger.info("Stored chunks", document_id=document.id, chunk_count=len(chunk_ids))

            vectors = await self.embedder.embed_batch([c.content for c in chunks])
            self.repository.insert_embeddings(document.id, chunk_ids, vectors)
            self._verify_embeddings(document.id, len(chunk_ids))

            lifecycle.complete(page_count=None if exact_pages else page_count)
        except Exception as e:
            logger.error("Document processing failed", document_id=document.id, error=str(e), error_type=type(e).__name__)
            self._compensate(lifecycle)
            raise

        logger.info(
            "Document processed",
            document_id=document.id,
            page_count=page_count,
            chunk_count=len(chunk_ids),
            time_ms=round((perf_counter() - t) * 1000, 2),
        )
        return ProcessResult(document_id=document.id, page_count=page_count, chunk_count=len(chunk_ids))

    async def upload_and_process(self, file_name: str, data: bytes, title: Optional[str] = None) -> ProcessResult:
        """Store an uploaded PDF under a unique path, then ingest it."""
        safe_name = os.path.basename(file_name or "") or "document.pdf"
        path = f"{uuid.uuid4()}/{safe_name}"
        self.blob_store.upload(self.upload_bucket, path, data)
        return await self.process_document(self.upload_bucket, path, title or safe_name)

    def list_documents(self) -> List[DocumentSummary]:
        return self.repository.list_documents()

    def get_document(self, document_id: str) -> DocumentRecord:
        document = self.repository.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return document

    def delete_document(self, document_id: str):
        """Delete a document; chunks, embeddings and sessions cascade."""
        if not self.repository.delete_document(document_id):
            raise DocumentNotFoundError(f"Document {document_id} not found")
        logger.info("Document deleted", document_id=document_id)

    def _verify_embeddings(self, document_id: str, expected: int):
        chunks = self.repository.count_chunks(document_id)
        embeddings = self.repository.count_embeddings(document_id)
        if not (chunks == embeddings == expected):
            raise PersistenceError(
                f"Document {document_id} has {chunks} chunks and {embeddings} embeddings, expected {expected}"
            )

    def _compensate(self, lifecycle: DocumentLifecycle):
        """Mark the document failed, then drop its partial chunk rows."""
        lifecycle.fail()
        try:
            removed = self.repository.delete_chunks(lifecycle.document_id)
            if removed:
                logger.info("Removed orphaned chunks", document_id=lifecycle.document_id, count=removed)
        except PersistenceError as e:
            logger.error("Could not remove orphaned chunks", document_id=lifecycle.document_id, error=str(e))
