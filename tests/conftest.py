"""Shared in-memory fakes for the store and the external providers."""

import itertools
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from pdfchat.chunking import Chunker
from pdfchat.db.repositories import DocumentRecord, DocumentSummary, MessageRecord, SessionRecord
from pdfchat.embedding import EmbeddingBatchCoordinator, EmbeddingProvider
from pdfchat.errors import (
    DownloadError, DuplicateDocumentError, EmbeddingProviderError, PersistenceError,
)
from pdfchat.generation import GenerationProvider
from pdfchat.models import DocumentStatus
from pdfchat.retrieval import RetrievalEngine, RetrievedChunk, SimilaritySearch
from pdfchat.services.conversation_service import ConversationService
from pdfchat.services.document_service import DocumentService
from pdfchat.services.rag_service import RagService
from pdfchat.storage import BlobStore
from pdfchat.text_extraction import TextExtractor


class FakeDocumentRepository:
    """Mirrors DocumentRepository, including the live (bucket, path) uniqueness rule."""

    def __init__(self):
        self.documents: Dict[str, DocumentRecord] = {}
        self.chunks: Dict[str, List[dict]] = {}
        self.embeddings: Dict[str, List[dict]] = {}
        self.fail_on = set()

    def _check(self, op):
        if op in self.fail_on:
            raise PersistenceError(f"{op} failed")

    def create_document(self, *, title, file_name, file_size, bucket, storage_path, page_count):
        self._check("create_document")
        for doc in self.documents.values():
            if doc.bucket == bucket and doc.storage_path == storage_path and doc.status is not DocumentStatus.FAILED:
                raise DuplicateDocumentError(f"{bucket}/{storage_path} is already ingested or being ingested")
        doc = DocumentRecord(
            id=str(uuid.uuid4()),
            title=title,
            file_name=file_name,
            file_size=file_size,
            bucket=bucket,
            storage_path=storage_path,
            page_count=page_count,
            status=DocumentStatus.PROCESSING,
            created_at=datetime.now(timezone.utc),
        )
        self.documents[doc.id] = doc
        return doc

    def get_document(self, document_id):
        return self.documents.get(document_id)

    def list_documents(self):
        return [
            DocumentSummary(doc, len(self.chunks.get(doc.id, [])))
            for doc in sorted(self.documents.values(), key=lambda d: d.created_at, reverse=True)
        ]

    def update_status(self, document_id, expected, new, page_count=None):
        self._check("update_status")
        doc = self.documents.get(document_id)
        if doc is None or doc.status is not expected:
            return False
        doc.status = new
        if page_count is not None:
            doc.page_count = page_count
        return True

    def insert_chunks(self, document_id, chunks):
        self._check("insert_chunks")
        rows = [{"id": str(uuid.uuid4()), "chunk": c} for c in chunks]
        self.chunks.setdefault(document_id, []).extend(rows)
        return [r["id"] for r in rows]

    def insert_embeddings(self, document_id, chunk_ids, vectors):
        self._check("insert_embeddings")
        if len(chunk_ids) != len(vectors):
            raise PersistenceError("length mismatch")
        self.embeddings.setdefault(document_id, []).extend(
            {"chunk_id": cid, "vector": vec} for cid, vec in zip(chunk_ids, vectors)
        )

    def delete_chunks(self, document_id):
        self._check("delete_chunks")
        removed = len(self.chunks.pop(document_id, []))
        self.embeddings.pop(document_id, None)
        return removed

    def count_chunks(self, document_id):
        return len(self.chunks.get(document_id, []))

    def count_embeddings(self, document_id):
        return len(self.embeddings.get(document_id, []))

    def delete_document(self, document_id):
        self.chunks.pop(document_id, None)
        self.embeddings.pop(document_id, None)
        return self.documents.pop(document_id, None) is not None


class FakeConversationRepository:
    def __init__(self):
        self.sessions: Dict[int, SessionRecord] = {}
        self.messages: List[MessageRecord] = []
        self._ids = itertools.count(1)
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.fail_on = set()

    def _tick(self):
        self._clock += timedelta(milliseconds=1)
        return self._clock

    def create_session(self, document_id, title):
        record = SessionRecord(id=next(self._ids), document_id=document_id, title=title, created_at=self._tick())
        self.sessions[record.id] = record
        return record

    def get_session(self, session_id):
        return self.sessions.get(session_id)

    def list_sessions(self, document_id):
        return sorted(
            (s for s in self.sessions.values() if s.document_id == document_id),
            key=lambda s: s.created_at,
            reverse=True,
        )

    def insert_message(self, session_id, role, content, citations=None):
        if role.value in self.fail_on:
            raise PersistenceError(f"Failed to store {role.value} message")
        record = MessageRecord(
            id=next(self._ids),
            session_id=session_id,
            role=role,
            content=content,
            citations=citations,
            created_at=self._tick(),
        )
        self.messages.append(record)
        return record

    def list_messages(self, session_id):
        return [m for m in self.messages if m.session_id == session_id]

    def roles(self, session_id):
        return [m.role for m in self.list_messages(session_id)]


class FakeBlobStore(BlobStore):
    def __init__(self, objects: Optional[Dict[tuple, bytes]] = None):
        self.objects = dict(objects or {})

    def upload(self, bucket, path, data, content_type="application/pdf"):
        self.objects[(bucket, path)] = data

    def download(self, bucket, path):
        try:
            return self.objects[(bucket, path)]
        except KeyError:
            raise DownloadError(f"Failed to download {bucket}/{path}")


class FakeExtractor(TextExtractor):
    def __init__(self, text: str = "", error: Exception = None):
        self.text = text
        self.error = error
        self.calls = []

    async def extract(self, content, filename):
        self.calls.append(filename)
        if self.error:
            raise self.error
        return self.text


class FakeEmbeddingProvider(EmbeddingProvider):
    """Vector = [position of the text in the whole input, its length]."""

    def __init__(self, fail_on_call: Optional[int] = None, error: Exception = None):
        self.calls: List[List[str]] = []
        self.fail_on_call = fail_on_call
        self.error = error or EmbeddingProviderError("provider down")
        self.seen = 0

    @property
    def provider_name(self):
        return "fake"

    async def embed(self, texts):
        self.calls.append(list(texts))
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise self.error
        vectors = [[float(self.seen + i), float(len(t))] for i, t in enumerate(texts)]
        self.seen += len(texts)
        return vectors


class FakeSearch(SimilaritySearch):
    def __init__(self, rows: Optional[List[RetrievedChunk]] = None, error: Exception = None):
        self.rows = rows or []
        self.error = error
        self.calls = []

    def search(self, query_vector, document_id, threshold, limit):
        self.calls.append({"document_id": document_id, "threshold": threshold, "limit": limit})
        if self.error:
            raise self.error
        return list(self.rows)


class FakeGenerator(GenerationProvider):
    def __init__(self, answer: str = "The answer is on page 2.", error: Exception = None):
        super().__init__("fake-model")
        self.answer = answer
        self.error = error
        self.calls = []

    @property
    def provider_name(self):
        return "fake"

    async def _complete(self, question, context):
        self.calls.append({"question": question, "context": context})
        if self.error:
            raise self.error
        return self.answer


PAGE_TEXT = (
    "--- page 1 ---\nThe warranty covers parts for two years. Labour is covered for one year.\n"
    "--- page 2 ---\nClaims must be filed online. Keep your receipt."
)


@pytest.fixture
def document_repo():
    return FakeDocumentRepository()


@pytest.fixture
def conversation_repo():
    return FakeConversationRepository()


@pytest.fixture
def blob_store():
    return FakeBlobStore({("pdfs", "manuals/warranty.pdf"): b"not really a pdf"})


@pytest.fixture
def embedding_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def make_document_service(document_repo, blob_store):
    def _make(extractor=None, provider=None, batch_size=100):
        return DocumentService(
            repository=document_repo,
            blob_store=blob_store,
            extractor=extractor or FakeExtractor(PAGE_TEXT),
            chunker=Chunker(),
            embedder=EmbeddingBatchCoordinator(provider or FakeEmbeddingProvider(), batch_size=batch_size),
        )
    return _make


@pytest.fixture
def make_rag_service(document_repo, conversation_repo):
    def _make(rows=None, search_error=None, generator=None, provider=None):
        search = FakeSearch(rows, search_error)
        gen = generator or FakeGenerator()
        service = RagService(
            documents=document_repo,
            conversations=ConversationService(conversation_repo),
            embedder=EmbeddingBatchCoordinator(provider or FakeEmbeddingProvider()),
            retriever=RetrievalEngine(search),
            generator_factory=lambda model: gen,
        )
        return service, search, gen
    return _make


@pytest.fixture
def stored_document(document_repo):
    """A completed document to chat with."""
    doc = document_repo.create_document(
        title="Warranty",
        file_name="warranty.pdf",
        file_size=1234,
        bucket="pdfs",
        storage_path="manuals/warranty.pdf",
        page_count=2,
    )
    document_repo.update_status(doc.id, DocumentStatus.PROCESSING, DocumentStatus.COMPLETE)
    return doc
