"""
Service providers for FastAPI's Depends().
Each service is built once from Settings; tests override these.
"""
from functools import lru_cache

from .chunking import Chunker
from .config import get_settings
from .db import get_sessionmaker
from .db.repositories import ConversationRepository, DocumentRepository
from .embedding import build_embedding_coordinator
from .retrieval import PgVectorSimilaritySearch, RetrievalEngine
from .services.conversation_service import ConversationService
from .services.document_service import DocumentService
from .services.model_service import build_generation_provider
from .services.rag_service import RagService
from .storage import build_blob_store
from .text_extraction import build_text_extractor


@lru_cache(maxsize=1)
def get_document_repository() -> DocumentRepository:
    return DocumentRepository(get_sessionmaker())


@lru_cache(maxsize=1)
def get_conversation_service() -> ConversationService:
    return ConversationService(ConversationRepository(get_sessionmaker()))


@lru_cache(maxsize=1)
def get_embedding_coordinator():
    return build_embedding_coordinator(get_settings())


@lru_cache(maxsize=1)
def get_document_service() -> DocumentService:
    settings = get_settings()
    return DocumentService(
        repository=get_document_repository(),
        blob_store=build_blob_store(settings),
        extractor=build_text_extractor(settings),
        chunker=Chunker(settings.max_chunk_size, settings.chunk_overlap),
        embedder=get_embedding_coordinator(),
        upload_bucket=settings.upload_bucket,
    )


@lru_cache(maxsize=1)
def get_rag_service() -> RagService:
    settings = get_settings()
    return RagService(
        documents=get_document_repository(),
        conversations=get_conversation_service(),
        embedder=get_embedding_coordinator(),
        retriever=RetrievalEngine(
            PgVectorSimilaritySearch(get_sessionmaker()),
            threshold=settings.match_threshold,
            top_k=settings.match_count,
        ),
        generator_factory=lambda model: build_generation_provider(settings, model),
    )
