from abc import ABC, abstractmethod
from dataclasses import dataclass
from time import perf_counter
from typing import List, Sequence

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .errors import RetrievalError
from .logging_config import logger
from .models import ChunkEmbedding, DocumentChunk

DEFAULT_MATCH_THRESHOLD = 0.7
DEFAULT_MATCH_COUNT = 5


@dataclass(frozen=True)
class RetrievedChunk:
    chunk_id: str
    page_number: int
    content: str
    similarity: float


class SimilaritySearch(ABC):
    @abstractmethod
    def search(
        self,
        query_vector: Sequence[float],
        document_id: str,
        threshold: float,
        limit: int,
    ) -> List[RetrievedChunk]:
        """Ranked rows of one document whose similarity reaches the threshold."""


def similarity_query(query_vector: Sequence[float], document_id: str, threshold: float, limit: int) -> Select:
    """Chunks of one document at or above the threshold, nearest first."""
    distance = ChunkEmbedding.embedding.cosine_distance(list(query_vector))
    similarity = (1 - distance).label("similarity")
    return (
        select(DocumentChunk.id, DocumentChunk.page_number, DocumentChunk.content, similarity)
        .join(ChunkEmbedding, ChunkEmbedding.chunk_id == DocumentChunk.id)
        .where(ChunkEmbedding.document_id == document_id)
        .where(1 - distance >= threshold)
        .order_by(distance)
        .limit(limit)
    )


class PgVectorSimilaritySearch(SimilaritySearch):
    """Cosine similarity over chunk_embeddings with pgvector."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def search(self, query_vector, document_id, threshold, limit) -> List[RetrievedChunk]:
        stmt = similarity_query(query_vector, document_id, threshold, limit)
        with self.session_factory() as db:
            rows = db.execute(stmt).all()
        return [
            RetrievedChunk(chunk_id=r.id, page_number=r.page_number, content=r.content, similarity=float(r.similarity))
            for r in rows
        ]


class RetrievalEngine:
    """
    Fixed-parameter wrapper over a similarity search.

    An empty result is a valid outcome meaning "no sufficiently relevant
    content"; only a failing search raises RetrievalError.
    """

    def __init__(
        self,
        search: SimilaritySearch,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
        top_k: int = DEFAULT_MATCH_COUNT,
    ):
        self.search = search
        self.threshold = threshold
        self.top_k = top_k

    def retrieve(self, document_id: str, query_vector: Sequence[float]) -> List[RetrievedChunk]:
        """
        Search for the chunks of one document most similar to the query.

        Returns:
            At most top_k matches, each with similarity >= threshold,
            ordered by descending similarity.
        """
        t = perf_counter()
        try:
            rows = self.search.search(query_vector, document_id, self.threshold, self.top_k)
        except SQLAlchemyError as e:
            logger.error("Similarity search failed", document_id=document_id, error=str(e))
            raise RetrievalError(f"Failed to search document {document_id}") from e
        except RetrievalError:
            raise
        except Exception as e:
            logger.error("Similarity search failed", document_id=document_id, error=str(e))
            raise RetrievalError(f"Failed to search document {document_id}: {e}") from e

        matches = sorted(
            (r for r in rows if r.similarity >= self.threshold),
            key=lambda r: r.similarity,
            reverse=True,
        )[:self.top_k]

        logger.info(
            "Retrieved chunks",
            document_id=document_id,
            count=len(matches),
            pages=[m.page_number for m in matches],
            time_ms=round((perf_counter() - t) * 1000, 2),
        )
        return matches
