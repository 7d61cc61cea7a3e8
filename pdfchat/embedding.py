"""
Embedding providers and the batch coordinator that drives them.
"""
from abc import ABC, abstractmethod
from time import perf_counter
from typing import List, Optional, Sequence

import aiohttp
import numpy as np

from .errors import EmbeddingProviderError
from .logging_config import logger

DEFAULT_BATCH_SIZE = 100


class EmbeddingProvider(ABC):
    """Turns an ordered list of texts into an ordered list of vectors."""

    @abstractmethod
    async def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Embed at most one batch of texts.

        Returns:
            One vector per input text, in input order.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass


class JinaEmbeddingProvider(EmbeddingProvider):
    """Jina AI embeddings over HTTP."""

    def __init__(
        self,
        api_key: str,
        model: str = "jina-embeddings-v2-base-en",
        url: str = "https://api.jina.ai/v1/embeddings",
        timeout_sec: float = 60.0,
    ):
        self.api_key = api_key
        self.model = model
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)

    @property
    def provider_name(self) -> str:
        return "jina"

    async def embed(self, texts: List[str]) -> List[List[float]]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {"input": texts, "model": self.model}

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(self.url, json=payload, headers=headers) as resp:
                if resp.status != 200:
                    error_text = await resp.text()
                    raise EmbeddingProviderError(f"Jina AI API error: {resp.status} {error_text}")
                result = await resp.json()

        # The API may return items out of order; "index" is authoritative
        items = sorted(result.get("data", []), key=lambda item: item.get("index", 0))
        return [item["embedding"] for item in items]


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Local sentence-transformers model, loaded on first use."""

    def __init__(self, model_name: str = "sentence-transformers/all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None

    @property
    def provider_name(self) -> str:
        return "sentence-transformers"

    def preload(self):
        """Load the model up front to avoid first-request delay."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            logger.info("Loading embedding model", model=self.model_name)

            # Explicit tokenizer settings avoid a FutureWarning
            self._model = SentenceTransformer(
                self.model_name,
                tokenizer_kwargs={"clean_up_tokenization_spaces": False},
            )
            self._model.encode(["test"], normalize_embeddings=True, show_progress_bar=False)
            logger.info("Embedding model loaded", model=self.model_name)
        return self._model

    async def embed(self, texts: List[str]) -> List[List[float]]:
        model = self.preload()
        vecs = model.encode(texts, normalize_embeddings=True, show_progress_bar=False)
        if isinstance(vecs, np.ndarray):
            return vecs.tolist()
        return [list(v) for v in vecs]


class EmbeddingBatchCoordinator:
    """
    Embeds an ordered sequence of texts in bounded, sequential batches.

    Either every text gets a vector or EmbeddingProviderError is raised;
    partial results are never returned.
    """

    def __init__(self, provider: EmbeddingProvider, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.provider = provider
        self.batch_size = batch_size

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size
        t = perf_counter()

        for batch_no, i in enumerate(range(0, len(texts), self.batch_size), start=1):
            batch = list(texts[i:i + self.batch_size])
            logger.debug("Embedding batch", batch=batch_no, of=total_batches, size=len(batch))
            try:
                batch_vectors = await self.provider.embed(batch)
            except EmbeddingProviderError:
                logger.error("Embedding batch failed", batch=batch_no, provider=self.provider.provider_name)
                raise
            except Exception as e:
                logger.error("Embedding batch failed", batch=batch_no, provider=self.provider.provider_name, error=str(e))
                raise EmbeddingProviderError(f"Embedding batch {batch_no} failed: {e}") from e

            if len(batch_vectors) != len(batch):
                raise EmbeddingProviderError(
                    f"Embedding batch {batch_no} returned {len(batch_vectors)} vectors for {len(batch)} texts"
                )
            vectors.extend(batch_vectors)

        logger.info(
            "Generated embeddings",
            count=len(vectors),
            batches=total_batches,
            time_ms=round((perf_counter() - t) * 1000, 2),
        )
        return vectors

    async def embed_query(self, text: str) -> List[float]:
        return (await self.embed_batch([text]))[0]


def build_embedding_provider(settings) -> EmbeddingProvider:
    """Choose the embedding backend from settings."""
    if settings.embedding_backend == "local":
        return SentenceTransformerEmbeddingProvider(settings.local_embed_model)
    return JinaEmbeddingProvider(
        api_key=settings.require("jina_api_key"),
        model=settings.jina_model,
        url=settings.jina_url,
    )


def build_embedding_coordinator(settings, provider: Optional[EmbeddingProvider] = None) -> EmbeddingBatchCoordinator:
    return EmbeddingBatchCoordinator(
        provider or build_embedding_provider(settings),
        batch_size=settings.embedding_batch_size,
    )
