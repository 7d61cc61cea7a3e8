"""
RAG (Retrieval-Augmented Generation) service.
Answers a question about one document and records the exchange.
"""
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..db.repositories import DocumentRepository
from ..embedding import EmbeddingBatchCoordinator
from ..errors import (
    ConfigurationError, DocumentNotFoundError, EmbeddingProviderError, GenerationProviderError,
)
from ..generation import GenerationProvider
from ..logging_config import logger
from ..retrieval import RetrievalEngine
from ..schemas import Citation
from ..utils.helpers import assemble
from .conversation_service import ActiveSession, ConversationService

NO_RESULTS_RESPONSE = (
    "I couldn't find relevant information in the document to answer your question. "
    "Please try rephrasing your question or ask about different topics covered in the document."
)

PROVIDER_FAILURE_RESPONSE = (
    "Sorry, I couldn't generate an answer right now. Please try again in a moment."
)


@dataclass(frozen=True)
class ChatAnswer:
    response: str
    citations: List[Citation]
    session_id: int
    message_id: int


class RagService:
    def __init__(
        self,
        documents: DocumentRepository,
        conversations: ConversationService,
        embedder: EmbeddingBatchCoordinator,
        retriever: RetrievalEngine,
        generator_factory: Callable[[Optional[str]], GenerationProvider],
    ):
        self.documents = documents
        self.conversations = conversations
        self.embedder = embedder
        self.retriever = retriever
        self.generator_factory = generator_factory

    async def answer_question(
        self,
        document_id: str,
        message: str,
        session_id: Optional[int] = None,
        model: Optional[str] = None,
    ) -> ChatAnswer:
        """
        Main RAG flow: session -> user message -> embed -> retrieve ->
        generate -> assistant message.

        Provider failures and "nothing relevant found" end in an assistant
        message, never an exception. RetrievalError and PersistenceError
        propagate.
        """
        start_time = time.time()
        question = message.strip()

        if self.documents.get_document(document_id) is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")

        session = self.conversations.open_session(document_id, session_id, question)
        session.append_user(question)

        try:
            query_vector = await self.embedder.embed_query(question)
        except EmbeddingProviderError as e:
            logger.error("Query embedding failed", session_id=session.id, error=str(e))
            return self._reply(session, PROVIDER_FAILURE_RESPONSE, [], start_time)

        matches = self.retriever.retrieve(document_id, query_vector)
        if not matches:
            logger.info("No relevant chunks found", document_id=document_id, session_id=session.id)
            return self._reply(session, NO_RESULTS_RESPONSE, [], start_time)

        assembled = assemble(matches)
        try:
            generator = self.generator_factory(model)
            logger.info(
                "Sending to LLM",
                provider=generator.provider_name,
                model=generator.model_name,
                context_length=len(assembled.context_text),
                citations=len(assembled.citations),
            )
            answer = await generator.generate(question, assembled.context_text)
        except (ConfigurationError, GenerationProviderError) as e:
            logger.error("Answer generation failed", session_id=session.id, error=str(e))
            return self._reply(session, PROVIDER_FAILURE_RESPONSE, [], start_time)

        return self._reply(session, answer, assembled.citations, start_time)

    def _reply(self, session: ActiveSession, text: str, citations: List[Citation], start_time: float) -> ChatAnswer:
        stored = session.append_assistant(text, citations=[c.model_dump() for c in citations])
        logger.info(
            "Query completed",
            session_id=session.id,
            message_id=stored.id,
            citations=len(citations),
            time_ms=round((time.time() - start_time) * 1000, 2),
        )
        return ChatAnswer(response=text, citations=citations, session_id=session.id, message_id=stored.id)
