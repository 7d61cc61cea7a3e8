"""
Answer generation: the provider interface, the grounding prompt and the
Gemini REST provider.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List

import aiohttp

from .errors import GenerationProviderError
from .logging_config import logger

EMPTY_ANSWER = "Sorry, I could not generate a response."

SYSTEM_PROMPT = (
    "You are a helpful AI assistant that answers questions about PDF documents.\n"
    "Use ONLY the provided context to answer the user's question accurately and concisely.\n"
    "Each context passage starts with its page, e.g. [Page 3].\n"
    "Always cite page numbers when referencing information, e.g. (page 3).\n"
    "If the answer isn't in the context, say that the document does not contain enough "
    "information to answer."
)


def build_user_prompt(question: str, context: str) -> str:
    return f"Context from the document:\n{context}\n\nUser Question:\n{question}"


def build_messages(question: str, context: str) -> List[Dict[str, str]]:
    """Chat-style messages for providers that take a system role."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_user_prompt(question, context)},
    ]


class GenerationProvider(ABC):
    """Produces a free-text answer from a question and document context."""

    def __init__(self, model_name: str):
        self.model_name = model_name

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def _complete(self, question: str, context: str) -> str:
        pass

    async def generate(self, question: str, context: str) -> str:
        """
        Raises:
            GenerationProviderError: if the provider call fails
        """
        try:
            answer = await self._complete(question, context)
        except GenerationProviderError:
            raise
        except Exception as e:
            logger.error("Generation failed", provider=self.provider_name, model=self.model_name, error=str(e))
            raise GenerationProviderError(f"{self.provider_name} generation failed: {e}") from e
        answer = (answer or "").strip()
        return answer or EMPTY_ANSWER


class GeminiGenerationProvider(GenerationProvider):
    """Google Gemini via the generateContent REST endpoint."""

    def __init__(self, api_key: str, model_name: str, base_url: str, timeout_sec: float = 120.0):
        super().__init__(model_name)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)

    @property
    def provider_name(self) -> str:
        return "gemini"

    async def _complete(self, question: str, context: str) -> str:
        url = f"{self.base_url}/{self.model_name}:generateContent"
        prompt = f"{SYSTEM_PROMPT}\n\n{build_user_prompt(question, context)}"
        body = {"contents": [{"parts": [{"text": prompt}]}]}

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(url, params={"key": self.api_key}, json=body) as resp:
                    if resp.status != 200:
                        error_text = await resp.text()
                        raise GenerationProviderError(f"Gemini API error: {resp.status} {error_text}")
                    result = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GenerationProviderError(f"Gemini request failed: {e}") from e

        try:
            return result["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return ""
