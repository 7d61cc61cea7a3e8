import asyncio

import aiohttp

from .errors import GenerationProviderError
from .generation import GenerationProvider, build_messages
from .logging_config import logger


class OllamaGenerationProvider(GenerationProvider):
    """Local models served by Ollama's /api/chat (non-streaming)."""

    def __init__(self, model_name: str, base_url: str = "http://ollama:11434", timeout_sec: float = 300.0):
        super().__init__(model_name)
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)

    @property
    def provider_name(self) -> str:
        return "ollama"

    async def _complete(self, question: str, context: str) -> str:
        logger.info("Sent request to Ollama model", model=self.model_name)
        payload = {"model": self.model_name, "messages": build_messages(question, context), "stream": False}
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(f"{self.base_url}/api/chat", json=payload) as resp:
                    if resp.status != 200:
                        raise GenerationProviderError(f"Ollama error: {resp.status} {await resp.text()}")
                    data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GenerationProviderError(f"Ollama request failed: {e}") from e
        return (data.get("message") or {}).get("content", "")
