from openai import AsyncOpenAI

from .generation import GenerationProvider, build_messages
from .logging_config import logger


class OpenAIGenerationProvider(GenerationProvider):
    def __init__(self, api_key: str, model_name: str = "gpt-4o-mini", temperature: float = 0.2):
        super().__init__(model_name)
        self.client = AsyncOpenAI(api_key=api_key)
        self.temperature = temperature

    @property
    def provider_name(self) -> str:
        return "openai"

    async def _complete(self, question: str, context: str) -> str:
        logger.info("Sent request to OpenAI API", model=self.model_name)
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=build_messages(question, context),
            temperature=self.temperature,
        )
        return response.choices[0].message.content or ""
