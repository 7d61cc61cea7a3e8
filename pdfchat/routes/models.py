"""
Model-related API routes.
Handles listing available LLM models.
"""
from fastapi import APIRouter

from ..config import get_settings
from ..services.model_service import get_available_models

router = APIRouter(prefix="/api", tags=["models"])


@router.get("/models")
async def list_available_models():
    """
    Return all supported LLM models grouped by provider, plus the default.

    Example response:
    {
        "default": "openai:gpt-4o-mini",
        "models": {"openai": ["gpt-4o-mini"], "gemini": ["gemini-2.5-flash"], "ollama": ["qwen2.5:7b"]}
    }
    """
    return {"default": get_settings().chat_model, "models": get_available_models()}
