"""LLM provider adapters."""

from media_engine.adapters.llm.base import LLMProvider, LLMResponse, ResponseSchema, VisionMessage
from media_engine.adapters.llm.openai import OpenAICompatibleProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "OpenAICompatibleProvider",
    "ResponseSchema",
    "VisionMessage",
]
