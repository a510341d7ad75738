"""Model provider implementations."""

from studygen.generation.providers.base import (
    EmbeddingProvider,
    GenerativeModel,
    InlineImage,
    PromptContents,
)
from studygen.generation.providers.gemini import GeminiEmbeddingProvider, GeminiModel

__all__ = [
    "EmbeddingProvider",
    "GeminiEmbeddingProvider",
    "GeminiModel",
    "GenerativeModel",
    "InlineImage",
    "PromptContents",
]
