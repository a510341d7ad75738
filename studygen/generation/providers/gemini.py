"""Gemini implementations of the provider interfaces (google-genai SDK)."""

import logging
from typing import Any

from google import genai
from google.genai import types

from studygen.core.defaults import (
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_GENERATION_MODEL,
    EMBEDDING_DIMENSIONS,
    SYSTEM_INSTRUCTION,
)
from studygen.generation.providers.base import (
    EmbeddingProvider,
    GenerativeModel,
    InlineImage,
    PromptContents,
)

logger = logging.getLogger(__name__)


def _to_parts(contents: PromptContents) -> Any:
    if isinstance(contents, str):
        return contents
    parts: list[Any] = []
    for item in contents:
        if isinstance(item, InlineImage):
            parts.append(
                types.Part.from_bytes(data=item.data, mime_type=item.mime_type)
            )
        else:
            parts.append(item)
    return parts


class GeminiModel(GenerativeModel):
    """Gemini JSON-mode generation."""

    def __init__(
        self,
        api_key: str,
        name: str = DEFAULT_GENERATION_MODEL,
        client: genai.Client | None = None,
    ) -> None:
        if not api_key and client is None:
            raise ValueError("Gemini API key is required")
        self.name = name
        self._client = client or genai.Client(api_key=api_key)

    async def generate(
        self,
        contents: PromptContents,
        schema: dict[str, Any],
        temperature: float,
    ) -> str:
        response = await self._client.aio.models.generate_content(
            model=self.name,
            contents=_to_parts(contents),
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_INSTRUCTION,
                response_mime_type="application/json",
                response_schema=schema,
                temperature=temperature,
            ),
        )

        if response.usage_metadata:
            logger.debug(
                f"Gemini usage: prompt={response.usage_metadata.prompt_token_count} "
                f"completion={response.usage_metadata.candidates_token_count}"
            )
        return response.text or ""


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Gemini text embeddings (text-embedding-004, 768 dims)."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_EMBEDDING_MODEL,
        dimensions: int = EMBEDDING_DIMENSIONS,
        client: genai.Client | None = None,
    ) -> None:
        if not api_key and client is None:
            raise ValueError("Gemini API key is required")
        self.model = model
        self._dimension = dimensions
        self._client = client or genai.Client(api_key=api_key)

    async def embed(self, text: str) -> list[float]:
        response = await self._client.aio.models.embed_content(
            model=self.model,
            contents=text,
        )
        if not response.embeddings:
            return []
        return list(response.embeddings[0].values or [])

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def provider_name(self) -> str:
        return "gemini"
