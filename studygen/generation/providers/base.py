"""Provider interfaces for the generative model and the embedding model."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class InlineImage:
    """Raw image bytes sent alongside a text prompt."""

    data: bytes
    mime_type: str


PromptContents = str | list[str | InlineImage]


class GenerativeModel(ABC):
    """Structured-output text generation."""

    name: str

    @abstractmethod
    async def generate(
        self,
        contents: PromptContents,
        schema: dict[str, Any],
        temperature: float,
    ) -> str:
        """Generate a JSON document for the given prompt.

        Args:
            contents: Prompt text, or text and inline image parts
            schema: Response schema the model is asked to follow
            temperature: Sampling temperature

        Returns:
            Raw response text (may be empty or fenced)

        Raises:
            Exception: Any transport or service error, unwrapped
        """


class EmbeddingProvider(ABC):
    """Text to fixed-size vector."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed a single text. Returns an empty list if the service
        answered without a vector."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass
