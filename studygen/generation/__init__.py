"""Study-set generation: prompts, output validation and the model client."""

from studygen.generation.client import GenerationClient
from studygen.generation.parsing import (
    STUDY_SET_RESPONSE_SCHEMA,
    parse_study_set,
    strip_code_fences,
)
from studygen.generation.prompts import build_corrective_prompt, build_prompt
from studygen.generation.providers.base import (
    EmbeddingProvider,
    GenerativeModel,
    InlineImage,
)

__all__ = [
    "EmbeddingProvider",
    "GenerationClient",
    "GenerativeModel",
    "InlineImage",
    "STUDY_SET_RESPONSE_SCHEMA",
    "build_corrective_prompt",
    "build_prompt",
    "parse_study_set",
    "strip_code_fences",
]
