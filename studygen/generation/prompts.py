"""Prompt construction for study-set generation.

All functions here are pure: same input, same prompt.
"""

import base64

from studygen.core.models import DocumentSource, ImageSource, TopicSource
from studygen.generation.providers.base import InlineImage, PromptContents

FORMAT_CONSTRAINTS = """Format constraints:
- Flashcards: 4-12 items.
- Front: Question (1 sentence).
- Back: Answer (max 60 words).
- Summary: 2-4 sentences.
- Quiz: 15 multiple choice questions.
- Output: Strict JSON only.

Ensure the "id" field for flashcards is a unique string."""

# Upper bound on document text forwarded to the model
MAX_DOCUMENT_CHARS = 30000


def _instructions_block(instructions: str | None) -> str:
    if instructions and instructions.strip():
        return f"\nUser instructions: {instructions.strip()}\n"
    return ""


def topic_prompt(topic: str) -> str:
    return f'Generate a study set for the topic: "{topic}".\n\n{FORMAT_CONSTRAINTS}\n'


def document_prompt(text: str, instructions: str | None = None) -> str:
    excerpt = text[:MAX_DOCUMENT_CHARS]
    return (
        "Generate a study set from the following document. Infer a short, "
        "descriptive topic name from its content.\n"
        f"{_instructions_block(instructions)}\n"
        f"Document:\n\"\"\"\n{excerpt}\n\"\"\"\n\n{FORMAT_CONSTRAINTS}\n"
    )


def image_prompt(instructions: str | None = None) -> str:
    return (
        "Generate a study set from the attached image. Read any text, diagrams "
        "or notes it contains and infer a short, descriptive topic name.\n"
        f"{_instructions_block(instructions)}\n{FORMAT_CONSTRAINTS}\n"
    )


def build_prompt(source: TopicSource | DocumentSource | ImageSource) -> PromptContents:
    """Build model contents for a generation input.

    Raises:
        TypeError: For an input variant with no prompt builder
    """
    if isinstance(source, TopicSource):
        return topic_prompt(source.topic)
    if isinstance(source, DocumentSource):
        return document_prompt(source.text, source.instructions)
    if isinstance(source, ImageSource):
        return [
            image_prompt(source.instructions),
            InlineImage(
                data=base64.b64decode(source.data), mime_type=source.mime_type
            ),
        ]
    raise TypeError(f"Unsupported source input: {type(source).__name__}")


def build_corrective_prompt(original: str, last_error: str) -> str:
    """Append the previous attempt's failure to the original prompt."""
    return (
        f"{original}\n\n"
        "IMPORTANT: Your previous attempt failed.\n"
        f"Error details: {last_error}\n\n"
        "Please correct the JSON output. Ensure strict adherence to the schema."
    )
