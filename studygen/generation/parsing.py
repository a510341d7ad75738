"""Turn raw model output into a validated StudySet."""

import json
import re
from typing import Any

from pydantic import ValidationError

from studygen.core.exceptions import InvalidJSONError, SchemaValidationError
from studygen.core.models import StudySet

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

# Response schema handed to the model (OpenAPI subset accepted by Gemini)
STUDY_SET_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "topic": {"type": "STRING", "description": "The topic of the study set"},
        "summary": {
            "type": "STRING",
            "description": "A brief summary of the topic (2-4 sentences)",
        },
        "estimated_study_time_minutes": {
            "type": "INTEGER",
            "description": "Estimated time in minutes to study this set",
        },
        "flashcards": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "STRING"},
                    "front": {"type": "STRING"},
                    "back": {"type": "STRING"},
                    "difficulty": {
                        "type": "STRING",
                        "enum": ["easy", "medium", "hard"],
                    },
                    "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
                },
                "required": ["id", "front", "back", "difficulty", "tags"],
            },
        },
        "example_quiz_questions": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "question": {"type": "STRING"},
                    "choices": {"type": "ARRAY", "items": {"type": "STRING"}},
                    "answer_index": {
                        "type": "INTEGER",
                        "description": "Index of the correct answer in choices",
                    },
                },
                "required": ["question", "choices", "answer_index"],
            },
        },
    },
    "required": [
        "topic",
        "summary",
        "estimated_study_time_minutes",
        "flashcards",
        "example_quiz_questions",
    ],
}


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (```json ... ```) around a payload."""
    return _FENCE_RE.sub("", text).strip()


def _format_issue(error: dict[str, Any]) -> str:
    path = ".".join(str(part) for part in error["loc"])
    return f"{path}: {error['msg']}"


def parse_study_set(text: str) -> StudySet:
    """Parse and validate model output.

    Raises:
        InvalidJSONError: Output is not JSON
        SchemaValidationError: JSON does not match the study-set schema
    """
    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise InvalidJSONError(details={"position": e.pos}) from e

    if not isinstance(data, dict):
        raise SchemaValidationError(
            [f"(root): expected object, got {type(data).__name__}"]
        )

    # The model never assigns persisted ids
    data.pop("id", None)

    try:
        return StudySet.model_validate(data)
    except ValidationError as e:
        raise SchemaValidationError([_format_issue(err) for err in e.errors()]) from e
