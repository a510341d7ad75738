"""Upload validation and text extraction for POST /generate/file."""

from dataclasses import dataclass
from pathlib import PurePath

import fitz

from studygen.core.defaults import (
    DOCUMENT_MIME_TYPES,
    IMAGE_MIME_TYPES,
    MAX_UPLOAD_BYTES,
)
from studygen.core.exceptions import InputValidationError


@dataclass
class ExtractedUpload:
    """A validated upload: either document text or raw image bytes."""

    title: str
    text: str | None = None
    image: bytes | None = None
    mime_type: str | None = None

    @property
    def is_image(self) -> bool:
        return self.image is not None


def _extension(filename: str) -> str:
    return PurePath(filename).suffix.lower().lstrip(".")


def extract_pdf_text(data: bytes) -> str:
    """Concatenate the text layer of every page."""
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            return "\n".join(page.get_text() for page in doc)
    except (fitz.FileDataError, RuntimeError) as e:
        raise InputValidationError(
            "Could not read PDF", details={"error": str(e)}
        ) from e


def extract_upload(
    filename: str | None,
    data: bytes,
    content_type: str | None = None,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> ExtractedUpload:
    """Validate an upload and pull out what the prompt builder needs.

    The extension decides the handling; a declared content type that
    disagrees with it is rejected.

    Raises:
        InputValidationError: Missing name, empty or oversized file,
            unsupported or mismatched type, unreadable content
    """
    if not filename:
        raise InputValidationError("File is required")
    if not data:
        raise InputValidationError("File is empty")
    if len(data) > max_bytes:
        raise InputValidationError(
            f"File exceeds the {max_bytes // (1024 * 1024)} MB upload limit"
        )

    ext = _extension(filename)
    expected = DOCUMENT_MIME_TYPES.get(ext) or IMAGE_MIME_TYPES.get(ext)
    if expected is None:
        supported = ", ".join(sorted({*DOCUMENT_MIME_TYPES, *IMAGE_MIME_TYPES}))
        raise InputValidationError(
            f"Unsupported file type '.{ext}'", details={"supported": supported}
        )
    declared = (content_type or "").split(";")[0].strip().lower()
    if declared and declared != "application/octet-stream" and declared != expected:
        raise InputValidationError(
            f"Content type {declared} does not match .{ext} file"
        )

    title = PurePath(filename).stem or filename
    if ext in IMAGE_MIME_TYPES:
        return ExtractedUpload(title=title, image=data, mime_type=expected)

    if ext == "pdf":
        text = extract_pdf_text(data)
    else:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InputValidationError("Text file is not valid UTF-8") from e
    return ExtractedUpload(title=title, text=text)
