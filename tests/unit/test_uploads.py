"""Unit tests for upload validation and extraction."""

import fitz
import pytest

from studygen.api.uploads import extract_pdf_text, extract_upload
from studygen.core.exceptions import InputValidationError


def _pdf_bytes(text: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def test_pdf_text_extracted():
    upload = extract_upload(
        "Photosynthesis Notes.pdf",
        _pdf_bytes("Chlorophyll absorbs light."),
        content_type="application/pdf",
    )

    assert upload.title == "Photosynthesis Notes"
    assert "Chlorophyll absorbs light." in upload.text
    assert upload.is_image is False


def test_corrupt_pdf():
    with pytest.raises(InputValidationError, match="Could not read PDF"):
        extract_pdf_text(b"%PDF-1.4 this is not really a pdf")


def test_text_file():
    upload = extract_upload("notes.TXT", "Zellatmung – ATP".encode())

    assert upload.text == "Zellatmung – ATP"
    assert upload.title == "notes"


def test_text_must_be_utf8():
    with pytest.raises(InputValidationError, match="UTF-8"):
        extract_upload("notes.txt", b"\xff\xfe\xfa")


@pytest.mark.parametrize(
    "filename, mime_type",
    [
        ("leaf.png", "image/png"),
        ("leaf.jpg", "image/jpeg"),
        ("leaf.jpeg", "image/jpeg"),
    ],
)
def test_images_kept_as_bytes(filename, mime_type):
    upload = extract_upload(filename, b"\x00\x01binary", content_type=mime_type)

    assert upload.is_image
    assert upload.image == b"\x00\x01binary"
    assert upload.mime_type == mime_type
    assert upload.title == "leaf"


def test_octet_stream_accepted():
    upload = extract_upload(
        "leaf.png", b"img", content_type="application/octet-stream"
    )
    assert upload.mime_type == "image/png"


@pytest.mark.parametrize(
    "filename, data, content_type, message",
    [
        (None, b"x", None, "File is required"),
        ("", b"x", None, "File is required"),
        ("notes.txt", b"", None, "File is empty"),
        ("slides.pptx", b"x", None, "Unsupported file type '.pptx'"),
        ("README", b"x", None, "Unsupported file type '.'"),
        ("leaf.png", b"x", "text/plain", "does not match .png"),
    ],
)
def test_rejections(filename, data, content_type, message):
    with pytest.raises(InputValidationError) as exc_info:
        extract_upload(filename, data, content_type=content_type)
    assert message in exc_info.value.message


def test_size_limit():
    with pytest.raises(InputValidationError, match="upload limit"):
        extract_upload("notes.txt", b"x" * 2048, max_bytes=1024)
