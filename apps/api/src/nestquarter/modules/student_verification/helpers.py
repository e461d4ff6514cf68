"""
Student Verification Helpers

Evidence document parsing and small formatting utilities shared by the
service, the routers and the background job.
"""

import base64
import binascii
import re
from dataclasses import dataclass

ALLOWED_DOCUMENT_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "application/pdf",
    }
)

_DATA_URL_RE = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[^;,]+)*;base64,(?P<data>.*)$",
    re.S,
)


class DocumentTypeError(ValueError):
    """The payload is not a data URL of an allowed MIME type."""


class DocumentSizeError(ValueError):
    """The decoded payload exceeds the size limit."""

    def __init__(self, size: int, max_bytes: int):
        self.size = size
        self.max_bytes = max_bytes
        super().__init__(f"Document is {size} bytes, limit is {max_bytes}")


@dataclass(frozen=True)
class Document:
    """A decoded evidence document."""

    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def parse_document(data_url: str, max_bytes: int | None = None) -> Document:
    """
    Decode and validate an evidence document submitted as a data URL.

    Args:
        data_url: "data:<mime>;base64,<payload>"
        max_bytes: Maximum decoded size, or None to skip the size check

    Returns:
        The decoded Document

    Raises:
        DocumentTypeError: Malformed data URL, bad base64, empty content or
            disallowed MIME type
        DocumentSizeError: Decoded content larger than max_bytes
    """
    match = _DATA_URL_RE.match(data_url.strip())
    if not match:
        raise DocumentTypeError("Document is not a base64 data URL")

    mime_type = match.group("mime").lower()
    if mime_type not in ALLOWED_DOCUMENT_TYPES:
        raise DocumentTypeError(f"Document type {mime_type} is not allowed")

    encoded = match.group("data")
    # Reject before decoding when even the encoded form is clearly too large
    if max_bytes is not None and len(encoded) * 3 // 4 > max_bytes + 3:
        raise DocumentSizeError(len(encoded) * 3 // 4, max_bytes)

    try:
        content = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DocumentTypeError("Document payload is not valid base64") from e

    if not content:
        raise DocumentTypeError("Document is empty")

    if max_bytes is not None and len(content) > max_bytes:
        raise DocumentSizeError(len(content), max_bytes)

    return Document(mime_type=mime_type, content=content)


def has_payload(data_url: str) -> bool:
    """False for a blank value or a data URL whose payload is empty."""
    value = data_url.strip()
    if not value:
        return False
    _, comma, payload = value.partition(",")
    return not comma or bool(payload.strip())


def format_megabytes(num_bytes: int) -> str:
    """Human size for limits, e.g. 10485760 -> "10MB"."""
    return f"{num_bytes // (1024 * 1024)}MB"
