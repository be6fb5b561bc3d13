"""File attachments: base64 payloads with a detected MIME type."""

import base64
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


class UnsupportedAttachmentError(ValueError):
    """Raised when an attachment type cannot be sent to a model."""


@dataclass(frozen=True)
class Attachment:
    """A file ready to be embedded in a message.

    Attributes:
        filename: Base name of the file.
        mime_type: Detected MIME type.
        base64_data: File content, base64 encoded.
    """

    filename: str
    mime_type: str
    base64_data: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"


def create_attachment(file_path: str | Path) -> Attachment:
    """Read a file and encode it as an Attachment.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(file_path).expanduser().resolve()
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")

    logger.debug("Creating attachment for %s", path)
    mime_type, _ = mimetypes.guess_type(path.name)

    return Attachment(
        filename=path.name,
        mime_type=mime_type or DEFAULT_MIME_TYPE,
        base64_data=base64.b64encode(path.read_bytes()).decode("ascii"),
    )


def attachment_to_content(attachment: Attachment) -> dict[str, Any]:
    """Build a chat content part for an image or PDF attachment.

    Raises:
        UnsupportedAttachmentError: For anything that is not an image or PDF.
    """
    if attachment.mime_type.startswith("image/"):
        return {"type": "image_url", "image_url": {"url": attachment.data_url}}

    if attachment.mime_type == "application/pdf":
        return {
            "type": "file",
            "file": {"filename": attachment.filename, "file_data": attachment.data_url},
        }

    raise UnsupportedAttachmentError(f"Unsupported file type: {attachment.mime_type}")
