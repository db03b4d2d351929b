"""Image attachment decoding.

User turns may carry one image. Clients send it as a data URL
(`data:image/png;base64,...`); the backend wants the bare base64 payload plus
its mime type, so the prefix is split off here and kept only for display.
"""

import asyncio
import base64
import binascii
import mimetypes
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

DEFAULT_IMAGE_MIME = "image/jpeg"

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=.-]+)*;base64,(?P<data>.*)$", re.DOTALL)


class InvalidImageError(ValueError):
    """Attachment isn't a decodable image payload."""
    pass


class ImageAttachment(BaseModel):
    """Base64 image payload without the data-URL prefix."""
    model_config = ConfigDict(frozen=True)

    mime_type: str = DEFAULT_IMAGE_MIME
    data: str

    @field_validator("mime_type")
    @classmethod
    def _must_be_image(cls, value: str) -> str:
        if not value.startswith("image/"):
            raise InvalidImageError(f"Unsupported attachment type: {value}")
        return value

    @field_validator("data")
    @classmethod
    def _must_be_base64(cls, value: str) -> str:
        if not value:
            raise InvalidImageError("Image payload is empty")
        try:
            base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            raise InvalidImageError("Image payload is not valid base64")
        return value

    @classmethod
    def from_data_url(cls, value: str) -> "ImageAttachment":
        """Parse a data URL, or a bare base64 payload (assumed JPEG).

        Raises:
            InvalidImageError: If the payload or mime type is invalid.
        """
        value = value.strip()
        match = _DATA_URL_RE.match(value)
        if match:
            mime = match.group("mime") or DEFAULT_IMAGE_MIME
            return cls._build(mime, match.group("data").strip())
        if value.startswith("data:"):
            raise InvalidImageError("Only base64 data URLs are supported")
        return cls._build(DEFAULT_IMAGE_MIME, value)

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str = DEFAULT_IMAGE_MIME) -> "ImageAttachment":
        return cls._build(mime_type, base64.b64encode(raw).decode("ascii"))

    @classmethod
    def _build(cls, mime_type: str, data: str) -> "ImageAttachment":
        try:
            return cls(mime_type=mime_type, data=data)
        except ValidationError as e:
            raise InvalidImageError(str(e.errors()[0]["msg"])) from e

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


async def load_image(path: str | Path) -> ImageAttachment:
    """Read an image file off the event loop.

    Args:
        path: Image file on disk.

    Returns:
        ImageAttachment with the mime type guessed from the extension.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        InvalidImageError: If the extension isn't an image type or the file is empty.
    """
    file_path = Path(path)
    mime_type, _ = mimetypes.guess_type(file_path.name)
    if not mime_type or not mime_type.startswith("image/"):
        raise InvalidImageError(f"Not an image file: {file_path.name}")

    raw = await asyncio.to_thread(file_path.read_bytes)
    return ImageAttachment.from_bytes(raw, mime_type)
