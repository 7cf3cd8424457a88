from __future__ import annotations

from io import BytesIO
from pathlib import Path

from PIL import Image

from mentor.errors import RequestValidationError

DEFAULT_MIME_TYPE = "image/png"

EXTENSION_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
}


def _mime_from_magic(data: bytes) -> str | None:
    if len(data) < 4:
        return None
    if data[:4] == b"\x89PNG":
        return "image/png"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:4] == b"GIF8":
        return "image/gif"
    if data[:2] == b"BM":
        return "image/bmp"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def detect_mime_type(data: bytes, path: str | Path | None = None) -> str:
    """Detect an image MIME type from the file extension, then the byte signature."""
    if path:
        mime = EXTENSION_MIME_TYPES.get(Path(path).suffix.lower())
        if mime:
            return mime
    if data:
        mime = _mime_from_magic(data)
        if mime:
            return mime
    return DEFAULT_MIME_TYPE


def convert_to_png(data: bytes, mime_type: str) -> bytes:
    """Re-encode an image as PNG. PNG input is returned unchanged."""
    if mime_type.lower() == DEFAULT_MIME_TYPE:
        return data
    try:
        with Image.open(BytesIO(data)) as image:
            if image.mode == "CMYK":
                image = image.convert("RGB")
            buffer = BytesIO()
            image.save(buffer, format="PNG")
    except (OSError, ValueError) as exc:
        raise RequestValidationError(f"Failed to convert image with MIME type {mime_type} to PNG") from exc
    return buffer.getvalue()
