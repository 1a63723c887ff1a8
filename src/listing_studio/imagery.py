"""Data-URI helpers: images travel through the studio as directly displayable URIs."""
from __future__ import annotations

import base64
import binascii
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from listing_studio.providers.base import InlineImage

_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "image/webp": "webp", "image/gif": "gif"}


def is_data_uri(value: str | None) -> bool:
    return bool(value) and value.startswith("data:")


def sniff_mime_type(data: bytes, default: str = "image/png") -> str:
    try:
        with Image.open(BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError):
        return default
    return Image.MIME.get(fmt or "", default)


def parse_data_uri(uri: str) -> InlineImage:
    """Decode ``data:<mime>;base64,<payload>`` into raw bytes.

    The declared mime type is trusted only when it names an image; otherwise
    the bytes are sniffed.
    """
    if not is_data_uri(uri) or "," not in uri:
        raise ValueError("not a data URI")
    header, payload = uri.split(",", 1)
    if ";base64" not in header:
        raise ValueError("only base64 data URIs are supported")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid base64 payload: {exc}") from exc

    mime = header[len("data:") :].split(";", 1)[0].strip().lower()
    if not mime.startswith("image/"):
        mime = sniff_mime_type(data)
    return InlineImage(data=data, mime_type=mime)


def to_data_uri(image: InlineImage) -> str:
    encoded = base64.b64encode(image.data).decode("ascii")
    return f"data:{image.mime_type};base64,{encoded}"


def file_extension(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type, "png")
