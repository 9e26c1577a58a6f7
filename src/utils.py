"""Shared utility functions for the lookbook studio application."""

import base64
import binascii
import re
from datetime import datetime
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from PIL.PngImagePlugin import PngInfo


_DATA_URL_PATTERN = re.compile(r'^data:(?P<mime>[\w/+.-]+)?(?:;[\w=-]+)*;base64,(?P<data>.*)$', re.DOTALL)


def guess_mime_type(data: bytes) -> str:
    """Guess an image MIME type from its magic bytes, defaulting to PNG."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"


def decode_data_url(value: str) -> bytes:
    """Decode a base64 data URL, or a bare base64 string, to bytes.

    Raises:
        ValueError: If the value is empty or not valid base64
    """
    if not value:
        raise ValueError("Empty image data")
    match = _DATA_URL_PATTERN.match(value.strip())
    payload = match.group("data") if match else value.strip()
    try:
        data = base64.b64decode(payload, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 image data: {e}") from e
    if not data:
        raise ValueError("Empty image data")
    return data


def encode_data_url(data: bytes) -> str:
    """Encode image bytes as a base64 data URL."""
    return f"data:{guess_mime_type(data)};base64,{base64.b64encode(data).decode('ascii')}"


def slugify(text: str) -> str:
    """Lowercase a label and collapse anything non-alphanumeric to underscores."""
    slug = re.sub(r'[^a-z0-9]+', '_', text.lower()).strip('_')
    return slug or "image"


def slot_filename(index: int, label: str) -> str:
    """Filename for the index-th slot image of a batch: 01_front.png"""
    return f"{index:02d}_{slugify(label)}.png"


def batch_dir_name(kind: str, timestamp: datetime | None = None) -> str:
    """Directory name for a batch run: {timestamp}_{kind}"""
    timestamp = timestamp or datetime.now()
    return f"{timestamp.strftime('%Y%m%d_%H%M%S')}_{slugify(kind)}"


def save_slot_image(image_bytes: bytes, dest: Path, metadata: dict) -> Path:
    """Save generated image bytes as PNG with metadata in PNG text chunks.

    Args:
        image_bytes: Encoded image as returned by the model
        dest: Destination path
        metadata: Key/value pairs to embed; None values are skipped

    Returns:
        The destination path

    Raises:
        ValueError: If the bytes cannot be decoded as an image
    """
    try:
        img = Image.open(BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Cannot decode image: {e}") from e

    png_info = PngInfo()
    for key, value in metadata.items():
        if value is not None:
            png_info.add_text(key, str(value))

    dest.parent.mkdir(parents=True, exist_ok=True)
    img.save(dest, format="PNG", pnginfo=png_info)
    return dest


def read_png_metadata(image_path: Path) -> dict:
    """Read the text chunks embedded in a saved PNG.

    Returns:
        Dictionary of embedded metadata, empty if the file is missing or unreadable
    """
    try:
        with Image.open(image_path) as img:
            return dict(getattr(img, "text", {}))
    except (UnidentifiedImageError, OSError):
        return {}
