"""
Image preparation before a receipt photo goes to the scanner.

Phone photos often carry their rotation only in EXIF metadata; the scanner
reads raw pixels, so orientation is baked in and the image re-encoded as JPEG.
"""
import io
import logging
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger("dinesplit.image")

GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


def sniff_media_type(data: bytes) -> Optional[str]:
    """Media type from magic bytes, or None when the format is not recognised."""
    if data[:4] == b'\x89PNG':
        return "image/png"
    if data[:3] == b'\xff\xd8\xff':
        return "image/jpeg"
    if data[:4] in (b'MM\x00\x2a', b'II\x2a\x00'):
        return "image/tiff"
    if data[:4] == b'RIFF' and data[8:12] == b'WEBP':
        return "image/webp"
    if data[4:12] in (b'ftypheic', b'ftypheix', b'ftypmif1'):
        return "image/heic"
    return None


def resolve_media_type(data: bytes, declared: Optional[str]) -> str:
    """Trust the upload's content type unless it is missing or generic."""
    declared = (declared or "").strip().lower()
    if declared not in GENERIC_MIME_TYPES:
        return declared
    return sniff_media_type(data) or "image/jpeg"


def prepare_image(data: bytes, filename: str, mime_type: Optional[str]) -> tuple[bytes, str, str]:
    """
    Normalise EXIF orientation and re-encode as JPEG (quality 92 keeps small
    receipt print legible).  Returns (bytes, filename, media_type).
    If Pillow cannot read the file the original bytes are sent unchanged.
    """
    media_type = resolve_media_type(data, mime_type)
    try:
        img = Image.open(io.BytesIO(data))
        img = ImageOps.exif_transpose(img)
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=92, optimize=True)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning("Image normalise failed, sending raw bytes: %s", e)
        return data, filename, media_type

    stem = filename.rsplit(".", 1)[0] if "." in filename else filename
    logger.debug("Re-encoded %s: %d KB → %d KB", filename, len(data) // 1024, buf.tell() // 1024)
    return buf.getvalue(), f"{stem or 'receipt'}.jpg", "image/jpeg"
