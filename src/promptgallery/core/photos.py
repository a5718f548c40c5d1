"""Validation of photo references submitted with new posts.

A photo is accepted in one of three forms:

- an ``http://`` or ``https://`` URL, stored as-is;
- a ``data:image/<type>;base64,<data>`` URI;
- bare base64 data, as returned by the image-generation gateway.

Inline data is decoded and opened with Pillow so that truncated or
non-image payloads are rejected before they reach the database.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re

from PIL import Image, UnidentifiedImageError

from promptgallery.core.errors import ValidationError

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:image/[\w.+-]+;base64,(?P<data>.*)$", re.DOTALL)


def is_remote_url(photo: str) -> bool:
    return photo.startswith(("http://", "https://"))


def decode_inline_photo(photo: str) -> bytes:
    """Decode a data URI or bare base64 string into raw bytes.

    Raises:
        ValidationError: If the data is not valid base64.
    """
    match = _DATA_URI_RE.match(photo)
    data = match.group("data") if match else photo
    try:
        return base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("photo is not valid base64 image data") from e


def validate_photo(photo: str) -> str:
    """Check a photo reference and return it unchanged.

    Args:
        photo: URL, data URI, or bare base64 string.

    Returns:
        The stripped photo reference.

    Raises:
        ValidationError: If the photo is blank, or inline data does not
            decode to an image Pillow can identify within its pixel limit.
    """
    photo = (photo or "").strip()
    if not photo:
        raise ValidationError("photo is required")
    if is_remote_url(photo):
        return photo
    if photo.startswith("data:") and not _DATA_URI_RE.match(photo):
        raise ValidationError("photo data URI must be a base64 encoded image")

    raw = decode_inline_photo(photo)
    try:
        with Image.open(io.BytesIO(raw)) as image:
            image.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        logger.debug(f"Rejected inline photo: {e}")
        raise ValidationError("photo is not a recognised image") from e
    return photo
