"""
smsbr/imaging.py
Default image decode collaborator for the content parser.

Only dimensions are read. Pillow's open() is lazy: it parses the header and
stops, so large payloads are not rasterized.
"""

import base64
import binascii
import io
import logging
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from smsbr.exceptions import ImageDecodeError
from smsbr.models.record import ImageAttachment

logger = logging.getLogger(__name__)


def decode_image(mime_type: str, payload: str) -> Tuple[int, int]:
    """
    Return (width, height) of a base64-encoded image.
    Raises ImageDecodeError when the payload is not a readable image.
    """
    try:
        raw = base64.b64decode(payload)
        with Image.open(io.BytesIO(raw)) as img:
            return img.size
    except (binascii.Error, UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Cannot decode {mime_type} payload: {e}") from e


def fit_to_height(image: ImageAttachment, max_height: int) -> Tuple[int, int]:
    """Scale image dimensions down to max_height, keeping the aspect ratio."""
    if image.height <= max_height:
        return image.width, image.height
    ratio = max_height / image.height
    return int(ratio * image.width), max_height
