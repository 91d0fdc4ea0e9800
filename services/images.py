"""
Image payload handling for the scoring API.

Images arrive as data URLs or bare base64 (standard or URL-safe alphabet).
They are decoded and size-checked before any provider is involved.
"""

import base64
import binascii
import re
from typing import Optional

from core.errors import ImageTooLargeError, ScoreValidationError

_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)


def strip_data_url(value: str) -> str:
    return _DATA_URL_PREFIX.sub("", value or "", count=1)


def normalize_base64(value: str) -> str:
    s = value.replace("-", "+").replace("_", "/")
    s = re.sub(r"\s+", "", s)
    pad = len(s) % 4
    if pad == 1:
        raise ScoreValidationError("Invalid base64 image: impossible payload length")
    if pad:
        s += "=" * (4 - pad)
    return s


def decode_image(value: str) -> bytes:
    raw = normalize_base64(strip_data_url(value))
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise ScoreValidationError("Invalid base64 image payload")


def approx_decoded_bytes(value: str) -> int:
    """Decoded size without decoding; used when the payload is not valid base64."""
    body = re.sub(r"\s+", "", strip_data_url(value))
    return (len(body) * 3) // 4


def decode_checked(value: Optional[str], field_name: str, max_bytes: int) -> Optional[bytes]:
    if not value:
        return None
    # Cheap reject before paying for the decode
    if approx_decoded_bytes(value) > max_bytes + 3:
        raise ImageTooLargeError(f"{field_name} exceeds the {max_bytes} byte limit")
    data = decode_image(value)
    if len(data) > max_bytes:
        raise ImageTooLargeError(f"{field_name} exceeds the {max_bytes} byte limit")
    if not data:
        raise ScoreValidationError(f"{field_name} is empty")
    return data
