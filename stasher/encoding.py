"""
Base64URL Codec
Unpadded URL-safe base64 with length arithmetic that never allocates.

decoded_length() tells a caller how many bytes a string would decode to,
from its length alone. Tokens and payload fields are rejected on length
before any decode is attempted.
"""

import base64
import binascii
import re


BASE64URL_RE = re.compile(r"^[A-Za-z0-9_-]*$")
BASE64_RE = re.compile(r"^(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?$")
# Either alphabet, as found in legacy and current tokens
_MIXED_RE = re.compile(r"^[A-Za-z0-9+/_-]*={0,2}$")


def is_base64url(text: str) -> bool:
    """True if text uses only the unpadded base64url alphabet."""
    return isinstance(text, str) and bool(BASE64URL_RE.fullmatch(text))


def is_base64(text: str) -> bool:
    """True if text is standard, padded base64 (length a multiple of 4)."""
    return isinstance(text, str) and len(text) % 4 == 0 and bool(BASE64_RE.fullmatch(text))


def decoded_length(encoded: str) -> int | None:
    """
    Compute the decoded byte length of a base64 / base64url string.

    Padded input must be a multiple of 4 long with at most two trailing
    '=' characters. Unpadded input is measured as if padding were added.

    Args:
        encoded: The encoded text. Only its length and padding are inspected.

    Returns:
        The number of bytes the text decodes to, or None if no valid
        encoding has this shape.
    """
    if not isinstance(encoded, str):
        return None

    length = len(encoded)

    if "=" in encoded:
        stripped = encoded.rstrip("=")
        pad_count = length - len(stripped)
        if "=" in stripped or pad_count > 2 or length % 4:
            return None
        return (length // 4) * 3 - pad_count

    # One leftover character carries only 6 bits: not a whole byte
    if length % 4 == 1:
        return None

    pad_needed = (4 - length % 4) % 4
    return ((length + pad_needed) * 3) // 4 - pad_needed


def b64url_encode(data: bytes | bytearray | memoryview) -> str:
    """Encode bytes as unpadded base64url."""
    return base64.urlsafe_b64encode(bytes(data)).rstrip(b"=").decode("ascii")


def b64url_decode(text: str) -> bytearray:
    """
    Decode strict, unpadded base64url.

    Raises:
        ValueError: If text contains characters outside [A-Za-z0-9_-] or
            has an impossible length.
    """
    if not is_base64url(text) or decoded_length(text) is None:
        raise ValueError("Invalid base64url format")
    padded = text + "=" * (-len(text) % 4)
    try:
        return bytearray(base64.urlsafe_b64decode(padded))
    except binascii.Error as e:
        raise ValueError("Invalid base64url format") from e


def b64_decode(text: str) -> bytearray:
    """
    Decode base64url or standard base64.

    Keys written by older releases used standard padded base64, so key
    decoding accepts both alphabets. Everything new is emitted as base64url.

    Raises:
        ValueError: On characters outside both alphabets or a bad length.
    """
    if not isinstance(text, str) or not _MIXED_RE.fullmatch(text) or decoded_length(text) is None:
        raise ValueError("Invalid base64 format")

    normalized = text.rstrip("=").replace("-", "+").replace("_", "/")
    normalized += "=" * (-len(normalized) % 4)
    try:
        return bytearray(base64.b64decode(normalized, validate=True))
    except binascii.Error as e:
        raise ValueError("Invalid base64 format") from e
