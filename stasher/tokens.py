"""
Stash Tokens
Grammar for the shareable "<uuid>:<key>" token.

The token is the only artifact a user ever sees: a version-4 UUID naming
the server-side stash, a colon, and the 32-byte encryption key as
base64url. The server never sees the key half.

parse_token() never raises. It returns a ParseResult with a specific
diagnostic (missing colon, bad UUID, missing key, wrong key length...)
so the CLI can tell the user exactly what is wrong with what they pasted.
"""

import re
from dataclasses import dataclass

from stasher.encoding import b64_decode, b64url_encode, decoded_length, is_base64, is_base64url
from stasher.envelope import KEY_SIZE, wipe
from stasher.errors import ParseErrorKind, ParseResult


UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
TOKEN_RE = re.compile(
    r"^([0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}):([A-Za-z0-9+/=_-]+)$",
    re.IGNORECASE,
)


@dataclass
class StashToken:
    """A parsed token. The caller owns `key` and must wipe it after use."""
    id: str
    key: bytearray

    def __repr__(self) -> str:
        return f"StashToken(id={self.id!r}, key=<{len(self.key)} bytes>)"


def validate_uuid(text: str) -> bool:
    """True if text is a canonical, hyphenated version-4 UUID (any case)."""
    return isinstance(text, str) and bool(UUID_RE.fullmatch(text))


def format_token(stash_id: str, key: bytes | bytearray) -> str:
    """Build the shareable token for a stash id and its key."""
    return f"{stash_id}:{b64url_encode(key)}"


def _diagnose(text: str) -> ParseResult:
    """Explain why text failed the compound token pattern."""
    if ":" not in text:
        return ParseResult.failure(
            ParseErrorKind.MISSING_COLON,
            "Missing colon separator. Expected format: uuid:base64key",
        )

    stash_id, _, key = text.partition(":")
    if not validate_uuid(stash_id):
        return ParseResult.failure(ParseErrorKind.INVALID_UUID, "Invalid uuid format")
    if not key:
        return ParseResult.failure(ParseErrorKind.MISSING_KEY, "Missing base64 key after colon")
    return ParseResult.failure(ParseErrorKind.INVALID_FORMAT, "Invalid stash token format")


def parse_token(text: str) -> ParseResult:
    """
    Validate and parse a stash token.

    Checks run cheapest first: shape, key alphabet, key length from the
    encoded length alone, and only then an actual decode.

    Args:
        text: Token as pasted by the user. Surrounding whitespace is ignored.

    Returns:
        ParseResult holding a StashToken on success.
    """
    if not isinstance(text, str) or not text.strip():
        return ParseResult.failure(ParseErrorKind.EMPTY, "Stash token is empty")

    text = text.strip()
    match = TOKEN_RE.fullmatch(text)
    if not match:
        return _diagnose(text)

    stash_id, encoded_key = match.groups()

    if not (is_base64url(encoded_key) or is_base64(encoded_key)):
        return ParseResult.failure(ParseErrorKind.INVALID_KEY_ENCODING, "Invalid base64 key format")

    length = decoded_length(encoded_key)
    if length != KEY_SIZE:
        got = "an impossible number of" if length is None else length
        return ParseResult.failure(
            ParseErrorKind.INVALID_KEY_LENGTH,
            f"Invalid key length: expected {KEY_SIZE} bytes, got {got} bytes",
        )

    try:
        key = b64_decode(encoded_key)
    except ValueError:
        return ParseResult.failure(ParseErrorKind.INVALID_KEY_ENCODING, "Invalid base64 key format")

    return ParseResult.success(StashToken(id=stash_id.lower(), key=key))


def extract_uuid(text: str) -> str | None:
    """
    Pull the stash id out of either a full token or a bare UUID.

    Used by paths that never need the key, such as deletion.

    Returns:
        The lowercase UUID, or None if text is neither shape.
    """
    parsed = parse_token(text)
    if parsed.ok:
        wipe(parsed.value.key)
        return parsed.value.id

    if isinstance(text, str) and validate_uuid(text.strip()):
        return text.strip().lower()
    return None
