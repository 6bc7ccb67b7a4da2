"""
Wire Payload
The JSON body exchanged with the stash service: {"iv", "tag", "ciphertext"}.

Every field is unpadded base64url. Incoming payloads are checked for
shape, type, alphabet and exact decoded length using only string
lengths, so a payload with the right keys but the wrong sizes never
reaches the cipher.
"""

import json
from dataclasses import dataclass

from stasher.encoding import b64url_encode, decoded_length, is_base64url
from stasher.envelope import NONCE_SIZE, TAG_SIZE, Envelope
from stasher.errors import ParseErrorKind, ParseResult

# field -> exact decoded size (None: any non-zero size)
REQUIRED_FIELDS = {
    "iv": NONCE_SIZE,
    "tag": TAG_SIZE,
    "ciphertext": None,
}


@dataclass(frozen=True)
class WirePayload:
    iv: str
    tag: str
    ciphertext: str

    def to_dict(self) -> dict:
        return {
            "iv": self.iv,
            "tag": self.tag,
            "ciphertext": self.ciphertext,
        }


def create_payload(envelope: Envelope) -> WirePayload:
    """Encode the server-bound half of an envelope. The key is left out."""
    return WirePayload(
        iv=b64url_encode(envelope.iv),
        tag=b64url_encode(envelope.tag),
        ciphertext=b64url_encode(envelope.ciphertext),
    )


def encode_payload(payload: WirePayload) -> str:
    """Serialize a payload as compact JSON with a stable key order."""
    return json.dumps(payload.to_dict(), separators=(",", ":"))


def _check_field(name: str, value: str, expected: int | None) -> ParseResult | None:
    """Return a failure for one field, or None if it is acceptable."""
    length = decoded_length(value) if is_base64url(value) else None
    if length is None:
        return ParseResult.failure(ParseErrorKind.INVALID_ENCODING, f"Field {name} is not valid base64url")

    if expected is None:
        if length == 0:
            return ParseResult.failure(ParseErrorKind.EMPTY_CIPHERTEXT, "Ciphertext cannot be empty")
    elif length != expected:
        return ParseResult.failure(
            ParseErrorKind.INVALID_LENGTH,
            f"Invalid {name} length: expected {expected} bytes, got {length} bytes",
        )
    return None


def decode_payload(data: str | bytes | dict) -> ParseResult:
    """
    Parse and validate a wire payload.

    Args:
        data: JSON text (str or bytes) or an already-parsed object.

    Returns:
        ParseResult holding a WirePayload on success.
    """
    if isinstance(data, (str, bytes, bytearray)):
        try:
            parsed = json.loads(data)
        except (ValueError, UnicodeDecodeError):
            return ParseResult.failure(ParseErrorKind.NOT_JSON, "Payload is not valid JSON")
    else:
        parsed = data

    if not isinstance(parsed, dict):
        return ParseResult.failure(ParseErrorKind.NOT_AN_OBJECT, "Payload must be an object")

    for name in REQUIRED_FIELDS:
        if name not in parsed:
            return ParseResult.failure(ParseErrorKind.MISSING_FIELD, f"Missing required field: {name}")
        if not isinstance(parsed[name], str):
            return ParseResult.failure(ParseErrorKind.WRONG_TYPE, f"Field {name} must be a string")

    for name, expected in REQUIRED_FIELDS.items():
        failure = _check_field(name, parsed[name], expected)
        if failure is not None:
            return failure

    return ParseResult.success(WirePayload(
        iv=parsed["iv"],
        tag=parsed["tag"],
        ciphertext=parsed["ciphertext"],
    ))


def parse_payload(data: str | bytes | dict) -> WirePayload:
    """
    Raising variant of decode_payload().

    Raises:
        ValidationError: If the payload is malformed.
    """
    return decode_payload(data).unwrap()
