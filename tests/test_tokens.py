"""
Tests for the base64url codec and the stash token grammar.
"""

import base64
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from stasher import tokens
from stasher.encoding import (
    b64_decode,
    b64url_decode,
    b64url_encode,
    decoded_length,
    is_base64,
    is_base64url,
)
from stasher.errors import ParseErrorKind
from stasher.tokens import extract_uuid, format_token, parse_token, validate_uuid

STASH_ID = "a1b2c3d4-e5f6-4890-abcd-ef1234567890"


def test_decoded_length_unpadded():
    """Unpadded lengths are measured as if padding were present."""
    print("Testing decoded_length (unpadded)...", end=" ")
    assert decoded_length("") == 0
    assert decoded_length("AA") == 1
    assert decoded_length("AAA") == 2
    assert decoded_length("AAAA") == 3
    assert decoded_length("A" * 43) == 32
    assert decoded_length("A" * 42) == 31
    assert decoded_length("A" * 16) == 12
    assert decoded_length("A" * 22) == 16
    # A single trailing character can never be a whole byte
    assert decoded_length("A") is None
    assert decoded_length("A" * 41) is None
    print("PASS")


def test_decoded_length_padded():
    """Padded input must be a multiple of 4 with padding only at the end."""
    print("Testing decoded_length (padded)...", end=" ")
    assert decoded_length("AA==") == 1
    assert decoded_length("AAA=") == 2
    assert decoded_length("A" * 43 + "=") == 32
    assert decoded_length("AA=") is None
    assert decoded_length("A===") is None
    assert decoded_length("A=AA") is None
    assert decoded_length(None) is None
    print("PASS")


def test_decoded_length_matches_real_decode():
    """The arithmetic agrees with an actual decode for every small size."""
    for size in range(0, 70):
        data = os.urandom(size)
        assert decoded_length(b64url_encode(data)) == size
        assert decoded_length(base64.b64encode(data).decode()) == size


def test_encode_is_url_safe_and_unpadded():
    """Encoded output never contains +, / or =."""
    for _ in range(50):
        data = os.urandom(33)
        encoded = b64url_encode(data)
        assert not set("+/=") & set(encoded)
        assert bytes(b64url_decode(encoded)) == data


def test_strict_decode_rejects_foreign_characters():
    """base64url decoding refuses the standard alphabet and padding."""
    for bad in ["ab+c", "ab/c", "AA==", "A", "ab cd", "ab\ncd"]:
        try:
            b64url_decode(bad)
        except ValueError:
            pass
        else:
            raise AssertionError(f"{bad!r} should have been rejected")


def test_tolerant_decode_accepts_both_alphabets():
    """Keys written as standard padded base64 still decode."""
    key = os.urandom(32)
    assert bytes(b64_decode(base64.b64encode(key).decode())) == key
    assert bytes(b64_decode(b64url_encode(key))) == key
    assert is_base64(base64.b64encode(key).decode())
    assert is_base64url(b64url_encode(key))
    assert not is_base64("abc")
    assert not is_base64url("ab=")


def test_validate_uuid():
    """Only canonical version-4 UUIDs pass."""
    print("Testing validate_uuid...", end=" ")
    assert validate_uuid(STASH_ID)
    assert validate_uuid(STASH_ID.upper())
    assert validate_uuid("00000000-0000-4000-8000-000000000000")
    for variant in "89ab":
        assert validate_uuid(f"00000000-0000-4000-{variant}000-000000000000")

    # Wrong version digit
    for version in "0123567":
        assert not validate_uuid(f"00000000-0000-{version}000-8000-000000000000")
    # Wrong variant nibble
    for variant in "01234567cdef":
        assert not validate_uuid(f"00000000-0000-4000-{variant}000-000000000000")

    assert not validate_uuid("a1b2c3d4e5f64890abcdef1234567890")
    assert not validate_uuid(STASH_ID + "0")
    assert not validate_uuid(" " + STASH_ID)
    assert not validate_uuid("")
    assert not validate_uuid(None)
    print("PASS")


def test_parse_token_success():
    """A v4 UUID plus a 43-character key parses into id and 32 key bytes."""
    print("Testing parse_token (valid)...", end=" ")
    key = os.urandom(32)
    token = format_token(STASH_ID, key)
    assert len(token.split(":")[1]) == 43

    result = parse_token(token)
    assert result.ok
    assert result.value.id == STASH_ID
    assert bytes(result.value.key) == key
    assert isinstance(result.value.key, bytearray)
    print("PASS")


def test_parse_token_trims_and_lowercases():
    key = os.urandom(32)
    result = parse_token(f"  {STASH_ID.upper()}:{b64url_encode(key)}\n")
    assert result.ok
    assert result.value.id == STASH_ID


def test_parse_token_accepts_legacy_base64_key():
    """Older tokens carried the key as standard padded base64."""
    key = os.urandom(32)
    result = parse_token(f"{STASH_ID}:{base64.b64encode(key).decode()}")
    assert result.ok
    assert bytes(result.value.key) == key


def test_short_key_rejected_before_decode(monkeypatch):
    """A 42-character key (31 bytes) fails on length without any decode call."""
    print("Testing key length fast rejection...", end=" ")
    calls = []

    def counting_decode(text):
        calls.append(text)
        return b64_decode(text)

    monkeypatch.setattr(tokens, "b64_decode", counting_decode)

    short = b64url_encode(os.urandom(31))
    assert len(short) == 42
    result = parse_token(f"{STASH_ID}:{short}")
    assert not result.ok
    assert result.error.kind == ParseErrorKind.INVALID_KEY_LENGTH
    assert "31" in result.error.message

    long = b64url_encode(os.urandom(33))
    result = parse_token(f"{STASH_ID}:{long}")
    assert result.error.kind == ParseErrorKind.INVALID_KEY_LENGTH

    assert calls == []

    # A good key does get decoded, exactly once
    parse_token(format_token(STASH_ID, os.urandom(32)))
    assert len(calls) == 1
    print("PASS")


def test_parse_token_diagnostics():
    """Structural failures report the most specific problem first."""
    print("Testing parse_token diagnostics...", end=" ")
    good_key = b64url_encode(os.urandom(32))
    cases = [
        ("", ParseErrorKind.EMPTY),
        ("   ", ParseErrorKind.EMPTY),
        (None, ParseErrorKind.EMPTY),
        (STASH_ID, ParseErrorKind.MISSING_COLON),
        ("no-colon-here", ParseErrorKind.MISSING_COLON),
        (f"not-a-uuid:{good_key}", ParseErrorKind.INVALID_UUID),
        (f"{STASH_ID}:", ParseErrorKind.MISSING_KEY),
        (f"{STASH_ID}:abc!def", ParseErrorKind.INVALID_FORMAT),
        (f"{STASH_ID}:{good_key}:extra", ParseErrorKind.INVALID_FORMAT),
        # Mixed alphabets are neither base64 nor base64url
        (f"{STASH_ID}:+" + "_" * 42, ParseErrorKind.INVALID_KEY_ENCODING),
    ]
    for text, kind in cases:
        result = parse_token(text)
        assert not result.ok, text
        assert result.error.kind == kind, (text, result.error)
    print("PASS")


def test_non_v4_uuid_rejected():
    """A UUID whose version digit is not 4 is not a stash id."""
    key = b64url_encode(os.urandom(32))
    result = parse_token(f"a1b2c3d4-e5f6-7890-abcd-ef1234567890:{key}")
    assert result.error.kind == ParseErrorKind.INVALID_UUID


def test_extract_uuid():
    """extract_uuid takes a token or a bare UUID."""
    token = format_token(STASH_ID, os.urandom(32))
    assert extract_uuid(token) == STASH_ID
    assert extract_uuid(STASH_ID) == STASH_ID
    assert extract_uuid(STASH_ID.upper()) == STASH_ID
    assert extract_uuid(f"  {STASH_ID}  ") == STASH_ID
    assert extract_uuid("garbage") is None
    assert extract_uuid(f"{STASH_ID}:short") is None
    assert extract_uuid("") is None


def test_token_repr_hides_key():
    result = parse_token(format_token(STASH_ID, os.urandom(32)))
    assert "32 bytes" in repr(result.value)
    assert b64url_encode(result.value.key) not in repr(result.value)
