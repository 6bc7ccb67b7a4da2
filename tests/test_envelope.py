"""
Tests for the authenticated envelope and the wire payload.
Round trips, tamper detection, and validation ordering.
"""

import json
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from stasher import envelope
from stasher.encoding import b64url_decode, b64url_encode
from stasher.envelope import KEY_SIZE, NONCE_SIZE, TAG_SIZE, decrypt, encrypt
from stasher.errors import (
    AuthenticationFailure,
    InputError,
    InvalidIvLength,
    InvalidKeyLength,
    InvalidTagLength,
    ParseErrorKind,
    ResourceExhausted,
    ValidationError,
)
from stasher.payload import WirePayload, create_payload, decode_payload, encode_payload, parse_payload


def _flip_bit(encoded: str, bit: int) -> str:
    raw = b64url_decode(encoded)
    raw[bit // 8] ^= 1 << (bit % 8)
    return b64url_encode(raw)


def test_hello_world_round_trip():
    """Encrypt, serialize, parse back and decrypt "hello world"."""
    print("Testing hello world round trip...", end=" ")
    sealed = encrypt(b"hello world")
    assert len(sealed.key) == KEY_SIZE
    assert len(sealed.iv) == NONCE_SIZE
    assert len(sealed.tag) == TAG_SIZE
    assert len(sealed.ciphertext) == len(b"hello world")

    text = encode_payload(create_payload(sealed))
    payload = parse_payload(text)
    plaintext = decrypt(payload, sealed.key)
    assert plaintext == bytearray(b"hello world")
    assert isinstance(plaintext, bytearray)
    print("PASS")


def test_wrong_key_fails():
    """Any other 32-byte key is rejected by the tag check."""
    print("Testing wrong key...", end=" ")
    sealed = encrypt(b"hello world")
    payload = create_payload(sealed)
    for _ in range(5):
        try:
            decrypt(payload, os.urandom(KEY_SIZE))
        except AuthenticationFailure:
            pass
        else:
            raise AssertionError("decrypt with the wrong key should fail")
    print("PASS")


def test_round_trip_sizes():
    """Secrets from 1 byte up to the 4096-byte ceiling survive a round trip."""
    for size in [1, 2, 15, 16, 17, 255, 1000, 4095, 4096]:
        secret = os.urandom(size)
        sealed = encrypt(secret)
        payload = parse_payload(encode_payload(create_payload(sealed)))
        assert bytes(decrypt(payload, sealed.key)) == secret


def test_every_bit_flip_is_detected():
    """Flipping any single bit of the tag or ciphertext fails authentication."""
    print("Testing tamper detection...", end=" ")
    sealed = encrypt(b"hello world")
    payload = create_payload(sealed)

    flips = 0
    for field in ("tag", "ciphertext"):
        encoded = getattr(payload, field)
        for bit in range(len(b64url_decode(encoded)) * 8):
            tampered = WirePayload(**{**payload.to_dict(), field: _flip_bit(encoded, bit)})
            try:
                decrypt(tampered, sealed.key)
            except AuthenticationFailure:
                flips += 1
            else:
                raise AssertionError(f"bit {bit} of {field} flipped undetected")

    assert flips == (TAG_SIZE + len(b"hello world")) * 8
    print(f"PASS ({flips} flips)")


def test_fresh_key_and_nonce_every_time():
    seen_keys = set()
    seen_ivs = set()
    for _ in range(20):
        sealed = encrypt(b"same secret")
        seen_keys.add(bytes(sealed.key))
        seen_ivs.add(sealed.iv)
    assert len(seen_keys) == 20
    assert len(seen_ivs) == 20


def test_key_length_checked_before_cipher(monkeypatch):
    """A short key is refused before the cipher is ever constructed."""
    sealed = encrypt(b"secret")
    payload = create_payload(sealed)

    def no_cipher(*args, **kwargs):
        raise AssertionError("cipher must not be touched")

    monkeypatch.setattr(envelope, "Cipher", no_cipher)
    for bad in [b"", os.urandom(31), os.urandom(33), os.urandom(16)]:
        try:
            decrypt(payload, bad)
        except InvalidKeyLength:
            pass
        else:
            raise AssertionError("short key should be rejected")


def test_component_lengths_checked_before_cipher(monkeypatch):
    sealed = encrypt(b"secret")
    good = create_payload(sealed)

    def no_cipher(*args, **kwargs):
        raise AssertionError("cipher must not be touched")

    monkeypatch.setattr(envelope, "Cipher", no_cipher)

    bad_iv = WirePayload(iv=b64url_encode(os.urandom(16)), tag=good.tag, ciphertext=good.ciphertext)
    bad_tag = WirePayload(iv=good.iv, tag=b64url_encode(os.urandom(12)), ciphertext=good.ciphertext)
    bad_chars = WirePayload(iv="not base64!", tag=good.tag, ciphertext=good.ciphertext)

    for payload, expected in [
        (bad_iv, InvalidIvLength),
        (bad_tag, InvalidTagLength),
        (bad_chars, ValidationError),
    ]:
        try:
            decrypt(payload, sealed.key)
        except expected:
            pass
        else:
            raise AssertionError(f"{expected.__name__} not raised")


def test_failed_decrypt_scrubs_buffer(monkeypatch):
    """The intermediate plaintext buffer is zeroed when the tag fails."""
    wiped = []
    real_wipe = envelope.wipe

    def recording_wipe(buf):
        real_wipe(buf)
        wiped.append(buf)

    monkeypatch.setattr(envelope, "wipe", recording_wipe)

    sealed = encrypt(b"top secret value")
    tampered = create_payload(sealed)
    tampered = WirePayload(iv=tampered.iv, tag=_flip_bit(tampered.tag, 0), ciphertext=tampered.ciphertext)
    try:
        decrypt(tampered, sealed.key)
    except AuthenticationFailure as e:
        assert "authentication" in str(e)
    else:
        raise AssertionError("tampered payload should fail")

    assert wiped
    assert all(b == 0 for b in wiped[-1])


def test_envelope_wipe():
    sealed = encrypt(b"secret")
    sealed.wipe()
    assert sealed.key == bytearray(KEY_SIZE)
    assert "bytes" in repr(sealed)


def test_wipe_tolerates_immutable_values():
    envelope.wipe(None)
    envelope.wipe(b"immutable")
    buf = bytearray(b"abc")
    envelope.wipe(buf)
    assert buf == bytearray(3)


def test_empty_plaintext_rejected():
    try:
        encrypt(b"")
    except InputError:
        pass
    else:
        raise AssertionError("empty plaintext should be rejected")


def test_random_source_failure_is_fatal(monkeypatch):
    def broken(size):
        raise OSError("no entropy")

    monkeypatch.setattr(envelope.os, "urandom", broken)
    try:
        encrypt(b"secret")
    except ResourceExhausted:
        pass
    else:
        raise AssertionError("random source failure should raise ResourceExhausted")


def test_encode_payload_is_compact_and_ordered():
    payload = create_payload(encrypt(b"secret"))
    text = encode_payload(payload)
    assert text.startswith('{"iv":"')
    assert list(json.loads(text)) == ["iv", "tag", "ciphertext"]
    assert " " not in text


def test_decode_payload_diagnostics():
    """Each malformed payload is rejected with a precise reason."""
    print("Testing payload diagnostics...", end=" ")
    good = create_payload(encrypt(b"secret")).to_dict()
    iv16 = b64url_encode(os.urandom(16))

    cases = [
        ("not json", ParseErrorKind.NOT_JSON),
        (b"\xff\xfe", ParseErrorKind.NOT_JSON),
        ("[1, 2, 3]", ParseErrorKind.NOT_AN_OBJECT),
        ("null", ParseErrorKind.NOT_AN_OBJECT),
        ({"iv": good["iv"], "tag": good["tag"]}, ParseErrorKind.MISSING_FIELD),
        ({**good, "iv": 12}, ParseErrorKind.WRONG_TYPE),
        ({**good, "ciphertext": None}, ParseErrorKind.WRONG_TYPE),
        ({**good, "iv": iv16}, ParseErrorKind.INVALID_LENGTH),
        ({**good, "tag": good["iv"]}, ParseErrorKind.INVALID_LENGTH),
        ({**good, "iv": good["iv"][:-1] + "+"}, ParseErrorKind.INVALID_ENCODING),
        ({**good, "tag": good["tag"] + "=="}, ParseErrorKind.INVALID_ENCODING),
        ({**good, "ciphertext": "A"}, ParseErrorKind.INVALID_ENCODING),
        ({**good, "ciphertext": ""}, ParseErrorKind.EMPTY_CIPHERTEXT),
    ]
    for data, kind in cases:
        result = decode_payload(data)
        assert not result.ok, data
        assert result.error.kind == kind, (data, result.error)
    print("PASS")


def test_decode_payload_accepts_text_bytes_and_dict():
    payload = create_payload(encrypt(b"secret"))
    text = encode_payload(payload)
    assert decode_payload(text).value == payload
    assert decode_payload(text.encode()).value == payload
    assert decode_payload(payload.to_dict()).value == payload
    # Extra fields are ignored
    assert decode_payload({**payload.to_dict(), "extra": 1}).ok


def test_parse_payload_raises_validation_error():
    try:
        parse_payload("{}")
    except ValidationError as e:
        assert "iv" in str(e)
    else:
        raise AssertionError("missing fields should raise")
