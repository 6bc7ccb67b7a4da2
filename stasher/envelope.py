"""
Authenticated Envelope
AES-256-GCM sealing of a single secret under a single-use key.

Every encryption generates a fresh 32-byte key and a fresh 12-byte nonce.
The key is never reused, so a nonce can never repeat under it. The key
leaves this module only to be written into the stash token; the nonce,
tag and ciphertext become the server-side payload.

Decryption validates every component length before the cipher is touched,
decrypts into a buffer this module controls, and zeroes that buffer if
the tag does not verify. A caller never sees partial plaintext.
"""

import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from stasher.encoding import b64url_decode
from stasher.errors import (
    AuthenticationFailure,
    InputError,
    InvalidIvLength,
    InvalidKeyLength,
    InvalidTagLength,
    ResourceExhausted,
    ValidationError,
)


KEY_SIZE = 32    # 256 bits
NONCE_SIZE = 12  # AES-256-GCM standard
TAG_SIZE = 16    # 128-bit authentication tag
_BLOCK_SIZE = 16


def wipe(buf) -> None:
    """
    Overwrite a mutable buffer with zero bytes in place.

    Accepts None and immutable values (bytes, str) and leaves them alone:
    those cannot be scrubbed from Python.
    """
    if isinstance(buf, (bytearray, memoryview)) and not getattr(buf, "readonly", False):
        buf[:] = bytes(len(buf))


def _random_bytes(size: int) -> bytearray:
    try:
        return bytearray(os.urandom(size))
    except (OSError, NotImplementedError) as e:
        raise ResourceExhausted("Secure random source unavailable") from e


@dataclass
class Envelope:
    """
    The output of one encryption.

    `key` is owned by whoever called encrypt() and must be wiped once it
    has been written into a token.
    """
    key: bytearray
    iv: bytes
    tag: bytes
    ciphertext: bytes

    def wipe(self) -> None:
        wipe(self.key)

    def __repr__(self) -> str:
        return (
            f"Envelope(key=<{len(self.key)} bytes>, iv=<{len(self.iv)} bytes>, "
            f"tag=<{len(self.tag)} bytes>, ciphertext=<{len(self.ciphertext)} bytes>)"
        )


def encrypt(plaintext: bytes | bytearray | memoryview) -> Envelope:
    """
    Seal plaintext under a freshly generated key and nonce.

    Args:
        plaintext: The secret bytes. Must not be empty.

    Returns:
        Envelope with the new key, nonce, tag and ciphertext.

    Raises:
        InputError: If plaintext is empty.
        ResourceExhausted: If the OS random source fails.
    """
    if not len(plaintext):
        raise InputError("Secret cannot be empty")

    key = _random_bytes(KEY_SIZE)
    iv = bytes(_random_bytes(NONCE_SIZE))

    try:
        # AESGCM appends the 16-byte tag to the ciphertext
        sealed = AESGCM(key).encrypt(iv, plaintext, None)
    except BaseException:
        wipe(key)
        raise

    return Envelope(
        key=key,
        iv=iv,
        tag=sealed[-TAG_SIZE:],
        ciphertext=sealed[:-TAG_SIZE],
    )


def _decode_field(name: str, text: str) -> bytearray:
    try:
        return b64url_decode(text)
    except ValueError as e:
        raise ValidationError(f"Field {name} is not valid base64url") from e


def decrypt(payload, key: bytes | bytearray) -> bytearray:
    """
    Open a wire payload with the key from a stash token.

    Args:
        payload: A WirePayload (anything with iv, tag and ciphertext
            base64url string attributes).
        key: The 32-byte key.

    Returns:
        The plaintext in a fresh bytearray. The caller must wipe it.

    Raises:
        InvalidKeyLength: If key is not 32 bytes. Checked first.
        InvalidIvLength / InvalidTagLength: On wrong component sizes.
        ValidationError: If a field is not base64url.
        AuthenticationFailure: If the tag does not verify.
    """
    if len(key) != KEY_SIZE:
        raise InvalidKeyLength(f"Invalid key length: must be {KEY_SIZE} bytes")

    iv = _decode_field("iv", payload.iv)
    tag = _decode_field("tag", payload.tag)
    ciphertext = _decode_field("ciphertext", payload.ciphertext)

    if len(iv) != NONCE_SIZE:
        raise InvalidIvLength(f"Invalid IV length: must be {NONCE_SIZE} bytes")
    if len(tag) != TAG_SIZE:
        raise InvalidTagLength(f"Invalid auth tag length: must be {TAG_SIZE} bytes")
    if not ciphertext:
        raise ValidationError("Ciphertext cannot be empty")

    decryptor = Cipher(
        algorithms.AES(key),
        modes.GCM(iv, bytes(tag)),
    ).decryptor()

    # update_into needs block_size - 1 bytes of headroom
    buf = bytearray(len(ciphertext) + _BLOCK_SIZE - 1)
    try:
        written = decryptor.update_into(ciphertext, buf)
        decryptor.finalize()
        return buf[:written]
    except InvalidTag:
        raise AuthenticationFailure() from None
    finally:
        wipe(buf)
