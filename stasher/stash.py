"""
Stasher: One-Time Secret Sharing
Ties the envelope, the wire payload, the token and a backend together.

Flow for stashing a secret:
1. Validate the secret (non-empty, within the size ceiling)
2. Encrypt under a fresh single-use key (Envelope)
3. Serialize the server half and enforce the payload ceiling
4. Store it with the backend and get an id back
5. Return "<id>:<key>" and wipe the key

Flow for retrieving a secret:
1. Parse the token (a malformed key never costs the user their stash)
2. Fetch and consume the payload
3. Validate the payload before any crypto
4. Decrypt and wipe the key

The backend only ever sees ciphertext. The key lives in the token.
"""

import logging

from stasher.backends.base import StashBackend
from stasher.backends.http import HttpBackend
from stasher.cancel import CancelToken
from stasher.config import StashConfig, load_config
from stasher.envelope import decrypt, encrypt, wipe
from stasher.errors import InputError, RemoteError
from stasher.ingest import validate_secret
from stasher.payload import create_payload, decode_payload, encode_payload
from stasher.tokens import extract_uuid, format_token, parse_token, validate_uuid

logger = logging.getLogger(__name__)


class Stasher:
    """
    Client for one-time secrets.

    Args:
        backend: Where payloads are stored. Defaults to the HTTP service
            named by `config`.
        config: Limits and service settings. Defaults to load_config().
    """

    def __init__(self, backend: StashBackend = None, config: StashConfig = None):
        self.config = config or load_config()
        self.backend = backend or HttpBackend.from_config(self.config)

    @classmethod
    def from_config(cls, config: StashConfig) -> "Stasher":
        """Client for the HTTP service named by `config`."""
        return cls(backend=HttpBackend.from_config(config), config=config)

    def enstash(self, secret: bytes | bytearray, signal: CancelToken = None) -> str:
        """
        Encrypt a secret and store it.

        Args:
            secret: The plaintext. Left untouched; the caller wipes it.
            signal: Optional CancelToken for the network call.

        Returns:
            The stash token "<uuid>:<base64url key>".

        Raises:
            InputError: Empty, whitespace-only or oversized secret, or a
                payload over the size ceiling.
            RemoteError: The backend refused it or returned a bad id.
        """
        validate_secret(secret, self.config.max_secret_size)

        logger.debug("Encrypting %d byte secret", len(secret))
        envelope = encrypt(secret)
        try:
            body = encode_payload(create_payload(envelope))
            size = len(body.encode("utf-8"))
            if size > self.config.max_payload_size:
                raise InputError(
                    f"Encrypted payload is {size} bytes (limit is {self.config.max_payload_size})"
                )

            stash_id = self.backend.store(body, signal=signal)
            if not validate_uuid(stash_id):
                raise RemoteError("Server returned an invalid stash id")

            return format_token(stash_id.lower(), envelope.key)
        finally:
            envelope.wipe()

    def destash(self, token: str, signal: CancelToken = None) -> bytearray:
        """
        Retrieve, consume and decrypt a secret.

        Args:
            token: The stash token.
            signal: Optional CancelToken for the network call.

        Returns:
            The plaintext. The caller must wipe it.

        Raises:
            InputError: Malformed token.
            StashNotFound / StashGone: Unknown, expired or consumed stash.
            ValidationError: Malformed payload from the backend.
            AuthenticationFailure: Wrong key or tampered payload.
        """
        parsed = parse_token(token).unwrap(InputError)
        logger.debug("Retrieving stash %s", parsed.id)
        try:
            text = self.backend.fetch(parsed.id, signal=signal)
            payload = decode_payload(text).unwrap()
            return decrypt(payload, parsed.key)
        finally:
            wipe(parsed.key)

    def unstash(self, token_or_id: str, signal: CancelToken = None) -> str:
        """
        Delete a secret before it is read.

        Args:
            token_or_id: A full token or a bare stash UUID.

        Returns:
            The id of the deleted stash.

        Raises:
            InputError: Neither a token nor a UUID.
            StashNotFound / StashGone: Nothing left to delete.
        """
        stash_id = extract_uuid(token_or_id)
        if stash_id is None:
            raise InputError("Invalid format. Expected uuid or stash token")
        return self.backend.delete(stash_id, signal=signal)
