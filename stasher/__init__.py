"""
Stasher
Share a secret once: encrypt locally, stash the ciphertext, hand over a token.

The token "<uuid>:<key>" carries the only copy of the 256-bit key. The
stash service holds the AES-256-GCM ciphertext and gives it out exactly
once. Neither half is useful without the other.

Usage:
    from stasher import Stasher
    stasher = Stasher()
    token = stasher.enstash(b"db-password=hunter2")
    secret = stasher.destash(token)
"""

__version__ = "1.0.0"

from stasher.backends import HttpBackend, MemoryBackend, StashBackend
from stasher.cancel import CancelToken
from stasher.config import StashConfig, load_config
from stasher.envelope import Envelope, decrypt, encrypt, wipe
from stasher.errors import (
    AuthenticationFailure,
    Cancelled,
    ExitCode,
    InputError,
    ParseErrorKind,
    ParseResult,
    RemoteError,
    ResourceExhausted,
    StashError,
    StashGone,
    StashNotFound,
    TransientFault,
    TransientNetworkError,
    ValidationError,
)
from stasher.payload import WirePayload, create_payload, decode_payload, encode_payload, parse_payload
from stasher.stash import Stasher
from stasher.tokens import StashToken, extract_uuid, format_token, parse_token, validate_uuid
from stasher.transport import RetryingTransport

__all__ = [
    "Stasher",
    "StashBackend",
    "HttpBackend",
    "MemoryBackend",
    "CancelToken",
    "StashConfig",
    "load_config",
    "Envelope",
    "encrypt",
    "decrypt",
    "wipe",
    "WirePayload",
    "create_payload",
    "encode_payload",
    "decode_payload",
    "parse_payload",
    "StashToken",
    "parse_token",
    "format_token",
    "validate_uuid",
    "extract_uuid",
    "RetryingTransport",
    "ExitCode",
    "ParseErrorKind",
    "ParseResult",
    "StashError",
    "InputError",
    "ValidationError",
    "AuthenticationFailure",
    "TransientFault",
    "TransientNetworkError",
    "RemoteError",
    "StashNotFound",
    "StashGone",
    "ResourceExhausted",
    "Cancelled",
]
