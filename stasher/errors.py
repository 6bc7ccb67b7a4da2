"""
Errors and Parse Results
The closed error taxonomy shared by every layer of Stasher.

Parsers at the edges (token grammar, wire payload) never raise: they hand
back a ParseResult carrying either the parsed value or a tagged ParseError.
Past those edges, failures travel as StashError subclasses. Each one knows
the process exit code it maps to, so scripted callers can branch on the
code without parsing text.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any


class ExitCode(IntEnum):
    """Process outcome codes for the command-line tools."""
    SUCCESS = 0
    FAILURE = 1
    INVALID_INPUT = 2
    NOT_FOUND = 3
    GONE = 4             # expired or already consumed
    NETWORK = 5          # network failure or timeout
    AUTHENTICATION = 6   # decryption / tag verification failure


class TransientFault(Enum):
    """Network faults that are worth retrying."""
    CONNECTION_RESET = "connection-reset"
    CONNECTION_REFUSED = "connection-refused"
    DNS_FAILURE = "dns-failure"
    TIMEOUT = "timeout"
    SOCKET_HANGUP = "socket-hangup"
    FETCH_FAILED = "fetch-failed"


class StashError(Exception):
    """Base class for all Stasher failures."""
    exit_code = ExitCode.FAILURE


class InputError(StashError, ValueError):
    """Malformed user input: empty or oversized secret, bad token, bad UUID."""
    exit_code = ExitCode.INVALID_INPUT


class ValidationError(StashError, ValueError):
    """A component has the wrong length, encoding, type or shape."""


class InvalidKeyLength(ValidationError):
    pass


class InvalidIvLength(ValidationError):
    pass


class InvalidTagLength(ValidationError):
    pass


class AuthenticationFailure(StashError):
    """
    Tag verification failed on decrypt.

    Deliberately generic: the message never says which component was wrong.
    """
    exit_code = ExitCode.AUTHENTICATION

    def __init__(self, message: str = "Failed to decrypt secret: authentication failed"):
        super().__init__(message)


class TransientNetworkError(StashError):
    """A retryable network fault, surfaced once retries are exhausted."""
    exit_code = ExitCode.NETWORK

    def __init__(self, fault: TransientFault, message: str = None):
        super().__init__(message or f"Network error: {fault.value}")
        self.fault = fault


class RemoteError(StashError):
    """The backend answered with a non-2xx status we do not classify further."""
    exit_code = ExitCode.NETWORK

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class StashNotFound(RemoteError):
    exit_code = ExitCode.NOT_FOUND

    def __init__(self, message: str = "Stash not found or already retrieved.", status: int = 404):
        super().__init__(message, status)


class StashGone(RemoteError):
    """The stash expired or was already consumed (HTTP 410)."""
    exit_code = ExitCode.GONE

    def __init__(self, expired: bool, status: int = 410):
        message = (
            "This stash has expired."
            if expired
            else "This stash has already been consumed."
        )
        super().__init__(message, status)
        self.expired = expired


class ResourceExhausted(StashError):
    """The secure random source failed. Fatal, never retried."""


class Cancelled(StashError):
    """A wait was cut short by a timeout, the caller, or an interrupt."""
    exit_code = ExitCode.NETWORK

    def __init__(self, message: str = "Operation cancelled", reason: str = "aborted"):
        super().__init__(message)
        self.reason = reason

    @property
    def timed_out(self) -> bool:
        return self.reason == "timeout"


class ParseErrorKind(Enum):
    """Why a token or payload was rejected."""
    # Token grammar
    EMPTY = "empty"
    MISSING_COLON = "missing-colon"
    INVALID_UUID = "invalid-uuid"
    MISSING_KEY = "missing-key"
    INVALID_FORMAT = "invalid-format"
    INVALID_KEY_ENCODING = "invalid-key-encoding"
    INVALID_KEY_LENGTH = "invalid-key-length"
    # Wire payload
    NOT_JSON = "not-json"
    NOT_AN_OBJECT = "not-an-object"
    MISSING_FIELD = "missing-field"
    WRONG_TYPE = "wrong-type"
    INVALID_ENCODING = "invalid-encoding"
    INVALID_LENGTH = "invalid-length"
    EMPTY_CIPHERTEXT = "empty-ciphertext"


@dataclass(frozen=True)
class ParseError:
    kind: ParseErrorKind
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ParseResult:
    """
    Outcome of a boundary parser: exactly one of value / error is set.

    Use ParseResult.success() and ParseResult.failure() to build one,
    and unwrap() to cross back into exception-land.
    """
    value: Any = None
    error: ParseError = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value) -> "ParseResult":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ParseErrorKind, message: str) -> "ParseResult":
        return cls(error=ParseError(kind, message))

    def unwrap(self, exc_type: type[StashError] = ValidationError):
        """
        Return the parsed value, or raise exc_type with the parse message.

        Args:
            exc_type: StashError subclass to raise on failure.
        """
        if self.error is not None:
            raise exc_type(self.error.message)
        return self.value
