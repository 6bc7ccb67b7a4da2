"""
Secret Ingestion
Reads the secret from stdin (or argv) under a size ceiling and an idle timeout.

Stdin is read straight into one preallocated bytearray with os.readv, so
no intermediate chunk objects hold secret fragments. That buffer is
zeroed on every way out: success, oversize, timeout, cancellation,
Ctrl+C. The idle timeout resets on every chunk, so a slow producer that
keeps sending is never cut off.
"""

import os
import select
import sys
import threading

from stasher.cancel import INTERRUPTED, TIMEOUT, CancelToken
from stasher.envelope import wipe
from stasher.errors import Cancelled, InputError

MAX_SECRET_SIZE = 4096      # bytes
STDIN_TIMEOUT = 30.0        # seconds of silence before giving up


def validate_secret(secret: bytes | bytearray, limit: int = MAX_SECRET_SIZE) -> None:
    """
    Reject empty, whitespace-only and oversized secrets.

    Raises:
        InputError: With a message suitable for the user.
    """
    if not secret or not bytes(secret).strip():
        raise InputError("Secret cannot be empty or whitespace only")
    if len(secret) > limit:
        raise InputError(f"Secret too long (max {limit} bytes)")


def secret_from_args(args: list[str], limit: int = MAX_SECRET_SIZE) -> bytearray:
    """
    Build a secret from command-line words, joined by single spaces.

    Returns:
        The UTF-8 encoded secret. The caller must wipe it.
    """
    secret = bytearray(" ".join(args).encode("utf-8"))
    try:
        validate_secret(secret, limit)
    except InputError:
        wipe(secret)
        raise
    return secret


def read_secret(
    source=None,
    *,
    limit: int = MAX_SECRET_SIZE,
    idle_timeout: float = STDIN_TIMEOUT,
    signal: CancelToken = None,
) -> bytearray:
    """
    Read a secret from a piped stream.

    Args:
        source: File object with a real descriptor. Defaults to sys.stdin.
        limit: Maximum number of bytes accepted.
        idle_timeout: Seconds to wait for the next chunk.
        signal: Optional CancelToken that aborts the read.

    Returns:
        The bytes read. The caller must wipe them.

    Raises:
        InputError: Interactive terminal, no data, or more than `limit` bytes.
        Cancelled: Idle timeout, caller cancellation or Ctrl+C.
    """
    source = sys.stdin if source is None else source
    fd = source.fileno()

    if os.isatty(fd):
        raise InputError("No stdin detected (TTY). Pipe data in or use command line arguments.")

    signal = signal or CancelToken()
    signal.raise_if_cancelled()

    # One spare byte so an oversized input is noticed without reading it all
    buf = bytearray(limit + 1)
    view = memoryview(buf)
    total = 0

    wake_r, wake_w = os.pipe()
    wake_lock = threading.Lock()
    wake_open = [True]

    def poke():
        # A late callback must never write to a closed (or reused) descriptor
        with wake_lock:
            if wake_open[0]:
                os.write(wake_w, b"\0")

    remove = signal.add_callback(poke)

    try:
        while True:
            ready, _, _ = select.select([fd, wake_r], [], [], idle_timeout)
            if wake_r in ready:
                signal.raise_if_cancelled()
            if not ready:
                raise Cancelled("Timeout waiting for stdin input", reason=TIMEOUT)

            n = os.readv(fd, [view[total:]])
            if n == 0:
                break
            total += n
            if total > limit:
                raise InputError(f"Stdin input exceeds maximum size ({limit} bytes)")

        if not total:
            raise InputError("No data received from stdin")
        return bytearray(view[:total])

    except KeyboardInterrupt:
        raise Cancelled("Interrupted by user (Ctrl+C)", reason=INTERRUPTED) from None
    finally:
        remove()
        view.release()
        wipe(buf)
        with wake_lock:
            wake_open[0] = False
            os.close(wake_r)
            os.close(wake_w)
