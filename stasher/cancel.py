"""
Cancellation
A small thread-safe cancellation token shared by the network and stdin layers.

A token can be cancelled explicitly, by a timer, or by its parent. Waiters
block on the token instead of sleeping, so every suspension point
(backoff, in-flight request, stdin read) wakes as soon as it fires.
"""

import logging
import threading

from stasher.errors import Cancelled

logger = logging.getLogger(__name__)

ABORTED = "aborted"
TIMEOUT = "timeout"
INTERRUPTED = "interrupted"

_MESSAGES = {
    ABORTED: "Aborted by caller",
    TIMEOUT: "Operation timed out",
    INTERRUPTED: "Interrupted by user (Ctrl+C)",
}


def _run_callback(callback) -> None:
    """Run one callback. A failure is logged and does not stop the others."""
    try:
        callback()
    except Exception:
        logger.exception("Cancellation callback failed")


class CancelToken:
    """
    Cooperative cancellation signal.

    Args:
        parent: Optional token. Cancelling the parent cancels this token
            with the same reason. Call detach() when done with a child.
    """

    def __init__(self, parent: "CancelToken" = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks = []
        self._timers = []
        self.reason = None
        self._unlink = None

        if parent is not None:
            self._unlink = parent.add_callback(lambda: self.cancel(parent.reason))

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def timed_out(self) -> bool:
        return self.reason == TIMEOUT

    def cancel(self, reason: str = ABORTED) -> None:
        """Fire the token. Only the first reason sticks."""
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            _run_callback(callback)

    def add_callback(self, callback):
        """
        Run callback when the token fires (immediately if it already has).

        Returns:
            A function that unregisters the callback.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def remove():
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return remove

        _run_callback(callback)
        return lambda: None

    def cancel_after(self, seconds: float, reason: str = TIMEOUT) -> threading.Timer:
        """Arm a daemon timer that cancels this token after `seconds`."""
        timer = threading.Timer(seconds, self.cancel, args=(reason,))
        timer.daemon = True
        timer.start()
        self._timers.append(timer)
        return timer

    def wait(self, timeout: float = None) -> bool:
        """Block until cancelled or timeout elapses. True if cancelled."""
        return self._event.wait(timeout)

    def sleep(self, seconds: float) -> None:
        """
        Sleep for `seconds` unless cancelled first.

        Raises:
            Cancelled: If the token fires during (or before) the sleep.
        """
        if self.wait(seconds):
            self.raise_if_cancelled()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled(_MESSAGES.get(self.reason, "Operation cancelled"), reason=self.reason)

    def detach(self) -> None:
        """Disarm timers and unlink from the parent."""
        for timer in self._timers:
            timer.cancel()
        self._timers = []
        if self._unlink is not None:
            self._unlink()
            self._unlink = None
