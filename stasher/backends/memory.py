"""
In-memory stash backend.
A local stand-in for the stash service, with the same one-time semantics.

No network needed. Useful for tests, demos, and embedding Stasher in a
single process. Each payload can be fetched exactly once, expires after
`ttl` seconds, and can be deleted before it is read. Expired and used ids
are pruned on every store once they have been gone for another `ttl`.
"""

import threading
import time
import uuid

from stasher.backends.base import StashBackend
from stasher.cancel import CancelToken
from stasher.errors import StashGone, StashNotFound

DEFAULT_TTL = 24 * 60 * 60  # seconds


class MemoryBackend(StashBackend):
    """
    Process-local one-time store.

    Args:
        ttl: Lifetime of a stash in seconds.
        clock: Time source returning seconds. Defaults to time.time.
    """

    def __init__(self, ttl: float = DEFAULT_TTL, clock=None):
        self.ttl = ttl
        self._clock = clock or time.time
        self._lock = threading.Lock()
        self._stashes: dict[str, tuple[str, float]] = {}
        # id -> (expired?, when it went). Remembered for one more ttl.
        self._gone: dict[str, tuple[bool, float]] = {}

    def _prune(self, now: float) -> None:
        """Retire expired stashes and forget ids that have been gone for a full ttl."""
        for stash_id, (_, expires_at) in list(self._stashes.items()):
            if now >= expires_at:
                del self._stashes[stash_id]
                self._gone[stash_id] = (True, expires_at)
        for stash_id, (_, gone_at) in list(self._gone.items()):
            if now - gone_at >= self.ttl:
                del self._gone[stash_id]

    def _take(self, stash_id: str) -> str:
        """Remove and return a live payload, or raise why it is unavailable."""
        stash_id = stash_id.lower()
        with self._lock:
            now = self._clock()
            if stash_id in self._gone:
                raise StashGone(expired=self._gone[stash_id][0])
            if stash_id not in self._stashes:
                raise StashNotFound()

            body, expires_at = self._stashes.pop(stash_id)
            if now >= expires_at:
                self._gone[stash_id] = (True, expires_at)
                raise StashGone(expired=True)

            self._gone[stash_id] = (False, now)
            return body

    def store(self, body: str, signal: CancelToken = None) -> str:
        if signal is not None:
            signal.raise_if_cancelled()
        stash_id = str(uuid.uuid4())
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._stashes[stash_id] = (body, now + self.ttl)
        return stash_id

    def fetch(self, stash_id: str, signal: CancelToken = None) -> str:
        if signal is not None:
            signal.raise_if_cancelled()
        return self._take(stash_id)

    def delete(self, stash_id: str, signal: CancelToken = None) -> str:
        if signal is not None:
            signal.raise_if_cancelled()
        self._take(stash_id)
        return stash_id.lower()

    def get_info(self) -> dict:
        with self._lock:
            live = len(self._stashes)
            gone = len(self._gone)
        return {
            "backend": "memory",
            "ttl": self.ttl,
            "live": live,
            "gone": gone,
        }
