"""
Base class for stash backends.
Every place a payload can be stashed implements this interface.
"""

from abc import ABC, abstractmethod

from stasher.cancel import CancelToken


class StashBackend(ABC):
    """Abstract one-time secret store. It only ever sees ciphertext."""

    @abstractmethod
    def store(self, body: str, signal: CancelToken = None) -> str:
        """
        Store a serialized wire payload.

        Args:
            body: The payload as JSON text.
            signal: Optional CancelToken for the underlying I/O.

        Returns:
            The new stash id (a version-4 UUID).
        """

    @abstractmethod
    def fetch(self, stash_id: str, signal: CancelToken = None) -> str:
        """
        Retrieve and consume a payload. A second fetch must fail.

        Returns:
            The payload JSON text.

        Raises:
            StashNotFound: Unknown id.
            StashGone: Expired, consumed or deleted.
        """

    @abstractmethod
    def delete(self, stash_id: str, signal: CancelToken = None) -> str:
        """
        Destroy a payload before anyone reads it.

        Returns:
            The id of the deleted stash.
        """

    @abstractmethod
    def get_info(self) -> dict:
        """Get metadata about this backend."""
