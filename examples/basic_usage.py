"""
Stasher: Basic Usage Example

Stashes a secret, reads it back once, and shows that a second read fails.
Runs entirely in-process with the in-memory backend. Drop the backend
argument to talk to the real service instead.
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stasher import MemoryBackend, StashConfig, StashGone, Stasher, wipe


def main():
    print("=" * 50)
    print("  Stasher: One-Time Secret Sharing")
    print("=" * 50)

    backend = MemoryBackend(ttl=60)
    stasher = Stasher(backend=backend, config=StashConfig())

    secret = bytearray(b"DATABASE_URL=postgres://app:hunter2@db/prod")
    token = stasher.enstash(secret)
    wipe(secret)

    stash_id, key = token.split(":")
    print(f"\nToken:    {token}")
    print(f"Stash id: {stash_id}  (what the server knows)")
    print(f"Key:      {len(key)} chars  (only in the token)")
    print(f"Backend:  {backend.get_info()}")

    # The recipient redeems the token
    plaintext = stasher.destash(token)
    print(f"\nRetrieved: {plaintext.decode('utf-8')}")
    wipe(plaintext)

    # A second attempt finds nothing
    try:
        stasher.destash(token)
    except StashGone as e:
        print(f"Second read: {e}")

    # Stash something and take it back before anyone reads it
    token = stasher.enstash(b"changed my mind")
    deleted = stasher.unstash(token)
    print(f"\nDeleted unread stash {deleted}")

    print(f"\nBackend:  {backend.get_info()}")


if __name__ == "__main__":
    main()
