"""
Stash backends.
Each backend stores the encrypted payload somewhere and hands back an id.
"""

from stasher.backends.base import StashBackend
from stasher.backends.http import HttpBackend
from stasher.backends.memory import MemoryBackend

__all__ = [
    "StashBackend",
    "HttpBackend",
    "MemoryBackend",
]
