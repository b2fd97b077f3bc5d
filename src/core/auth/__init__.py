"""
Session persistence.

Components:
    - InMemorySessionCache: thread-safe process-local store
    - JsonFileSessionCache: atomic JSON-file store that survives restarts
"""

from .session_cache import InMemorySessionCache, JsonFileSessionCache

__all__ = [
    "InMemorySessionCache",
    "JsonFileSessionCache",
]
