"""Session bundle persistence on top of a SessionCache backend."""

import logging

from pydantic import ValidationError

from core.logging import log_with_context
from core.types import SessionCache
from wsgw.models import SessionTokenBundle

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Reads, writes and purges the one session bundle kept per scope key.

    Only SessionTokenBundle is ever written here; authorization codes,
    access tokens and key material stay in memory for a single run.
    """

    def __init__(self, cache: SessionCache):
        self._cache = cache

    def load(self, scope_key: str) -> SessionTokenBundle | None:
        """Return the cached bundle if it passes the shape check, else None."""
        raw = self._cache.get(scope_key)
        if not raw:
            return None
        try:
            bundle = SessionTokenBundle.model_validate(raw)
        except ValidationError as e:
            log_with_context(
                logger,
                logging.WARNING,
                "Cached session has unexpected shape, ignoring",
                error_message=str(e)[:200],
            )
            return None
        return bundle if bundle.is_valid else None

    def save(self, scope_key: str, bundle: SessionTokenBundle) -> None:
        if not bundle.is_valid:
            raise ValueError("Refusing to cache an invalid session bundle")
        self._cache.set(scope_key, bundle.to_cache())
        logger.debug("Session cached")

    def purge(self, scope_key: str) -> None:
        self._cache.set(scope_key, None)
        logger.info("Cached session purged")
