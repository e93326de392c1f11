"""
Session persistence

Keeps the bearer token in the durable store under ``session:token``. Logging
out removes the token and clears the whole cache namespace so nothing from the
previous session can be served afterwards.
"""

import logging
from typing import Optional

from farmdata.core.exceptions import StorageError
from farmdata.services.cache_store import CacheStore
from farmdata.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

TOKEN_KEY = "session:token"


class SessionService:
    """Bearer token storage and logout"""

    def __init__(self, kv: KeyValueStore, cache: CacheStore):
        self.kv = kv
        self.cache = cache

    def get_token(self) -> Optional[str]:
        try:
            return self.kv.get(TOKEN_KEY) or None
        except StorageError as e:
            logger.warning(f"Could not read session token: {e}")
            return None

    def set_token(self, token: str) -> None:
        token = (token or "").strip()
        if not token:
            raise ValueError("Token must not be empty")
        self.kv.set(TOKEN_KEY, token)
        logger.info("Session token stored")

    @property
    def authenticated(self) -> bool:
        return self.get_token() is not None

    def logout(self) -> int:
        """Forget the token and every cached entry; returns entries cleared"""
        try:
            self.kv.remove(TOKEN_KEY)
        except StorageError as e:
            logger.warning(f"Could not remove session token: {e}")
        cleared = self.cache.clear()
        logger.info(f"Logged out, cleared {cleared} cache entries")
        return cleared
