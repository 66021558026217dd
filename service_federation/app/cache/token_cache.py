"""
Per-client access token caches for the Federation Service.
"""

import threading
from typing import Callable, Dict, Optional

from shared.logging import get_logger
from ..models import AccessToken


ACCESS_TOKEN_CACHE_KEY = "ding_talk_access_token"
CACHE_NAME_PREFIX = "ding_talk"


class ClientTokenCache:
    """In-memory token store for a single federated client.

    Entries never expire on their own; callers must tolerate a stale token
    being rejected downstream and invalidate it explicitly.
    """

    def __init__(self, name: str):
        self.name = name
        self._entries: Dict[str, AccessToken] = {}
        self._lock = threading.Lock()

    def get(self, key: str = ACCESS_TOKEN_CACHE_KEY) -> Optional[AccessToken]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, token: AccessToken) -> None:
        with self._lock:
            self._entries[key] = token

    def invalidate(self, key: str = ACCESS_TOKEN_CACHE_KEY) -> bool:
        """Remove an entry. Returns whether one was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class TokenCacheManager:
    """Registry of token caches keyed by client identifier.

    Owned by the federation service: started at application startup and
    stopped at shutdown. A client's cache is created on first access, at
    most once even when several callbacks for the same client race.
    """

    def __init__(self, cache_factory: Optional[Callable[[str], ClientTokenCache]] = None):
        self.logger = get_logger("federation.token_cache")
        self._cache_factory = cache_factory or ClientTokenCache
        self._caches: Dict[str, ClientTokenCache] = {}
        self._lock = threading.Lock()
        self._running = False

    def start(self) -> None:
        self._running = True
        self.logger.info("Token cache manager started")

    def stop(self) -> None:
        with self._lock:
            for cache in self._caches.values():
                cache.clear()
            self._caches.clear()
            self._running = False
        self.logger.info("Token cache manager stopped")

    @property
    def running(self) -> bool:
        return self._running

    def get_cache(self, client_id: str) -> ClientTokenCache:
        """Return the cache for ``client_id``, creating it exactly once."""
        cache = self._caches.get(client_id)
        if cache is not None:
            return cache

        with self._lock:
            cache = self._caches.get(client_id)
            if cache is None:
                cache_name = f"{CACHE_NAME_PREFIX}:{client_id}"
                cache = self._cache_factory(cache_name)
                self._caches[client_id] = cache
                self.logger.info("Created token cache", cache_name=cache_name)
            return cache

    def client_ids(self):
        with self._lock:
            return sorted(self._caches)
