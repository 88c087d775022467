"""
cache/store.py -- In-process TTL cache for public read endpoints.

Public collection listings (team, programs, resources) are read far more often
than they change. Entries live for a short TTL (default 30 seconds) and are
dropped explicitly by invalidate() after every mutation, so editors see their
changes immediately.

Keys are namespaced with ":" -- invalidate("team") drops "team" and every
"team:<variant>" key (e.g. "team:all" for the editor view with hidden members).

Thread safety: sync handlers run in Starlette's thread pool, so every access
takes the lock. The loader runs outside the lock; two concurrent cold misses
may both load, and the last one to finish wins.

Usage:
    cache = ResponseCache(ttl=30)
    team = cache.get_or_load("team", lambda: store.query("team"))
    cache.invalidate("team")
"""

import threading
import time
from typing import Any, Callable, Optional

_DEFAULT_TTL = 30  # seconds


class ResponseCache:
    def __init__(self, ttl: int = _DEFAULT_TTL) -> None:
        self.ttl = ttl
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value for key if present and not expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, time.monotonic() + self.ttl)

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """Return the cached value, or call loader(), cache and return its result.

        Loader exceptions propagate and nothing is cached.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = loader()
        self.set(key, value)
        return value

    def invalidate(self, namespace: str) -> int:
        """Drop namespace and every namespace:* key. Returns the number removed."""
        prefix = f"{namespace}:"
        with self._lock:
            doomed = [k for k in self._entries if k == namespace or k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def close(self) -> None:
        self.invalidate_all()
