"""
In-memory TTL cache for AI insight results.
"""
import copy
import json
import time
from typing import Any, Dict, Optional, Tuple

from config.settings import ai_config


def build_key(parts: Any) -> str:
    return json.dumps(parts, default=str, separators=(",", ":"))


def build_key_prefix(parts: list) -> str:
    """Key of ``parts`` without the closing bracket, so it prefixes keys of longer part lists."""
    full = build_key(parts)
    return full[:-1] if full.endswith("]") else full


class AICache:
    """Process-local cache keyed by the JSON of the key parts."""

    def __init__(self, ttl_seconds: Optional[int] = None, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else ai_config.cache_ttl_seconds
        self._clock = clock
        self._store: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires = entry
        if self._clock() > expires:
            del self._store[key]
            return None
        return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None):
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._store[key] = (copy.deepcopy(value), self._clock() + ttl)

    def invalidate(self, prefix: Optional[str] = None):
        if not prefix:
            self._store.clear()
            return
        for key in [k for k in self._store if k.startswith(prefix)]:
            del self._store[key]

    def __len__(self) -> int:
        return len(self._store)
