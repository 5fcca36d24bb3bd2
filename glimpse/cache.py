import asyncio
from typing import Any, Dict, Optional

from .clock import Clock, system_clock


class TTLCache:
    """In-process cache with per-key expiry, read through the injected clock."""

    def __init__(self, clock: Clock = system_clock):
        # key -> (value, expires_at_ms)
        self._store: Dict[str, tuple[Any, int]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        async with self._lock:
            item = self._store.get(key)
            if not item:
                return None
            value, exp = item
            if exp and exp <= now:
                # expired
                self._store.pop(key, None)
                return None
            return value

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        exp = self._clock() + int(max(0.0, float(ttl_seconds)) * 1000)
        async with self._lock:
            self._store[key] = (value, exp)

    async def delete_prefix(self, prefix: str) -> int:
        async with self._lock:
            keys = [k for k in self._store.keys() if k.startswith(prefix)]
            for k in keys:
                self._store.pop(k, None)
            return len(keys)
