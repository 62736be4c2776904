"""Process-local read cache for dashboard endpoints.

Entries expire after a fixed TTL and can be dropped early by tag. A miss
computes the value inline; nothing refreshes in the background.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: Any
    stored_at: float
    tags: frozenset = field(default_factory=frozenset)


class ReadCache:
    """TTL cache keyed by computation name plus arguments."""

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, Hashable], _Entry] = {}

    def _fresh(self, entry: _Entry) -> bool:
        return (self._clock() - entry.stored_at) < self.ttl_seconds

    def get(self, name: str, key: Hashable = None) -> Optional[Any]:
        """Return a cached value if present and not expired."""
        entry = self._entries.get((name, key))
        if entry is None or not self._fresh(entry):
            return None
        return entry.value

    async def get_or_compute(
        self,
        name: str,
        compute: Callable[[], Awaitable[Any]],
        key: Hashable = None,
        tags: Iterable[str] = (),
    ) -> Any:
        """Return the cached value for (name, key), computing it on a miss."""
        entry = self._entries.get((name, key))
        if entry is not None and self._fresh(entry):
            return entry.value

        value = await compute()
        self._entries[(name, key)] = _Entry(value=value, stored_at=self._clock(), tags=frozenset(tags))
        logger.debug(f"Cache miss for {name} ({key!r}), recomputed")
        return value

    def invalidate_tag(self, tag: str) -> int:
        """Drop every entry carrying ``tag``; returns how many were dropped."""
        stale = [k for k, entry in self._entries.items() if tag in entry.tags]
        for k in stale:
            del self._entries[k]
        logger.info(f"Invalidated {len(stale)} cache entries tagged {tag}")
        return len(stale)

    def clear(self):
        self._entries.clear()
