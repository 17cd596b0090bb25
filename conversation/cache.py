"""
In-memory cache of conversation contexts.

Bounded LRU with a per-entry TTL. Best-effort only: a miss is rebuilt
from persisted messages.
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple

from .context import ConversationContext

logger = logging.getLogger(__name__)


class ConversationContextCache:
    """
    LRU + TTL cache keyed by lead_id.

    Key: lead_id.
    Value: (stored_at, ConversationContext).
    """

    def __init__(
        self,
        maxsize: int = 1000,
        ttl_seconds: float = 3600.0,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self._timer = timer
        self._cache: "OrderedDict[str, Tuple[float, ConversationContext]]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, lead_id: str) -> Optional[ConversationContext]:
        entry = self._cache.get(lead_id)
        if entry is None:
            self.misses += 1
            return None
        stored_at, context = entry
        if self._timer() - stored_at > self.ttl_seconds:
            del self._cache[lead_id]
            self.misses += 1
            return None
        self._cache.move_to_end(lead_id)
        self.hits += 1
        return context

    def put(self, lead_id: str, context: ConversationContext) -> None:
        if lead_id in self._cache:
            self._cache.move_to_end(lead_id)
        elif len(self._cache) >= self.maxsize:
            evicted, _ = self._cache.popitem(last=False)
            self.evictions += 1
            logger.debug(f"Evicted conversation context for lead {evicted}")
        self._cache[lead_id] = (self._timer(), context)

    def invalidate(self, lead_id: str) -> None:
        self._cache.pop(lead_id, None)

    def values(self) -> List[ConversationContext]:
        """Live (unexpired) contexts."""
        now = self._timer()
        return [ctx for stored_at, ctx in self._cache.values() if now - stored_at <= self.ttl_seconds]

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, lead_id: object) -> bool:
        return lead_id in self._cache

    def stats(self) -> Dict[str, int]:
        return {
            "size": len(self._cache),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }
