"""Response cache for AI calls: fingerprint -> payload with an expiry, stored in the ai_cache collection.

The cache is an optimization only. get() and set() never raise: any storage
failure or malformed entry behaves as a miss (or a skipped write) and is
reported to the CacheObserver instead.
"""
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from app.store.base import DocumentStore
from app.utils.time_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=30)

MISS_ABSENT = "absent"
MISS_EXPIRED = "expired"
MISS_MALFORMED = "malformed"
MISS_ERROR = "error"


class CacheObserver:
    """Sink for cache outcomes: logs them and keeps counters (hits, misses by reason, failed writes).
    Why available: Keeps the fail-open policy visible in logs and /health, and lets tests assert on why a read missed."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger
        self.counts: Counter = Counter()

    def hit(self, key: str) -> None:
        self.counts["hit"] += 1
        self.log.debug("ai cache hit key=%s", str(key)[:12])

    def miss(self, key: str, reason: str, error: Optional[BaseException] = None) -> None:
        self.counts[f"miss_{reason}"] += 1
        if error is not None:
            self.log.warning("ai cache read failed key=%s reason=%s: %s", str(key)[:12], reason, error)
        else:
            self.log.debug("ai cache miss key=%s reason=%s", str(key)[:12], reason)

    def write_failed(self, key: str, error: BaseException) -> None:
        self.counts["write_failed"] += 1
        self.log.warning("ai cache write failed key=%s: %s", str(key)[:12], error)

    def snapshot(self) -> Dict[str, int]:
        return dict(self.counts)


class ResponseCache:
    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        default_ttl: timedelta = DEFAULT_TTL,
        observer: Optional[CacheObserver] = None,
        collection: str = "ai_cache",
    ):
        self._store = store
        self._clock = clock
        self._default_ttl = default_ttl
        self._collection = collection
        self.observer = observer or CacheObserver()

    async def get(self, key: str) -> Any:
        """Return the cached payload if its expiresAt is strictly in the future, else None."""
        try:
            doc = await self._store.get(self._collection, key)
        except Exception as e:
            self.observer.miss(key, MISS_ERROR, e)
            return None

        if doc is None:
            self.observer.miss(key, MISS_ABSENT)
            return None
        expires_at = as_utc(doc.get("expiresAt")) if isinstance(doc, dict) else None
        if expires_at is None:
            self.observer.miss(key, MISS_MALFORMED)
            return None
        if expires_at <= self._clock():
            self.observer.miss(key, MISS_EXPIRED)
            return None

        payload = doc.get("payload")
        if payload is None:
            self.observer.miss(key, MISS_MALFORMED)
            return None
        self.observer.hit(key)
        return payload

    async def set(self, key: str, payload: Any, ttl: Optional[timedelta] = None) -> None:
        """Upsert payload under key with expiresAt = now + ttl (default 30 minutes). Failures are reported, not raised."""
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= timedelta(0):
            self.observer.write_failed(key, ValueError(f"ttl must be positive, got {ttl}"))
            return
        now = self._clock()
        try:
            await self._store.merge(
                self._collection,
                key,
                {"payload": payload, "createdAt": now, "expiresAt": now + ttl},
            )
        except Exception as e:
            self.observer.write_failed(key, e)
