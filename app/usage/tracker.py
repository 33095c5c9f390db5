"""Per-user monthly AI usage quotas, one counter document per (user, usage type, month) in the ai_usage collection."""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Dict, Mapping, Optional

from app.core.errors import DocumentExists, QuotaExceeded, StorageUnavailable, VersionConflict
from app.store.base import VERSION_FIELD, DocumentStore
from app.utils.time_utils import utc_now

logger = logging.getLogger(__name__)

GENERAL_AI = "general_ai"

ADMIN = "Admin"
DEFAULT_PLAN = "Free"
UNLIMITED = 999999

# usage type -> plan -> monthly allowance
PLAN_LIMITS: Dict[str, Dict[str, int]] = {
    GENERAL_AI: {
        "Free": 50,
        "Pro": 1000,
        "Elite": 3000,
        "Agency": 3000,
        ADMIN: UNLIMITED,
    },
}

# plans billed as another plan
PLAN_ALIASES: Dict[str, str] = {"OnlyFansStudio": "Elite"}


def month_key(now: datetime) -> str:
    return now.strftime("%Y-%m")


def usage_doc_id(user_id: str, usage_type: str, month: str) -> str:
    return f"{user_id}_{usage_type}_{month}"


@dataclass
class UsageStats:
    count: int
    limit: int
    remaining: int
    month: str

    @property
    def allowed(self) -> bool:
        return self.remaining > 0

    def to_dict(self) -> Dict[str, object]:
        return {**asdict(self), "allowed": self.allowed}


class UsageTracker:
    """Reads and increments monthly AI usage counters against the caller's plan allowance.
    Why available: POST /ai/jobs refuses new generations once the plan's monthly limit is used up; admins are never limited."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        collection: str = "ai_usage",
        limits: Optional[Mapping[str, Mapping[str, int]]] = None,
        max_attempts: int = 3,
    ):
        self._store = store
        self._clock = clock
        self._collection = collection
        self._limits = limits if limits is not None else PLAN_LIMITS
        self._max_attempts = max_attempts

    def limit_for(self, plan: Optional[str], usage_type: str = GENERAL_AI) -> int:
        plan = plan or DEFAULT_PLAN
        plan = PLAN_ALIASES.get(plan, plan)
        return self._limits.get(usage_type, {}).get(plan, 0)

    async def stats(
        self,
        user_id: str,
        plan: Optional[str],
        *,
        role: Optional[str] = None,
        usage_type: str = GENERAL_AI,
    ) -> UsageStats:
        """Usage so far this month. A storage error reads as zero usage."""
        month = month_key(self._clock())
        if role == ADMIN:
            return UsageStats(count=0, limit=UNLIMITED, remaining=UNLIMITED, month=month)

        limit = self.limit_for(plan, usage_type)
        try:
            doc = await self._store.get(self._collection, usage_doc_id(user_id, usage_type, month))
        except StorageUnavailable as e:
            logger.warning("usage read failed user_id=%s usage_type=%s: %s", user_id, usage_type, e)
            doc = None

        count = doc.get("count", 0) if isinstance(doc, dict) else 0
        if not isinstance(count, int):
            count = 0
        return UsageStats(count=count, limit=limit, remaining=max(0, limit - count), month=month)

    async def check(
        self,
        user_id: str,
        plan: Optional[str],
        *,
        role: Optional[str] = None,
        usage_type: str = GENERAL_AI,
    ) -> UsageStats:
        """Return current stats, or raise QuotaExceeded when nothing is left this month."""
        stats = await self.stats(user_id, plan, role=role, usage_type=usage_type)
        if not stats.allowed:
            logger.info("usage limit reached user_id=%s usage_type=%s limit=%d", user_id, usage_type, stats.limit)
            raise QuotaExceeded(usage_type, stats.limit, stats.month)
        return stats

    async def record(
        self,
        user_id: str,
        plan: Optional[str],
        *,
        role: Optional[str] = None,
        usage_type: str = GENERAL_AI,
        count: int = 1,
    ) -> None:
        """Add count to this month's counter. Admins and plans without an allowance are not counted.
        Failures are logged, never raised: the generation has already happened."""
        if role == ADMIN or self.limit_for(plan, usage_type) <= 0:
            return

        now = self._clock()
        month = month_key(now)
        doc_id = usage_doc_id(user_id, usage_type, month)
        for _ in range(self._max_attempts):
            try:
                doc = await self._store.get(self._collection, doc_id)
                if doc is None:
                    await self._store.create(
                        self._collection,
                        doc_id,
                        {
                            "userId": user_id,
                            "usageType": usage_type,
                            "month": month,
                            "count": count,
                            "lastReset": now,
                            "lastUpdated": now,
                            VERSION_FIELD: 1,
                        },
                    )
                else:
                    version = doc.get(VERSION_FIELD)
                    await self._store.merge(
                        self._collection,
                        doc_id,
                        {
                            "count": (doc.get("count") or 0) + count,
                            "lastUpdated": now,
                            VERSION_FIELD: (version or 0) + 1,
                        },
                        expected_version=version,
                    )
                return
            except (DocumentExists, VersionConflict):
                # another request counted at the same time; re-read and retry
                continue
            except StorageUnavailable as e:
                logger.warning("usage record failed user_id=%s usage_type=%s: %s", user_id, usage_type, e)
                return
        logger.warning("usage record gave up after %d conflicting writes doc=%s", self._max_attempts, doc_id)
