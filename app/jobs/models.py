"""Job record for async AI work: status lifecycle (queued -> processing -> completed | failed), timestamps, and result or error."""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional

from app.core.errors import ValidationError
from app.utils.time_utils import as_utc

QUEUED = "queued"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

STATUSES: FrozenSet[str] = frozenset({QUEUED, PROCESSING, COMPLETED, FAILED})
TERMINAL: FrozenSet[str] = frozenset({COMPLETED, FAILED})

# current status -> statuses it may move to; self-edges keep repeated merges idempotent
TRANSITIONS: Dict[str, FrozenSet[str]] = {
    QUEUED: frozenset({QUEUED, PROCESSING}),
    PROCESSING: frozenset({PROCESSING, COMPLETED, FAILED}),
    COMPLETED: frozenset(),
    FAILED: frozenset(),
}

# fields owned by the tracker; callers may not merge them
PROTECTED_FIELDS: FrozenSet[str] = frozenset({"id", "userId", "createdAt", "updatedAt", "version"})


def is_terminal(status: str) -> bool:
    return status in TERMINAL


def can_transition(current: str, requested: str) -> bool:
    return requested in TRANSITIONS.get(current, frozenset())


@dataclass
class Job:
    """A single tracked unit of AI work: owner, job type, opaque payload, status, and the result (completed) or error (failed).
    Why available: Returned by JobTracker.get so the polling endpoint can report progress without touching raw store documents."""

    id: str
    user_id: str
    job_type: str
    payload: Any
    status: str  # queued | processing | completed | failed
    created_at: datetime
    updated_at: datetime
    version: int = 1
    result: Any = None
    error: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return is_terminal(self.status)

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "jobType": self.job_type,
            "payload": self.payload,
            "status": self.status,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "version": self.version,
        }
        if self.status == COMPLETED:
            record["result"] = self.result
        if self.status == FAILED:
            record["error"] = self.error
        return record

    @classmethod
    def from_record(cls, job_id: str, record: Dict[str, Any]) -> "Job":
        status = record.get("status")
        created_at = as_utc(record.get("createdAt"))
        updated_at = as_utc(record.get("updatedAt"))
        if status not in STATUSES or created_at is None or updated_at is None:
            raise ValidationError(f"Job {job_id} has a malformed record")
        return cls(
            id=job_id,
            user_id=record.get("userId", ""),
            job_type=record.get("jobType", ""),
            payload=record.get("payload"),
            status=status,
            created_at=created_at,
            updated_at=updated_at,
            version=int(record.get("version") or 1),
            result=record.get("result") if status == COMPLETED else None,
            error=record.get("error") if status == FAILED else None,
        )
