"""Job tracker: create jobs, move them through their lifecycle, and expose status/result to polling callers.

All state lives in the injected DocumentStore. Each write is a conditional merge
on the job's version field, so two workers racing on one job id cannot silently
overwrite each other's terminal status.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar

from app.core.errors import (
    InvalidTransition,
    JobNotFound,
    UnitOfWorkFailure,
    ValidationError,
    VersionConflict,
)
from app.jobs.models import (
    COMPLETED,
    FAILED,
    PROCESSING,
    PROTECTED_FIELDS,
    QUEUED,
    STATUSES,
    Job,
    can_transition,
)
from app.store.base import VERSION_FIELD, DocumentStore
from app.utils.time_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

STALE_JOB_ERROR = "timed out"


def _require_identifier(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")
    return value


class JobTracker:
    """Owns the ai_jobs collection: enqueue, guarded status updates, run, and reads.
    Why available: Endpoints enqueue AI work here, run it in the background, and poll it by id."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        collection: str = "ai_jobs",
    ):
        self._store = store
        self._clock = clock
        self._collection = collection

    async def enqueue(self, user_id: str, job_type: str, payload: Any) -> str:
        """Create one job in state queued (createdAt == updatedAt) and return its new id. Storage errors propagate."""
        _require_identifier("user_id", user_id)
        _require_identifier("job_type", job_type)
        now = self._clock()
        job_id = self._store.new_id(self._collection)
        record = {
            "id": job_id,
            "userId": user_id,
            "jobType": job_type,
            "payload": payload,
            "status": QUEUED,
            "createdAt": now,
            "updatedAt": now,
            VERSION_FIELD: 1,
        }
        await self._store.create(self._collection, job_id, record)
        logger.info("job enqueued job_id=%s job_type=%s user_id=%s", job_id, job_type, user_id)
        return job_id

    async def get(self, job_id: str) -> Optional[Job]:
        if not job_id:
            return None
        record = await self._store.get(self._collection, job_id)
        if record is None:
            return None
        return Job.from_record(job_id, record)

    async def update_status(
        self,
        job_id: str,
        fields: Mapping[str, Any],
        *,
        expected_version: Optional[int] = None,
    ) -> Job:
        """Merge fields into the job (always advancing updatedAt and version) if the status change is a legal edge.

        Raises JobNotFound, InvalidTransition (terminal job or illegal edge),
        ValidationError (protected field, unknown status, result/error not
        matching the status) or VersionConflict (lost-update race).
        """
        fields = dict(fields or {})
        protected = PROTECTED_FIELDS.intersection(fields)
        if protected:
            raise ValidationError(f"cannot update protected fields: {sorted(protected)}")

        record = await self._store.get(self._collection, job_id) if job_id else None
        if record is None:
            raise JobNotFound(job_id)
        job = Job.from_record(job_id, record)

        requested = fields.get("status", job.status)
        if requested not in STATUSES:
            raise ValidationError(f"unknown job status: {requested!r}")
        if job.terminal or not can_transition(job.status, requested):
            raise InvalidTransition(job_id, job.status, requested)
        _check_outcome_fields(requested, fields)

        stored_version = record.get(VERSION_FIELD)
        if expected_version is not None and expected_version != stored_version:
            raise VersionConflict(job_id, expected_version, stored_version)

        now = self._clock()
        if now <= job.updated_at:
            # coarse or frozen clock: updatedAt must still move forward
            now = job.updated_at + timedelta(microseconds=1)
        update: Dict[str, Any] = {**fields, "updatedAt": now, VERSION_FIELD: (stored_version or 0) + 1}
        await self._store.merge(self._collection, job_id, update, expected_version=stored_version)

        if requested != job.status:
            logger.info("job %s: %s -> %s job_type=%s", job_id, job.status, requested, job.job_type)
        return Job.from_record(job_id, {**record, **update})

    async def run(self, job_id: str, unit_of_work: Callable[[], Awaitable[T]]) -> None:
        """Mark the job processing, await unit_of_work, then record completed/result or failed/error.

        A failure of unit_of_work is recorded on the job and not re-raised.
        If the job cannot be claimed (already running or finished) the work is
        never started and the error propagates, as do storage errors.
        """
        current = await self.get(job_id)
        if current is None:
            raise JobNotFound(job_id)
        if current.status != QUEUED:
            # already claimed by another runner, or finished
            raise InvalidTransition(job_id, current.status, PROCESSING)
        job = await self.update_status(job_id, {"status": PROCESSING}, expected_version=current.version)
        try:
            result = await unit_of_work()
        except Exception as exc:
            failure = UnitOfWorkFailure(str(exc) or exc.__class__.__name__)
            logger.warning("job %s unit of work failed job_type=%s error=%s", job_id, job.job_type, failure)
            await self.update_status(
                job_id, {"status": FAILED, "error": str(failure)}, expected_version=job.version
            )
            return
        await self.update_status(
            job_id, {"status": COMPLETED, "result": result}, expected_version=job.version
        )

    async def list_for_user(self, user_id: str, limit: int = 20) -> List[Job]:
        """Newest jobs owned by user_id."""
        _require_identifier("user_id", user_id)
        rows = await self._store.query(
            self._collection,
            filters=[("userId", user_id)],
            order_by="createdAt",
            descending=True,
            limit=limit,
        )
        jobs: List[Job] = []
        for row in rows:
            try:
                jobs.append(Job.from_record(row["id"], row))
            except ValidationError as e:
                logger.warning("skipping malformed job record: %s", e)
        return jobs

    async def fail_stale(self, older_than: timedelta, limit: int = 100) -> List[str]:
        """Mark jobs stuck in processing since before now - older_than as failed. Returns the ids it failed.
        Why available: run() has no timeout; the cron endpoint uses this so pollers eventually see a terminal state."""
        cutoff = self._clock() - older_than
        rows = await self._store.query(
            self._collection,
            filters=[("status", PROCESSING)],
            order_by="updatedAt",
            limit=limit,
        )
        failed: List[str] = []
        for row in rows:
            updated_at = as_utc(row.get("updatedAt"))
            if updated_at is None or updated_at >= cutoff:
                continue
            try:
                await self.update_status(
                    row["id"],
                    {"status": FAILED, "error": STALE_JOB_ERROR},
                    expected_version=row.get(VERSION_FIELD),
                )
            except (InvalidTransition, VersionConflict) as e:
                # finished or touched since the query ran
                logger.info("stale sweep skipped job %s: %s", row["id"], e)
                continue
            failed.append(row["id"])
        if failed:
            logger.warning("stale sweep failed %d job(s)", len(failed))
        return failed


def _check_outcome_fields(status: str, fields: Mapping[str, Any]) -> None:
    if status == COMPLETED and "result" not in fields:
        raise ValidationError("a completed job needs a result")
    if status == FAILED:
        error = fields.get("error")
        if not isinstance(error, str) or not error:
            raise ValidationError("a failed job needs a non-empty error message")
    if "result" in fields and status != COMPLETED:
        raise ValidationError("result may only be set together with status 'completed'")
    if "error" in fields and status != FAILED:
        raise ValidationError("error may only be set together with status 'failed'")
