"""Error taxonomy shared by the job tracker, the response cache and the HTTP layer."""
import logging

from fastapi import HTTPException

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for errors raised by the core. Each subclass maps to one HTTP status."""

    status_code = 500


class ValidationError(ServiceError):
    """Malformed or missing required input (e.g. empty user_id). Never retried."""

    status_code = 400


class StorageUnavailable(ServiceError):
    """The document store could not be reached or rejected a read/write."""

    status_code = 503


class DocumentExists(ServiceError):
    status_code = 409

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"Document already exists: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


class JobNotFound(ServiceError):
    status_code = 404

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidTransition(ServiceError):
    """A status change that is not an edge of queued -> processing -> {completed | failed}."""

    status_code = 409

    def __init__(self, job_id: str, current: str, requested: str | None):
        super().__init__(f"Job {job_id}: cannot move from {current!r} to {requested!r}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class VersionConflict(ServiceError):
    """A conditional write found a different version than expected (lost-update race)."""

    status_code = 409

    def __init__(self, doc_id: str, expected: int | None, actual: int | None):
        super().__init__(f"Document {doc_id}: expected version {expected}, found {actual}")
        self.doc_id = doc_id
        self.expected = expected
        self.actual = actual


class QuotaExceeded(ServiceError):
    """The caller used up this month's AI allowance for their plan."""

    status_code = 429

    def __init__(self, usage_type: str, limit: int, month: str):
        super().__init__(f"Monthly {usage_type} limit of {limit} reached for {month}")
        self.usage_type = usage_type
        self.limit = limit
        self.month = month


class UnitOfWorkFailure(ServiceError):
    """Classifies a failure raised by a tracked unit of work. Recorded on the job, never raised out of run()."""


def as_http_error(e: ServiceError) -> HTTPException:
    """Translate a core error into an HTTPException with its status and message.
    Why available: Endpoints and exception handlers share one mapping so clients see consistent codes."""
    if isinstance(e, StorageUnavailable):
        logger.warning("storage unavailable: %s", e)
        return HTTPException(status_code=e.status_code, detail="Storage temporarily unavailable")
    return HTTPException(status_code=e.status_code, detail=str(e))


def as_http_500(e: Exception) -> HTTPException:
    """Log exception and return a generic 500 HTTPException (no internal details leaked).
    Why available: Centralized error handling so API never leaks stack traces or internal state to clients."""
    logger.exception("unhandled error: %s", e)
    return HTTPException(status_code=500, detail="Internal server error")
