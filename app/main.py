import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, Awaitable, Callable

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    HTTPException,
    Query,
    Request,
    Response,
)
from fastapi.responses import JSONResponse

from app.ai.generator import ContentGenerator
from app.cache.keys import compute_key
from app.cache.response_cache import ResponseCache
from app.core.auth import AuthUser, get_current_user
from app.core.config import settings
from app.core.errors import ServiceError, as_http_500, as_http_error
from app.core.firebase import get_firestore_client, initialize_firebase, shutdown_firebase
from app.core.log_config import configure_logging
from app.core.openai_client import create_openai_client
from app.guardrails.cron_auth import is_cron_request
from app.guardrails.rate_limit import SimpleRateLimiter
from app.guardrails.sanitizer import sanitize_payload
from app.jobs.models import COMPLETED, QUEUED
from app.jobs.tracker import JobTracker
from app.models.schemas import (
    CreateJobRequest,
    CreateJobResponse,
    HealthResponse,
    JobListResponse,
    JobStatusResponse,
    StaleSweepResponse,
    UsageResponse,
)
from app.observability.middleware import RequestTimingMiddleware, get_request_id
from app.store.base import DocumentStore
from app.store.firestore import FirestoreDocumentStore
from app.store.memory import InMemoryDocumentStore
from app.usage.tracker import UsageTracker

logger = logging.getLogger(__name__)


# -------------------------
# App setup
# -------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the store handle and clients for the life of the process; components receive them at construction."""
    configure_logging()

    firebase_app = None
    if settings.store_backend == "firestore" or settings.firebase_project_id or settings.service_account_json:
        firebase_app = initialize_firebase(settings)

    store: DocumentStore
    if settings.store_backend == "firestore":
        store = FirestoreDocumentStore(get_firestore_client(firebase_app))
    else:
        store = InMemoryDocumentStore()

    app.state.store = store
    app.state.tracker = JobTracker(store, collection=settings.jobs_collection)
    app.state.cache = ResponseCache(
        store,
        default_ttl=timedelta(seconds=settings.cache_ttl_seconds),
        collection=settings.cache_collection,
    )
    app.state.usage = UsageTracker(store, collection=settings.usage_collection)
    app.state.generator = None
    if settings.openai_api_key:
        app.state.generator = ContentGenerator(
            create_openai_client(settings),
            settings.chat_model,
            prompt_version=settings.prompt_version,
        )
    else:
        logger.warning("OPENAI_API_KEY is not set; AI generation endpoints will return 503")

    logger.info("started with store=%s", store.backend)
    try:
        yield
    finally:
        await store.close()
        shutdown_firebase(firebase_app)


app = FastAPI(title="Creator AI Jobs", lifespan=lifespan)
app.add_middleware(RequestTimingMiddleware)

rate_limiter = SimpleRateLimiter(
    max_requests=settings.rate_limit_requests,
    window_seconds=settings.rate_limit_window_seconds,
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    err = as_http_error(exc)
    logger.info("request_id=%s %s -> %d", get_request_id(request), exc.__class__.__name__, err.status_code)
    return JSONResponse(status_code=err.status_code, content={"detail": err.detail})


# -------------------------
# Dependencies
# -------------------------

def get_tracker(request: Request) -> JobTracker:
    return request.app.state.tracker


def get_cache(request: Request) -> ResponseCache:
    return request.app.state.cache


def get_usage(request: Request) -> UsageTracker:
    return request.app.state.usage


def get_generator(request: Request) -> ContentGenerator:
    generator = getattr(request.app.state, "generator", None)
    if generator is None:
        raise HTTPException(status_code=503, detail="AI generation is not configured")
    return generator


async def _run_job(tracker: JobTracker, job_id: str, unit_of_work: Callable[[], Awaitable[Any]]) -> None:
    """Background task: run the job; errors from run() itself (claim conflicts, storage) are logged here."""
    try:
        await tracker.run(job_id, unit_of_work)
    except ServiceError as e:
        logger.error("job %s could not be tracked to completion: %s", job_id, e)


# -------------------------
# Health
# -------------------------

@app.get("/")
def root():
    return {"service": "creator-ai-jobs", "docs": "/docs"}


@app.get("/health", response_model=HealthResponse)
def health(request: Request):
    """Liveness plus the store backend and cache hit/miss counters."""
    cache = getattr(request.app.state, "cache", None)
    store = getattr(request.app.state, "store", None)
    return HealthResponse(
        status="ok",
        store=store.backend if store is not None else "uninitialized",
        generator_configured=getattr(request.app.state, "generator", None) is not None,
        cache=cache.observer.snapshot() if cache is not None else {},
    )


# -------------------------
# AI jobs
# -------------------------

@app.post("/ai/jobs", response_model=CreateJobResponse)
async def create_ai_job(
    req: CreateJobRequest,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    user: AuthUser = Depends(get_current_user),
    tracker: JobTracker = Depends(get_tracker),
    cache: ResponseCache = Depends(get_cache),
    generator: ContentGenerator = Depends(get_generator),
    usage: UsageTracker = Depends(get_usage),
):
    """Return a cached result for an identical request, or enqueue a generation job and run it in the background.
    Why available: Clients poll GET /ai/jobs/{job_id} for the result instead of holding the request open during generation."""
    rate_limiter.check(request, response, prefix="ai_jobs", identifier=user.uid)

    if req.job_type not in generator.job_types:
        raise HTTPException(status_code=400, detail=f"Unsupported jobType: {req.job_type}")

    payload = sanitize_payload(req.payload, settings.max_input_chars)
    # fixed order: jobType then payload
    cache_key = compute_key({"jobType": req.job_type, "payload": payload})

    cached = await cache.get(cache_key)
    if cached is not None:
        return CreateJobResponse(job_id=None, status=COMPLETED, cached=True, result=cached)

    # cache hits are free; only new generations count against the plan
    await usage.check(user.uid, user.plan, role=user.role)

    job_id = await tracker.enqueue(user.uid, req.job_type, payload)

    async def _generate():
        result = await generator.generate(req.job_type, payload)
        await cache.set(cache_key, result)
        await usage.record(user.uid, user.plan, role=user.role)
        return result

    background_tasks.add_task(_run_job, tracker, job_id, _generate)
    return CreateJobResponse(job_id=job_id, status=QUEUED, cached=False)


@app.get("/ai/jobs/{job_id}", response_model=JobStatusResponse)
async def get_ai_job(
    job_id: str,
    request: Request,
    response: Response,
    user: AuthUser = Depends(get_current_user),
    tracker: JobTracker = Depends(get_tracker),
):
    """Poll a job. Owners see their own jobs; admins see any job."""
    rate_limiter.check(request, response, prefix="ai_jobs_poll", identifier=user.uid)

    job = await tracker.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if job.user_id != user.uid and not user.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return JobStatusResponse.from_job(job)


@app.get("/ai/jobs", response_model=JobListResponse)
async def list_ai_jobs(
    limit: int = Query(20, ge=1, le=100),
    user: AuthUser = Depends(get_current_user),
    tracker: JobTracker = Depends(get_tracker),
):
    jobs = await tracker.list_for_user(user.uid, limit=limit)
    return JobListResponse(jobs=[JobStatusResponse.from_job(j) for j in jobs])


# -------------------------
# Usage
# -------------------------

@app.get("/ai/usage", response_model=UsageResponse)
async def get_ai_usage(
    user: AuthUser = Depends(get_current_user),
    usage: UsageTracker = Depends(get_usage),
):
    """Caller's AI usage for the current month against their plan limit."""
    stats = await usage.stats(user.uid, user.plan, role=user.role)
    return UsageResponse(**stats.to_dict())


# -------------------------
# Cron
# -------------------------

@app.post("/cron/fail-stale-jobs", response_model=StaleSweepResponse)
async def fail_stale_jobs(request: Request, tracker: JobTracker = Depends(get_tracker)):
    """Mark jobs stuck in processing longer than STALE_JOB_MINUTES as failed. Cron-authenticated."""
    if not is_cron_request(request.headers, settings.cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        failed = await tracker.fail_stale(timedelta(minutes=settings.stale_job_minutes))
    except ServiceError:
        raise
    except Exception as e:
        raise as_http_500(e)
    return StaleSweepResponse(failed_job_ids=failed, count=len(failed))
