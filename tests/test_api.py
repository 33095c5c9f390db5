"""API tests: enqueue / poll / cache short-circuit / auth / cron, with an in-memory store and a fake generator."""
import asyncio
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import app.main as main_module
from app.cache.response_cache import ResponseCache
from app.core.auth import AuthUser, get_current_user
from app.core.config import settings
from app.guardrails.rate_limit import SimpleRateLimiter
from app.jobs.tracker import JobTracker
from app.main import app, get_cache, get_generator, get_tracker, get_usage
from app.store.memory import InMemoryDocumentStore
from app.usage.tracker import UsageTracker


class FakeGenerator:
    job_types = frozenset({"caption", "speech_script"})

    def __init__(self):
        self.calls = []

    async def generate(self, job_type, payload):
        self.calls.append((job_type, payload))
        if payload.get("fail"):
            raise RuntimeError("quota exceeded")
        return {"text": f"{job_type}: {payload.get('topic')}", "model": "fake"}


def _log(item, title: str, request: dict, response):
    """Store logs on the test item so conftest can attach to pytest-html report."""
    logs = getattr(item, "_api_logs", [])
    logs.append({"title": title, "request": request, "response": {"status_code": response.status_code, "json": response.json()}})
    item._api_logs = logs


@pytest.fixture
def api(monkeypatch):
    store = InMemoryDocumentStore()
    tracker = JobTracker(store)
    cache = ResponseCache(store)
    generator = FakeGenerator()
    usage = UsageTracker(store)
    current = {"user": AuthUser(uid="u1")}

    app.dependency_overrides[get_tracker] = lambda: tracker
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_generator] = lambda: generator
    app.dependency_overrides[get_usage] = lambda: usage
    app.dependency_overrides[get_current_user] = lambda: current["user"]
    monkeypatch.setattr(main_module, "rate_limiter", SimpleRateLimiter(max_requests=1000, window_seconds=60))

    yield SimpleNamespace(
        client=TestClient(app),
        store=store,
        tracker=tracker,
        cache=cache,
        generator=generator,
        usage=usage,
        current=current,
    )
    app.dependency_overrides.clear()


def test_create_job_runs_in_background_and_can_be_polled(api, request):
    body = {"jobType": "speech_script", "payload": {"topic": "launch"}}
    resp = api.client.post("/ai/jobs", json=body)
    _log(request.node, "POST /ai/jobs", body, resp)

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["status"] == "queued"
    assert data["cached"] is False
    job_id = data["jobId"]
    assert job_id

    # TestClient finishes background tasks before returning
    resp = api.client.get(f"/ai/jobs/{job_id}")
    _log(request.node, "GET /ai/jobs/{job_id}", {}, resp)
    assert resp.status_code == 200, resp.text
    job = resp.json()
    assert job["id"] == job_id
    assert job["jobType"] == "speech_script"
    assert job["status"] == "completed"
    assert job["result"] == {"text": "speech_script: launch", "model": "fake"}
    assert job["error"] is None
    assert job["updatedAt"] >= job["createdAt"]


def test_identical_request_is_served_from_cache(api):
    body = {"jobType": "caption", "payload": {"topic": "coffee", "tone": "playful"}}
    first = api.client.post("/ai/jobs", json=body).json()
    second = api.client.post("/ai/jobs", json=body)

    assert second.status_code == 200
    data = second.json()
    assert data["cached"] is True
    assert data["jobId"] is None
    assert data["status"] == "completed"
    assert data["result"] == {"text": "caption: coffee", "model": "fake"}
    assert first["jobId"]
    assert len(api.generator.calls) == 1


def test_failed_generation_is_reported_on_the_job(api):
    resp = api.client.post("/ai/jobs", json={"jobType": "caption", "payload": {"fail": True}})
    job = api.client.get(f"/ai/jobs/{resp.json()['jobId']}").json()

    assert job["status"] == "failed"
    assert job["error"] == "quota exceeded"
    assert job["result"] is None


def test_failed_generation_is_not_cached(api):
    body = {"jobType": "caption", "payload": {"fail": True}}
    api.client.post("/ai/jobs", json=body)
    again = api.client.post("/ai/jobs", json=body).json()

    assert again["cached"] is False
    assert len(api.generator.calls) == 2


def test_payload_is_sanitized_before_storage(api):
    resp = api.client.post("/ai/jobs", json={"jobType": "caption", "payload": {"topic": "  launch\u0000 "}})
    stored = asyncio.run(api.tracker.get(resp.json()["jobId"]))
    assert stored.payload == {"topic": "launch"}


def test_unsupported_job_type_is_400(api):
    resp = api.client.post("/ai/jobs", json={"jobType": "video_render", "payload": {}})
    assert resp.status_code == 400
    assert api.generator.calls == []


def test_missing_job_type_is_422(api):
    resp = api.client.post("/ai/jobs", json={"payload": {}})
    assert resp.status_code == 422


def test_unknown_job_is_404(api):
    resp = api.client.get("/ai/jobs/does-not-exist")
    assert resp.status_code == 404


def test_other_users_job_is_forbidden_but_admin_can_read(api):
    job_id = api.client.post("/ai/jobs", json={"jobType": "caption", "payload": {"topic": "a"}}).json()["jobId"]

    api.current["user"] = AuthUser(uid="u2")
    assert api.client.get(f"/ai/jobs/{job_id}").status_code == 403

    api.current["user"] = AuthUser(uid="admin-1", role="Admin")
    assert api.client.get(f"/ai/jobs/{job_id}").status_code == 200


def test_list_jobs_returns_only_own_jobs(api):
    for topic in ("a", "b"):
        api.client.post("/ai/jobs", json={"jobType": "caption", "payload": {"topic": topic}})
    api.current["user"] = AuthUser(uid="u2")
    api.client.post("/ai/jobs", json={"jobType": "caption", "payload": {"topic": "c"}})

    jobs = api.client.get("/ai/jobs").json()["jobs"]
    assert len(jobs) == 1
    assert jobs[0]["result"]["text"] == "caption: c"

    api.current["user"] = AuthUser(uid="u1")
    assert len(api.client.get("/ai/jobs?limit=1").json()["jobs"]) == 1


def test_missing_token_is_401(api):
    del app.dependency_overrides[get_current_user]
    resp = api.client.get("/ai/jobs/anything")
    assert resp.status_code == 401


def test_rate_limit_returns_429(api, monkeypatch):
    monkeypatch.setattr(main_module, "rate_limiter", SimpleRateLimiter(max_requests=1, window_seconds=60))
    body = {"jobType": "caption", "payload": {"topic": "x"}}

    ok = api.client.post("/ai/jobs", json=body)
    assert ok.status_code == 200
    assert ok.headers["X-RateLimit-Limit"] == "1"

    blocked = api.client.post("/ai/jobs", json=body)
    assert blocked.status_code == 429
    assert "Retry-After" in blocked.headers


def test_storage_outage_on_enqueue_is_503(api, monkeypatch):
    from app.core.errors import StorageUnavailable

    async def broken(*args, **kwargs):
        raise StorageUnavailable("store offline")

    monkeypatch.setattr(api.tracker, "enqueue", broken)
    resp = api.client.post("/ai/jobs", json={"jobType": "caption", "payload": {"topic": "x"}})
    assert resp.status_code == 503
    assert resp.json()["detail"] == "Storage temporarily unavailable"


def test_cron_sweep_requires_auth(api, monkeypatch):
    monkeypatch.setattr(settings, "cron_secret", "s3cret")
    assert api.client.post("/cron/fail-stale-jobs").status_code == 401

    resp = api.client.post("/cron/fail-stale-jobs", headers={"Authorization": "Bearer s3cret"})
    assert resp.status_code == 200
    assert resp.json() == {"failedJobIds": [], "count": 0}

    resp = api.client.post(
        "/cron/fail-stale-jobs",
        headers={"x-vercel-cron": "1", "user-agent": "vercel-cron/1.0"},
    )
    assert resp.status_code == 200


def test_health(api):
    resp = api.client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert "x-request-id" in resp.headers


def test_monthly_quota_blocks_new_generations_but_not_cache_hits(api):
    api.current["user"] = AuthUser(uid="u1", plan="Starter")
    limited = UsageTracker(api.store, limits={"general_ai": {"Starter": 1}})
    app.dependency_overrides[get_usage] = lambda: limited

    body = {"jobType": "caption", "payload": {"topic": "coffee"}}
    assert api.client.post("/ai/jobs", json=body).status_code == 200
    # identical request comes from the cache and costs nothing
    assert api.client.post("/ai/jobs", json=body).json()["cached"] is True

    blocked = api.client.post("/ai/jobs", json={"jobType": "caption", "payload": {"topic": "tea"}})
    assert blocked.status_code == 429
    assert "limit of 1" in blocked.json()["detail"]
    assert len(api.generator.calls) == 1

    usage = api.client.get("/ai/usage").json()
    assert usage["count"] == 1
    assert usage["limit"] == 1
    assert usage["remaining"] == 0
    assert usage["allowed"] is False


def test_admin_has_no_monthly_quota(api):
    api.current["user"] = AuthUser(uid="admin-1", role="Admin", plan="Free")
    limited = UsageTracker(api.store, limits={"general_ai": {"Free": 1}})
    app.dependency_overrides[get_usage] = lambda: limited

    for topic in ("a", "b", "c"):
        assert api.client.post("/ai/jobs", json={"jobType": "caption", "payload": {"topic": topic}}).status_code == 200

    usage = api.client.get("/ai/usage").json()
    assert usage["count"] == 0
    assert usage["allowed"] is True


def test_failed_generation_does_not_count_as_usage(api):
    api.client.post("/ai/jobs", json={"jobType": "caption", "payload": {"fail": True}})
    assert api.client.get("/ai/usage").json()["count"] == 0
