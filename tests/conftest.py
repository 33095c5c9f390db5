import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
import json
import pytest

# Ensure repo root is on sys.path so `import app...` works in tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.core.errors import StorageUnavailable  # noqa: E402
from app.store.memory import InMemoryDocumentStore  # noqa: E402


class FakeClock:
    """Injectable clock. Each call returns the current time, then moves it forward by tick."""

    def __init__(self, start=None, tick=timedelta(0)):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.tick = tick

    def __call__(self):
        now = self.now
        self.now = self.now + self.tick
        return now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FlakyStore(InMemoryDocumentStore):
    """Memory store that can be told to fail reads and/or writes with StorageUnavailable."""

    def __init__(self):
        super().__init__()
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, collection, doc_id):
        if self.fail_reads:
            raise StorageUnavailable("store offline")
        return await super().get(collection, doc_id)

    async def create(self, collection, doc_id, data):
        if self.fail_writes:
            raise StorageUnavailable("store offline")
        return await super().create(collection, doc_id, data)

    async def merge(self, collection, doc_id, data, *, expected_version=None):
        if self.fail_writes:
            raise StorageUnavailable("store offline")
        return await super().merge(collection, doc_id, data, expected_version=expected_version)


@pytest.fixture
def clock():
    return FakeClock(tick=timedelta(milliseconds=1))


@pytest.fixture
def frozen_clock():
    return FakeClock()


@pytest.fixture
def store():
    return FlakyStore()


def pretty_json(obj) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True, default=str)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """
    Attach request/response payloads into pytest-html report.

    In tests, store payloads like:
      item._api_logs = [{"title": "...", "request": ..., "response": ...}, ...]
    """
    outcome = yield
    rep = outcome.get_result()

    if rep.when != "call":
        return

    api_logs = getattr(item, "_api_logs", None)
    if not api_logs:
        return

    extras = getattr(rep, "extras", [])

    try:
        from pytest_html import extras as html_extras
    except ImportError:
        return

    for entry in api_logs:
        title = entry.get("title", "API Call")
        html = (
            f"<h4>{title}</h4>"
            f"<details><summary><b>Request</b></summary><pre>{pretty_json(entry.get('request', {}))}</pre></details>"
            f"<details><summary><b>Response</b></summary><pre>{pretty_json(entry.get('response', {}))}</pre></details>"
        )
        extras.append(html_extras.html(html))

    rep.extras = extras
