"""Unit tests for the in-memory document store."""
import asyncio

import pytest

from app.core.errors import DocumentExists, VersionConflict
from app.store.memory import InMemoryDocumentStore


@pytest.fixture
def mem():
    return InMemoryDocumentStore()


def test_create_and_get(mem):
    doc_id = mem.new_id("c")
    asyncio.run(mem.create("c", doc_id, {"a": 1}))
    assert asyncio.run(mem.get("c", doc_id)) == {"a": 1}
    assert asyncio.run(mem.get("c", "other")) is None


def test_create_refuses_existing_id(mem):
    asyncio.run(mem.create("c", "x", {"a": 1}))
    with pytest.raises(DocumentExists):
        asyncio.run(mem.create("c", "x", {"a": 2}))
    assert asyncio.run(mem.get("c", "x")) == {"a": 1}


def test_merge_upserts_fields(mem):
    asyncio.run(mem.merge("c", "x", {"a": 1, "b": 1}))
    asyncio.run(mem.merge("c", "x", {"b": 2}))
    assert asyncio.run(mem.get("c", "x")) == {"a": 1, "b": 2}


def test_conditional_merge_checks_version(mem):
    asyncio.run(mem.create("c", "x", {"version": 1}))
    asyncio.run(mem.merge("c", "x", {"version": 2}, expected_version=1))

    with pytest.raises(VersionConflict) as exc:
        asyncio.run(mem.merge("c", "x", {"version": 2}, expected_version=1))
    assert exc.value.actual == 2


def test_returned_documents_are_copies(mem):
    asyncio.run(mem.create("c", "x", {"nested": {"n": 1}}))
    doc = asyncio.run(mem.get("c", "x"))
    doc["nested"]["n"] = 99
    assert asyncio.run(mem.get("c", "x")) == {"nested": {"n": 1}}


def test_query_filters_orders_and_limits(mem):
    for i, owner in enumerate(["u1", "u2", "u1", "u1"]):
        asyncio.run(mem.create("c", f"d{i}", {"owner": owner, "n": i}))

    rows = asyncio.run(mem.query("c", filters=[("owner", "u1")], order_by="n", descending=True, limit=2))
    assert [r["id"] for r in rows] == ["d3", "d2"]
    assert asyncio.run(mem.query("c", filters=[("owner", "nobody")])) == []


def test_delete(mem):
    asyncio.run(mem.create("c", "x", {}))
    asyncio.run(mem.delete("c", "x"))
    asyncio.run(mem.delete("c", "x"))
    assert asyncio.run(mem.get("c", "x")) is None
