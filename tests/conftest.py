"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import math
from typing import Any

import pytest

from grounded_rag.store.client import ChunkStoreClient
from grounded_rag.store.models import CollectionHandle, ScrollPage, StoredPoint
from grounded_rag.store.transport import (
    ChunkStoreTransport,
    CollectionInfo,
    PointWrite,
    TransportResponse,
)

INDEX_REQUIRED_BODY = (
    '{"status":{"error":"Bad request: Index required but not found for \\"document_id\\" '
    'of one of the following types: [keyword]"}}'
)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── In-memory transport for deterministic testing ───────────────────────


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryTransport(ChunkStoreTransport):
    """Qdrant-like fake that keeps points in insertion order.

    Knobs
    -----
    exists / vector_size:
        State of the remote collection.
    require_index:
        Filtered deletes answer 400 "Index required" until the index is created.
    failing:
        Operation names that answer with status 500.
    """

    backend_name = "memory"

    def __init__(
        self,
        *,
        exists: bool = True,
        vector_size: int = 3,
        require_index: bool = False,
    ) -> None:
        super().__init__("test-collection")
        self.exists = exists
        self.vector_size = vector_size
        self.require_index = require_index
        self.index_created = False
        self.failing: set[str] = set()
        self.index_error_body = "internal error"
        self.points: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []

    def _fail(self, op: str) -> TransportResponse | None:
        self.calls.append(op)
        if op in self.failing:
            return TransportResponse(status_code=500, body=f"{op} exploded")
        return None

    def add_point(self, point_id: str, payload: dict[str, Any], vector: list[float] | None = None) -> None:
        self.points[point_id] = {"vector": vector or [1.0, 0.0, 0.0], "payload": payload}

    # -- control plane --------------------------------------------------------

    def collection_info(self) -> TransportResponse:
        if failed := self._fail("collection_info"):
            return failed
        if not self.exists:
            return TransportResponse(status_code=404, body="Not found: Collection `test-collection` doesn't exist!")
        return TransportResponse(
            status_code=200,
            result=CollectionInfo(points_count=len(self.points), vector_size=self.vector_size),
        )

    def create_collection(self, dimension: int, distance: str) -> TransportResponse:
        if failed := self._fail("create_collection"):
            return failed
        self.exists = True
        self.vector_size = dimension
        return TransportResponse(status_code=200, result=True)

    def create_payload_index(self, field_name: str, field_schema: str = "keyword") -> TransportResponse:
        self.calls.append("create_payload_index")
        if "create_payload_index" in self.failing:
            return TransportResponse(status_code=400, body=self.index_error_body)
        self.index_created = True
        return TransportResponse(status_code=200, result={"status": "acknowledged"})

    # -- data plane -----------------------------------------------------------

    def upsert(self, points: list[PointWrite]) -> TransportResponse:
        if failed := self._fail("upsert"):
            return failed
        for p in points:
            self.points[p.point_id] = {"vector": p.vector, "payload": dict(p.payload)}
        return TransportResponse(status_code=200)

    def search(self, vector: list[float], limit: int) -> TransportResponse:
        if failed := self._fail("search"):
            return failed
        scored = [
            StoredPoint(point_id=pid, payload=dict(p["payload"]), score=_cosine(vector, p["vector"]))
            for pid, p in self.points.items()
        ]
        scored.sort(key=lambda sp: sp.score, reverse=True)
        return TransportResponse(status_code=200, result=scored[:limit])

    def scroll(self, limit: int, offset: Any = None) -> TransportResponse:
        if failed := self._fail("scroll"):
            return failed
        ordered = list(self.points.items())
        start = int(offset or 0)
        window = ordered[start : start + limit]
        next_offset = start + limit if start + limit < len(ordered) else None
        return TransportResponse(
            status_code=200,
            result=ScrollPage(
                points=[StoredPoint(point_id=pid, payload=dict(p["payload"])) for pid, p in window],
                next_offset=next_offset,
            ),
        )

    def _matching(self, field_name: str, value: str) -> list[str]:
        return [pid for pid, p in self.points.items() if p["payload"].get(field_name) == value]

    def count_by_filter(self, field_name: str, value: str) -> TransportResponse:
        if failed := self._fail("count_by_filter"):
            return failed
        return TransportResponse(status_code=200, result=len(self._matching(field_name, value)))

    def delete_by_filter(self, field_name: str, value: str) -> TransportResponse:
        if failed := self._fail("delete_by_filter"):
            return failed
        if self.require_index and not self.index_created:
            return TransportResponse(status_code=400, body=INDEX_REQUIRED_BODY)
        for pid in self._matching(field_name, value):
            del self.points[pid]
        return TransportResponse(status_code=200, result={"status": "completed"})

    def delete_by_ids(self, point_ids: list[str]) -> TransportResponse:
        if failed := self._fail("delete_by_ids"):
            return failed
        for pid in point_ids:
            self.points.pop(pid, None)
        return TransportResponse(status_code=200, result={"status": "completed"})

    def delete_all(self) -> TransportResponse:
        if failed := self._fail("delete_all"):
            return failed
        self.points.clear()
        return TransportResponse(status_code=200, result={"status": "completed"})


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def transport() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture()
def handle() -> CollectionHandle:
    return CollectionHandle(name="test-collection", dimension=3)


@pytest.fixture()
def client(transport: InMemoryTransport, handle: CollectionHandle) -> ChunkStoreClient:
    return ChunkStoreClient(transport, handle)
