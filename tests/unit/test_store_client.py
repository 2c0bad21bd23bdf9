"""Unit tests for the resilient chunk-store client."""

from __future__ import annotations

import threading

import pytest

from grounded_rag.errors import (
    ChunkStoreError,
    DimensionMismatchError,
    StoreInitializationError,
    TransportError,
)
from grounded_rag.store.client import DELETE_ALL_UNKNOWN, DELETE_SCAN_BUDGET, PAGE_SIZE, ChunkStoreClient
from grounded_rag.store.models import ChunkRecord, CollectionHandle


def _records(n: int, doc: int = 0, content: str = "Chunk content number {i}.") -> list[ChunkRecord]:
    return [
        ChunkRecord(
            logical_id=f"doc_{doc}_chunk_{i}",
            content=content.format(i=i),
            embedding=[1.0, float(i), 0.5],
            metadata={"document_index": doc, "chunk_index": i},
        )
        for i in range(n)
    ]


def _scroll_calls(transport) -> int:
    return transport.calls.count("scroll")


# ── CollectionHandle ───────────────────────────────────────────────────


class TestCollectionHandle:
    def test_starts_unconfirmed(self) -> None:
        assert CollectionHandle(name="c").index_confirmed is False

    def test_confirm_and_reset(self) -> None:
        handle = CollectionHandle(name="c")
        handle.mark_index_confirmed()
        assert handle.index_confirmed
        handle.reset_index()
        assert not handle.index_confirmed

    def test_concurrent_confirmation(self) -> None:
        handle = CollectionHandle(name="c")
        threads = [threading.Thread(target=handle.mark_index_confirmed) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert handle.index_confirmed

    def test_defaults(self) -> None:
        handle = CollectionHandle(name="c")
        assert handle.dimension == 384
        assert handle.distance == "Cosine"
        assert handle.index_field == "document_id"


# ── initialize ─────────────────────────────────────────────────────────


class TestInitialize:
    def test_creates_missing_collection_and_index(self, client, transport) -> None:
        transport.exists = False
        client.initialize()
        assert transport.calls[:3] == ["collection_info", "create_collection", "create_payload_index"]
        assert transport.vector_size == 3
        assert client.handle.index_confirmed

    def test_existing_collection_is_not_recreated(self, client, transport) -> None:
        client.initialize()
        assert "create_collection" not in transport.calls
        assert client.handle.index_confirmed

    def test_dimension_mismatch_is_fatal(self, client, transport) -> None:
        transport.vector_size = 768
        with pytest.raises(DimensionMismatchError) as exc_info:
            client.initialize()
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 768

    def test_unverifiable_collection_is_fatal(self, client, transport) -> None:
        transport.failing.add("collection_info")
        with pytest.raises(StoreInitializationError):
            client.initialize()

    def test_failed_create_is_fatal(self, client, transport) -> None:
        transport.exists = False
        transport.failing.add("create_collection")
        with pytest.raises(StoreInitializationError):
            client.initialize()

    def test_unreachable_store_is_fatal(self, client, transport, monkeypatch) -> None:
        def _boom():
            raise TransportError("connection refused", backend="memory")

        monkeypatch.setattr(transport, "collection_info", _boom)
        with pytest.raises(StoreInitializationError, match="connection refused"):
            client.initialize()

    def test_index_failure_is_not_fatal(self, client, transport) -> None:
        transport.failing.add("create_payload_index")
        client.initialize()
        assert not client.handle.index_confirmed

    def test_index_already_exists_counts_as_confirmed(self, client, transport) -> None:
        transport.failing.add("create_payload_index")
        transport.index_error_body = "Wrong input: index for field document_id already exists"
        client.initialize()
        assert client.handle.index_confirmed

    def test_confirmed_index_is_not_recreated(self, client, transport) -> None:
        client.handle.mark_index_confirmed()
        assert client.ensure_document_index() is True
        assert "create_payload_index" not in transport.calls

    def test_forced_recheck_calls_store(self, client, transport) -> None:
        client.handle.mark_index_confirmed()
        client.ensure_document_index(force=True)
        assert transport.calls == ["create_payload_index"]


# ── store ──────────────────────────────────────────────────────────────


class TestStore:
    def test_writes_one_point_per_record(self, client, transport) -> None:
        assert client.store(_records(3)) == 3
        assert len(transport.points) == 3

    def test_payload_carries_system_fields(self, client, transport) -> None:
        client.store(_records(1))
        payload = next(iter(transport.points.values()))["payload"]
        assert payload["document_id"] == "doc_0_chunk_0"
        assert payload["content"] == "Chunk content number 0."
        assert payload["chunk_index"] == 0
        assert "ingested_at" in payload

    def test_reserved_metadata_is_not_overwritten(self, client, transport) -> None:
        record = ChunkRecord(
            logical_id="doc_0_chunk_0",
            content="Real content.",
            embedding=[1.0, 0.0, 0.0],
            metadata={"content": "spoofed", "document_id": "other", "ingested_at": "1970-01-01", "lang": "en"},
        )
        client.store([record])
        payload = next(iter(transport.points.values()))["payload"]
        assert payload["content"] == "Real content."
        assert payload["document_id"] == "doc_0_chunk_0"
        assert payload["ingested_at"] != "1970-01-01"
        assert payload["lang"] == "en"

    def test_point_ids_are_fresh_uuids(self, client, transport) -> None:
        client.store(_records(2))
        ids = list(transport.points)
        assert len(set(ids)) == 2
        assert all(len(pid) == 36 for pid in ids)

    def test_duplicate_logical_ids_are_not_deduplicated(self, client, transport) -> None:
        client.store(_records(1))
        client.store(_records(1))
        assert len(transport.points) == 2

    def test_empty_batch_is_a_noop(self, client, transport) -> None:
        assert client.store([]) == 0
        assert "upsert" not in transport.calls

    def test_rejected_upsert_raises(self, client, transport) -> None:
        transport.failing.add("upsert")
        with pytest.raises(ChunkStoreError) as exc_info:
            client.store(_records(1))
        assert exc_info.value.status_code == 500


# ── search ─────────────────────────────────────────────────────────────


class TestSearch:
    def test_returns_ranked_records_with_score_and_point_id(self, client, transport) -> None:
        transport.add_point("p-1", {"document_id": "doc_0_chunk_0", "content": "far"}, [0.0, 1.0, 0.0])
        transport.add_point("p-2", {"document_id": "doc_0_chunk_1", "content": "near"}, [1.0, 0.0, 0.0])
        results = client.search([1.0, 0.0, 0.0], max_results=5)
        assert [r.logical_id for r in results] == ["doc_0_chunk_1", "doc_0_chunk_0"]
        assert results[0].metadata["point_id"] == "p-2"
        assert results[0].metadata["score"] == pytest.approx(1.0)
        assert results[0].embedding == []
        assert "content" not in results[0].metadata
        assert "document_id" not in results[0].metadata

    def test_limits_results(self, client) -> None:
        client.store(_records(10))
        assert len(client.search([1.0, 0.0, 0.0], max_results=3)) == 3

    def test_empty_store_returns_empty(self, client) -> None:
        assert client.search([1.0, 0.0, 0.0]) == []

    def test_errors_propagate_without_retry(self, client, transport) -> None:
        transport.failing.add("search")
        with pytest.raises(ChunkStoreError):
            client.search([1.0, 0.0, 0.0])
        assert transport.calls.count("search") == 1


# ── list ───────────────────────────────────────────────────────────────


class TestList:
    def test_round_trip_returns_every_logical_id(self, client) -> None:
        records = _records(150)
        client.store(records)
        listed = client.list(limit=500)
        assert len(listed) == 150
        assert {c.logical_id for c in listed} == {r.logical_id for r in records}

    def test_pages_are_capped(self, client, transport) -> None:
        client.store(_records(150))
        client.list(limit=500)
        assert _scroll_calls(transport) == 3  # 64 + 64 + 22

    def test_limit_is_honoured(self, client) -> None:
        client.store(_records(100))
        assert len(client.list(limit=70)) == 70

    def test_offset_skips_records(self, client) -> None:
        client.store(_records(10))
        everything = client.list(limit=10)
        tail = client.list(limit=10, offset=4)
        assert [c.logical_id for c in tail] == [c.logical_id for c in everything[4:]]

    def test_offset_across_pages(self, client) -> None:
        client.store(_records(100))
        everything = client.list(limit=100)
        window = client.list(limit=5, offset=70)
        assert [c.logical_id for c in window] == [c.logical_id for c in everything[70:75]]

    def test_preview_is_truncated(self, client) -> None:
        client.store(_records(1, content="x" * 120 + "{i}"))
        entry = client.list()[0]
        assert entry.preview == "x" * 80 + "…"

    def test_short_preview_is_untouched(self, client) -> None:
        client.store(_records(1))
        assert client.list()[0].preview == "Chunk content number 0."

    def test_metadata_strips_system_keys_and_adds_point_id(self, client, transport) -> None:
        client.store(_records(1))
        entry = client.list()[0]
        assert "content" not in entry.metadata
        assert "document_id" not in entry.metadata
        assert entry.metadata["point_id"] == next(iter(transport.points))
        assert entry.metadata["chunk_index"] == 0

    def test_point_without_document_id_uses_point_id(self, client, transport) -> None:
        transport.add_point("legacy-1", {"content": "old"})
        entry = client.list()[0]
        assert entry.logical_id == "legacy-1"
        assert "point_id" not in entry.metadata

    def test_failed_scroll_stops_listing(self, client, transport) -> None:
        client.store(_records(3))
        transport.failing.add("scroll")
        assert client.list() == []

    def test_zero_limit(self, client) -> None:
        client.store(_records(3))
        assert client.list(limit=0) == []


# ── delete ─────────────────────────────────────────────────────────────


class TestDelete:
    def test_filtered_delete(self, client) -> None:
        client.store(_records(3))
        assert client.delete("doc_0_chunk_1") is True
        assert {c.logical_id for c in client.list()} == {"doc_0_chunk_0", "doc_0_chunk_2"}

    def test_deleting_twice_returns_false(self, client) -> None:
        client.store(_records(2))
        assert client.delete("doc_0_chunk_0") is True
        assert client.delete("doc_0_chunk_0") is False

    def test_unknown_id_returns_false(self, client) -> None:
        assert client.delete("doc_9_chunk_9") is False

    def test_missing_index_is_created_then_retried(self, client, transport) -> None:
        transport.require_index = True
        client.store(_records(2))
        assert client.delete("doc_0_chunk_0") is True
        ops = [c for c in transport.calls if c != "count_by_filter"]
        assert ops[-3:] == ["delete_by_filter", "create_payload_index", "delete_by_filter"]
        assert _scroll_calls(transport) == 0
        assert client.handle.index_confirmed
        assert len(transport.points) == 1

    def test_falls_back_to_scan_when_filtered_delete_fails(self, client, transport) -> None:
        client.store(_records(5))
        transport.failing.add("delete_by_filter")
        assert client.delete("doc_0_chunk_3") is True
        assert "delete_by_ids" in transport.calls
        assert "doc_0_chunk_3" not in {c.logical_id for c in client.list()}

    def test_falls_back_when_retry_after_index_creation_fails(self, client, transport) -> None:
        transport.require_index = True
        transport.failing.add("create_payload_index")
        client.store(_records(2))
        assert client.delete("doc_0_chunk_1") is True
        assert "delete_by_ids" in transport.calls

    def test_stale_index_confirmation_is_dropped(self, client, transport) -> None:
        client.handle.mark_index_confirmed()
        transport.require_index = True
        transport.failing.add("create_payload_index")
        client.store(_records(2))
        assert client.delete("doc_0_chunk_0") is True
        assert "create_payload_index" in transport.calls
        assert client.handle.index_confirmed is False

    def test_scan_budget_bounds_fallback(self, client, transport) -> None:
        for i in range(DELETE_SCAN_BUDGET + PAGE_SIZE):
            transport.add_point(f"p-{i}", {"document_id": f"filler_{i}", "content": "x"})
        transport.add_point("late", {"document_id": "doc_late", "content": "x"})
        transport.failing.add("delete_by_filter")
        assert client.delete("doc_late") is False
        assert "late" in transport.points
        assert _scroll_calls(transport) == -(-DELETE_SCAN_BUDGET // PAGE_SIZE)

    def test_scan_stops_at_first_matching_page(self, client, transport) -> None:
        # Known limitation: duplicates beyond the first matching page survive one call.
        transport.add_point("dup-1", {"document_id": "doc_0_chunk_0", "content": "x"})
        for i in range(PAGE_SIZE):
            transport.add_point(f"p-{i}", {"document_id": f"filler_{i}", "content": "x"})
        transport.add_point("dup-2", {"document_id": "doc_0_chunk_0", "content": "x"})
        transport.failing.add("delete_by_filter")
        assert client.delete("doc_0_chunk_0") is True
        assert "dup-1" not in transport.points
        assert "dup-2" in transport.points
        assert _scroll_calls(transport) == 1

    def test_all_strategies_failing_returns_false(self, client, transport) -> None:
        client.store(_records(1))
        transport.failing.update({"delete_by_filter", "delete_by_ids"})
        assert client.delete("doc_0_chunk_0") is False

    def test_transport_error_returns_false(self, client, transport, monkeypatch) -> None:
        def _boom(field_name, value):
            raise TransportError("timeout", backend="memory")

        client.store(_records(1))
        monkeypatch.setattr(transport, "delete_by_filter", _boom)
        monkeypatch.setattr(transport, "scroll", lambda limit, offset=None: _boom(None, None))
        assert client.delete("doc_0_chunk_0") is False

    def test_unavailable_count_does_not_block_delete(self, client, transport) -> None:
        client.store(_records(1))
        transport.failing.add("count_by_filter")
        assert client.delete("doc_0_chunk_0") is True


# ── delete_all ─────────────────────────────────────────────────────────


class TestDeleteAll:
    def test_returns_previous_count_and_empties_collection(self, client) -> None:
        client.store(_records(7))
        assert client.delete_all() == 7
        assert client.list() == []

    def test_unknown_count_when_stats_fail(self, client, transport) -> None:
        client.store(_records(2))
        transport.failing.add("collection_info")
        assert client.delete_all() == DELETE_ALL_UNKNOWN
        assert client.list() == []

    def test_unknown_count_when_delete_fails(self, client, transport) -> None:
        client.store(_records(2))
        transport.failing.add("delete_all")
        assert client.delete_all() == -1
        assert len(client.list()) == 2


def test_client_exposes_backend_name(client: ChunkStoreClient) -> None:
    assert client.backend == "memory"
