"""Resilient chunk-store client.

:class:`ChunkStoreClient` manages one logical collection of chunk
records on top of any :class:`~grounded_rag.store.transport.ChunkStoreTransport`:

* collection lifecycle (create-if-absent, dimension check),
* best-effort ``document_id`` keyword index bootstrap,
* writes, similarity search and cursor-paginated listing,
* deletion by logical id with index-create-and-retry and a bounded
  scan fallback, and delete-all.

Records are always addressed through their ``document_id`` payload
field.  The store's own point ids are fresh UUIDs and are only used as
low-level handles by the scan fallback.

Usage::

    from grounded_rag.store import ChunkStoreClient, CollectionHandle
    from grounded_rag.store.qdrant_transport import QdrantTransport

    handle = CollectionHandle(name="rag_documents", dimension=384)
    client = ChunkStoreClient(QdrantTransport(handle.name), handle)
    client.initialize()
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Sequence

from grounded_rag.errors import (
    ChunkStoreError,
    DimensionMismatchError,
    StoreInitializationError,
)
from grounded_rag.store.models import (
    CONTENT_KEY,
    DOCUMENT_ID_KEY,
    INGESTED_AT_KEY,
    POINT_ID_KEY,
    RESERVED_KEYS,
    SCORE_KEY,
    ChunkRecord,
    CollectionHandle,
    ListedChunk,
    StoredPoint,
    from_payload_value,
    make_preview,
    to_payload_value,
)
from grounded_rag.store.transport import ChunkStoreTransport, PointWrite, TransportResponse

logger = logging.getLogger(__name__)

PAGE_SIZE = 64
"""Upper bound on points requested per scroll round trip."""

DELETE_SCAN_BUDGET = 500
"""Maximum number of points the delete fallback scans."""

INDEX_MISSING_MARKER = "index required"
INDEX_EXISTS_MARKER = "already exists"

DELETE_ALL_UNKNOWN = -1
"""Returned by :meth:`ChunkStoreClient.delete_all` when the count is unknown."""


class ChunkStoreClient:
    """Resilient client for one collection of chunk records.

    Parameters
    ----------
    transport:
        Backend transport; all store I/O goes through it.
    handle:
        The collection handle.  Its index-confirmed flag is shared state
        and may be passed to several clients.
    """

    def __init__(self, transport: ChunkStoreTransport, handle: CollectionHandle) -> None:
        self._transport = transport
        self.handle = handle

    @property
    def backend(self) -> str:
        return self._transport.backend_name

    def _check(self, resp: TransportResponse, op: str) -> TransportResponse:
        if not resp.ok:
            raise ChunkStoreError(
                f"{op} on collection {self.handle.name!r} failed with status {resp.status_code}: {resp.body}",
                backend=self.backend,
                status_code=resp.status_code,
            )
        return resp

    # -- lifecycle ------------------------------------------------------------

    def initialize(self) -> None:
        """Ensure the collection exists and try to ensure its ``document_id`` index.

        Raises
        ------
        StoreInitializationError
            The collection could not be verified or created.
        DimensionMismatchError
            The existing collection has a different vector size.
        """
        name = self.handle.name
        logger.info("Initializing %s collection %r (dim=%d)", self.backend, name, self.handle.dimension)
        try:
            info = self._transport.collection_info()
        except ChunkStoreError as exc:
            raise StoreInitializationError(f"Cannot reach collection {name!r}: {exc.message}", backend=self.backend) from exc

        if info.ok:
            size = info.result.vector_size if info.result is not None else None
            if size is not None and size != self.handle.dimension:
                raise DimensionMismatchError(self.handle.dimension, size, backend=self.backend)
            logger.info("Collection %r already exists", name)
        elif info.status_code == 404:
            logger.info("Creating collection %r", name)
            try:
                created = self._transport.create_collection(self.handle.dimension, self.handle.distance)
            except ChunkStoreError as exc:
                raise StoreInitializationError(f"Cannot create collection {name!r}: {exc.message}", backend=self.backend) from exc
            if not created.ok:
                raise StoreInitializationError(
                    f"Cannot create collection {name!r}: {created.status_code} {created.body}",
                    backend=self.backend,
                    status_code=created.status_code,
                )
            logger.info("Created collection %r", name)
        else:
            raise StoreInitializationError(
                f"Cannot verify collection {name!r}: {info.status_code} {info.body}",
                backend=self.backend,
                status_code=info.status_code,
            )

        self.ensure_document_index()

    def ensure_document_index(self, force: bool = False) -> bool:
        """Create the keyword index on ``document_id`` unless already confirmed.

        Never raises; failures are logged and retried lazily the next time
        a filtered operation reports a missing index.
        """
        if self.handle.index_confirmed and not force:
            return True
        field_name = self.handle.index_field
        try:
            resp = self._transport.create_payload_index(field_name, "keyword")
        except ChunkStoreError:
            logger.debug("Failed to ensure %s index (continuing)", field_name, exc_info=True)
            return False

        if resp.ok or resp.body_contains(INDEX_EXISTS_MARKER):
            self.handle.mark_index_confirmed()
            logger.info("Ensured payload index for %s", field_name)
            return True
        logger.debug("Index creation for %s returned %s: %s", field_name, resp.status_code, resp.body)
        return False

    # -- writes ---------------------------------------------------------------

    def store(self, records: Sequence[ChunkRecord]) -> int:
        """Write each record as a new point; returns the number written.

        Every call allocates fresh point ids, so storing the same logical
        id twice yields two points.  Batches are not transactional.
        """
        if not records:
            logger.info("No chunk records to store")
            return 0

        ingested_at = datetime.now(timezone.utc).isoformat()
        points: list[PointWrite] = []
        for record in records:
            payload: dict[str, Any] = {
                key: to_payload_value(value)
                for key, value in record.metadata.items()
                if key not in RESERVED_KEYS
            }
            payload[CONTENT_KEY] = record.content
            payload[DOCUMENT_ID_KEY] = record.logical_id
            payload[INGESTED_AT_KEY] = ingested_at
            points.append(PointWrite(point_id=str(uuid.uuid4()), vector=list(record.embedding), payload=payload))

        logger.info("Storing %d chunk records in %r", len(points), self.handle.name)
        self._check(self._transport.upsert(points), "upsert")
        logger.info("Stored %d chunk records", len(points))
        return len(points)

    # -- reads ----------------------------------------------------------------

    def search(self, query_embedding: Sequence[float], max_results: int = 5) -> list[ChunkRecord]:
        """Return up to *max_results* records ranked by similarity.

        Each record's metadata carries ``score`` and ``point_id``;
        embeddings are not returned.  Errors propagate, there is no retry.
        """
        logger.info("Searching %r (max results: %d)", self.handle.name, max_results)
        resp = self._check(self._transport.search(list(query_embedding), max_results), "search")

        records: list[ChunkRecord] = []
        for point in resp.result or []:
            payload = point.payload
            metadata: dict[str, Any] = {
                SCORE_KEY: point.score if point.score is not None else 0.0,
                POINT_ID_KEY: point.point_id,
            }
            for key, value in payload.items():
                if key not in (CONTENT_KEY, DOCUMENT_ID_KEY):
                    metadata[key] = from_payload_value(value)
            content = str(payload.get(CONTENT_KEY) or "")
            if not content:
                logger.warning("Skipping point %s without content", point.point_id)
                continue
            records.append(
                ChunkRecord(
                    logical_id=str(payload.get(DOCUMENT_ID_KEY) or point.point_id),
                    content=content,
                    metadata=metadata,
                )
            )

        logger.info("Found %d similar chunks", len(records))
        return records

    def list(self, limit: int = 100, offset: int = 0) -> list[ListedChunk]:
        """Enumerate stored chunks in store order.

        Pages of at most :data:`PAGE_SIZE` points are pulled through the
        scroll cursor; the first *offset* points are skipped and
        enumeration stops after *limit* entries or when the store reports
        no further page.
        """
        collected: list[ListedChunk] = []
        if limit <= 0:
            return collected

        to_skip = max(offset, 0)
        cursor: Any = None
        while len(collected) < limit:
            batch = min(limit - len(collected) + to_skip, PAGE_SIZE)
            resp = self._transport.scroll(batch, cursor)
            if not resp.ok:
                logger.warning("Scroll request failed: %s %s", resp.status_code, resp.body)
                break
            page = resp.result
            if page is None or not page.points:
                break

            for point in page.points:
                if to_skip:
                    to_skip -= 1
                    continue
                collected.append(self._to_listed(point))
                if len(collected) >= limit:
                    break

            if page.next_offset is None:
                break
            cursor = page.next_offset

        return collected

    @staticmethod
    def _to_listed(point: StoredPoint) -> ListedChunk:
        payload = point.payload
        logical_id = str(payload.get(DOCUMENT_ID_KEY) or point.point_id)
        metadata = {k: v for k, v in payload.items() if k not in (CONTENT_KEY, DOCUMENT_ID_KEY)}
        if POINT_ID_KEY not in metadata and logical_id != point.point_id:
            metadata[POINT_ID_KEY] = point.point_id
        return ListedChunk(
            logical_id=logical_id,
            preview=make_preview(str(payload.get(CONTENT_KEY) or "")),
            metadata=metadata,
        )

    # -- deletes --------------------------------------------------------------

    def delete(self, logical_id: str) -> bool:
        """Delete every point whose ``document_id`` equals *logical_id*.

        Strategy:

        1. server-side filtered delete;
        2. if the store says the index is missing, create it and retry once;
        3. otherwise scan up to :data:`DELETE_SCAN_BUDGET` points for matching
           point ids and delete those directly.

        The scan stops at the first page with a match, so duplicates of a
        logical id spread further through the collection may survive one
        call.

        Returns
        -------
        bool
            ``True`` if some delete was acknowledged, ``False`` if nothing
            matched or every strategy failed.
        """
        field_name = self.handle.index_field
        try:
            if self._known_absent(logical_id):
                logger.info("No chunks stored under %s=%s", field_name, logical_id)
                return False

            resp = self._transport.delete_by_filter(field_name, logical_id)
            if resp.ok:
                logger.info("Delete acknowledged for %s=%s", field_name, logical_id)
                return True

            if resp.status_code == 400 and resp.body_contains(INDEX_MISSING_MARKER):
                logger.warning("Index for %s missing; creating it and retrying delete of %s", field_name, logical_id)
                self.handle.reset_index()
                self.ensure_document_index()
                resp = self._transport.delete_by_filter(field_name, logical_id)
                if resp.ok:
                    logger.info("Delete succeeded after creating index for %s. Id=%s", field_name, logical_id)
                    return True

            logger.info("Falling back to point-id delete for %s=%s", field_name, logical_id)
            point_ids = self._find_point_ids(logical_id, DELETE_SCAN_BUDGET)
            if point_ids:
                by_ids = self._transport.delete_by_ids(point_ids)
                if by_ids.ok:
                    logger.info("Deleted %d point(s) for %s=%s via direct ids", len(point_ids), field_name, logical_id)
                    return True
                logger.warning(
                    "Fallback delete by ids failed for %s: %s %s", logical_id, by_ids.status_code, by_ids.body
                )
            logger.warning("Delete of %s failed: %s %s", logical_id, resp.status_code, resp.body)
            return False
        except ChunkStoreError:
            logger.error("Failed to delete chunk %s", logical_id, exc_info=True)
            return False

    def _known_absent(self, logical_id: str) -> bool:
        resp = self._transport.count_by_filter(self.handle.index_field, logical_id)
        return resp.ok and resp.result == 0

    def _find_point_ids(self, logical_id: str, max_scan: int) -> list[str]:
        found: list[str] = []
        cursor: Any = None
        scanned = 0
        while scanned < max_scan:
            resp = self._transport.scroll(PAGE_SIZE, cursor)
            if not resp.ok or resp.result is None or not resp.result.points:
                break
            page = resp.result
            for point in page.points:
                if str(point.payload.get(self.handle.index_field)) == logical_id:
                    found.append(point.point_id)
            scanned += len(page.points)
            if page.next_offset is None or found:
                break
            cursor = page.next_offset
        return found

    def delete_all(self) -> int:
        """Delete every point in the collection.

        Returns
        -------
        int
            Best-effort number of points before deletion, or
            :data:`DELETE_ALL_UNKNOWN` (``-1``) when the count is unknown,
            including when the delete itself was rejected.  ``-1`` never
            means "zero deleted".
        """
        existing = self._count_points()
        resp = self._transport.delete_all()
        if not resp.ok:
            logger.warning("Delete-all failed: %s %s", resp.status_code, resp.body)
            return DELETE_ALL_UNKNOWN
        logger.warning(
            "Issued delete-all for collection %r. Previous count estimate: %d", self.handle.name, existing
        )
        return existing

    def _count_points(self) -> int:
        try:
            resp = self._transport.collection_info()
        except ChunkStoreError:
            logger.debug("Collection stats unavailable", exc_info=True)
            return DELETE_ALL_UNKNOWN
        if not resp.ok or resp.result is None or resp.result.points_count is None:
            return DELETE_ALL_UNKNOWN
        return int(resp.result.points_count)

    def close(self) -> None:
        self._transport.close()
