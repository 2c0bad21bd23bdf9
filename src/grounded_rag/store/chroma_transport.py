"""Chroma implementation of the chunk-store transport.

Chroma has no explicit payload indexes, so :meth:`create_payload_index`
is acknowledged without doing anything, and cursors are plain integer
offsets.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import chromadb

from grounded_rag.config import settings
from grounded_rag.store.models import CONTENT_KEY, ScrollPage, StoredPoint
from grounded_rag.store.transport import (
    ChunkStoreTransport,
    CollectionInfo,
    PointWrite,
    TransportResponse,
)

logger = logging.getLogger(__name__)

_DISTANCE_MAP = {"cosine": "cosine", "euclid": "l2", "dot": "ip"}


def _not_found(exc: Exception) -> bool:
    text = str(exc).lower()
    return "does not exist" in text or "not found" in text


class ChromaTransport(ChunkStoreTransport):
    """Chroma-backed transport.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host / port:
        Chroma server connection details.
    client:
        Optional pre-built Chroma client (tests inject ``EphemeralClient``).
    """

    backend_name = "chroma"

    def __init__(
        self,
        collection_name: str = settings.collection_name,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        client: Any = None,
    ) -> None:
        super().__init__(collection_name)
        self._client = client or chromadb.HttpClient(host=host, port=port)
        self._collection = None

    def _get_collection(self):
        if self._collection is None:
            self._collection = self._client.get_collection(self.collection_name)
        return self._collection

    def _call(self, op: str, fn: Callable[[], Any]) -> TransportResponse:
        try:
            return TransportResponse(status_code=200, result=fn())
        except Exception as exc:
            status = 404 if _not_found(exc) else 500
            logger.debug("Chroma %s failed: %s", op, exc)
            return TransportResponse(status_code=status, body=str(exc))

    # -- control plane --------------------------------------------------------

    def collection_info(self) -> TransportResponse:
        # Chroma does not expose the vector size until the first write.
        return self._call("collection_info", lambda: CollectionInfo(points_count=self._get_collection().count()))

    def create_collection(self, dimension: int, distance: str) -> TransportResponse:
        space = _DISTANCE_MAP.get(distance.lower(), "cosine")

        def _create() -> None:
            self._collection = self._client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": space},
            )

        return self._call("create_collection", _create)

    def create_payload_index(self, field_name: str, field_schema: str = "keyword") -> TransportResponse:
        return TransportResponse(status_code=200)

    # -- data plane -----------------------------------------------------------

    def upsert(self, points: list[PointWrite]) -> TransportResponse:
        def _upsert() -> None:
            self._get_collection().upsert(
                ids=[p.point_id for p in points],
                embeddings=[p.vector for p in points],
                documents=[p.payload.get(CONTENT_KEY, "") for p in points],
                metadatas=[{k: v for k, v in p.payload.items() if k != CONTENT_KEY} for p in points],
            )

        return self._call("upsert", _upsert)

    def search(self, vector: list[float], limit: int) -> TransportResponse:
        def _search() -> list[StoredPoint]:
            results = self._get_collection().query(
                query_embeddings=[vector],
                n_results=limit,
                include=["documents", "metadatas", "distances"],
            )
            ids = results.get("ids", [[]])[0]
            docs = results.get("documents", [[]])[0]
            metas = results.get("metadatas", [[]])[0]
            distances = results.get("distances", [[]])[0]
            return [
                StoredPoint(
                    point_id=point_id,
                    payload={**(meta or {}), CONTENT_KEY: doc or ""},
                    # cosine distance -> similarity
                    score=1.0 - dist,
                )
                for point_id, doc, meta, dist in zip(ids, docs, metas, distances)
            ]

        return self._call("search", _search)

    def scroll(self, limit: int, offset: Any = None) -> TransportResponse:
        start = int(offset or 0)

        def _scroll() -> ScrollPage:
            results = self._get_collection().get(limit=limit, offset=start, include=["documents", "metadatas"])
            ids = results.get("ids") or []
            docs = results.get("documents") or [""] * len(ids)
            metas = results.get("metadatas") or [{}] * len(ids)
            points = [
                StoredPoint(point_id=point_id, payload={**(meta or {}), CONTENT_KEY: doc or ""})
                for point_id, doc, meta in zip(ids, docs, metas)
            ]
            next_offset = start + len(points) if len(points) == limit else None
            return ScrollPage(points=points, next_offset=next_offset)

        return self._call("scroll", _scroll)

    def _matching_ids(self, field_name: str, value: str) -> list[str]:
        return self._get_collection().get(where={field_name: value}, include=[]).get("ids") or []

    def count_by_filter(self, field_name: str, value: str) -> TransportResponse:
        return self._call("count_by_filter", lambda: len(self._matching_ids(field_name, value)))

    def delete_by_filter(self, field_name: str, value: str) -> TransportResponse:
        return self._call("delete_by_filter", lambda: self._get_collection().delete(where={field_name: value}))

    def delete_by_ids(self, point_ids: list[str]) -> TransportResponse:
        return self._call("delete_by_ids", lambda: self._get_collection().delete(ids=point_ids))

    def delete_all(self) -> TransportResponse:
        def _delete_all() -> None:
            collection = self._get_collection()
            ids = collection.get(include=[]).get("ids") or []
            if ids:
                collection.delete(ids=ids)

        return self._call("delete_all", _delete_all)
