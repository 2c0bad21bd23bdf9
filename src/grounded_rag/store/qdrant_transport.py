"""Qdrant implementation of the chunk-store transport (REST API)."""

from __future__ import annotations

import logging
from typing import Any

import requests

from grounded_rag.config import settings
from grounded_rag.errors import TransportError
from grounded_rag.store.models import ScrollPage, StoredPoint
from grounded_rag.store.transport import (
    ChunkStoreTransport,
    CollectionInfo,
    PointWrite,
    TransportResponse,
)

logger = logging.getLogger(__name__)


def _match_filter(field_name: str, value: str) -> dict[str, Any]:
    """Build a Qdrant ``must`` filter matching one keyword payload value."""
    return {"must": [{"key": field_name, "match": {"value": value}}]}


def _to_point(raw: dict[str, Any]) -> StoredPoint:
    return StoredPoint(
        point_id=str(raw.get("id", "")),
        payload=raw.get("payload") or {},
        score=raw.get("score"),
    )


def _parse_collection_info(result: dict[str, Any] | None) -> CollectionInfo:
    if not result:
        return CollectionInfo()
    vectors = result.get("config", {}).get("params", {}).get("vectors", {})
    size = vectors.get("size") if isinstance(vectors, dict) else None
    return CollectionInfo(points_count=result.get("points_count"), vector_size=size)


class QdrantTransport(ChunkStoreTransport):
    """Qdrant REST transport.

    Parameters
    ----------
    collection_name:
        Name of the Qdrant collection.
    base_url:
        REST endpoint, e.g. ``http://localhost:6333``.
    api_key:
        Sent as the ``api-key`` header when non-empty.
    timeout:
        Per-request timeout in seconds.
    session:
        Optional pre-built :class:`requests.Session` (tests inject a mock).
    """

    backend_name = "qdrant"

    def __init__(
        self,
        collection_name: str = settings.collection_name,
        *,
        base_url: str | None = None,
        api_key: str = settings.qdrant_api_key,
        timeout: float = settings.request_timeout,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(collection_name)
        self._base_url = (base_url or settings.qdrant_url).rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        if api_key:
            self._session.headers.update({"api-key": api_key})

    @property
    def _collection_url(self) -> str:
        return f"{self._base_url}/collections/{self.collection_name}"

    def _request(
        self,
        method: str,
        path: str = "",
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> TransportResponse:
        url = self._collection_url + path
        try:
            resp = self._session.request(method, url, json=json, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}", backend=self.backend_name) from exc

        body = resp.text or ""
        result = None
        try:
            envelope = resp.json()
        except ValueError:
            envelope = None
        if isinstance(envelope, dict):
            result = envelope.get("result")

        if not resp.ok:
            logger.debug("%s %s -> %s %s", method, url, resp.status_code, body)
        return TransportResponse(status_code=resp.status_code, result=result, body=body)

    # -- control plane --------------------------------------------------------

    def collection_info(self) -> TransportResponse:
        resp = self._request("GET")
        if resp.ok:
            resp.result = _parse_collection_info(resp.result)
        return resp

    def create_collection(self, dimension: int, distance: str) -> TransportResponse:
        return self._request("PUT", json={"vectors": {"size": dimension, "distance": distance}})

    def create_payload_index(self, field_name: str, field_schema: str = "keyword") -> TransportResponse:
        return self._request(
            "PUT",
            "/index",
            json={"field_name": field_name, "field_schema": field_schema},
            params={"wait": "true"},
        )

    # -- data plane -----------------------------------------------------------

    def upsert(self, points: list[PointWrite]) -> TransportResponse:
        body = {
            "points": [
                {"id": p.point_id, "vector": p.vector, "payload": p.payload}
                for p in points
            ]
        }
        return self._request("PUT", "/points", json=body, params={"wait": "true"})

    def search(self, vector: list[float], limit: int) -> TransportResponse:
        resp = self._request(
            "POST",
            "/points/search",
            json={"vector": vector, "limit": limit, "with_payload": True, "with_vector": False},
        )
        if resp.ok:
            resp.result = [_to_point(raw) for raw in resp.result or []]
        return resp

    def scroll(self, limit: int, offset: Any = None) -> TransportResponse:
        body: dict[str, Any] = {"limit": limit, "with_payload": True, "with_vector": False}
        if offset is not None:
            body["offset"] = offset
        resp = self._request("POST", "/points/scroll", json=body)
        if resp.ok:
            result = resp.result or {}
            resp.result = ScrollPage(
                points=[_to_point(raw) for raw in result.get("points") or []],
                next_offset=result.get("next_page_offset"),
            )
        return resp

    def count_by_filter(self, field_name: str, value: str) -> TransportResponse:
        resp = self._request(
            "POST",
            "/points/count",
            json={"filter": _match_filter(field_name, value), "exact": True},
        )
        if resp.ok:
            resp.result = int((resp.result or {}).get("count", 0))
        return resp

    def delete_by_filter(self, field_name: str, value: str) -> TransportResponse:
        return self._request(
            "POST",
            "/points/delete",
            json={"filter": _match_filter(field_name, value)},
            params={"wait": "true"},
        )

    def delete_by_ids(self, point_ids: list[str]) -> TransportResponse:
        return self._request("POST", "/points/delete", json={"points": point_ids}, params={"wait": "true"})

    def delete_all(self) -> TransportResponse:
        # An empty filter matches every point.
        return self._request("POST", "/points/delete", json={"filter": {}}, params={"wait": "true"})

    def close(self) -> None:
        self._session.close()
