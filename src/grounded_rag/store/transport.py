"""Abstract transport to a vector store backend.

The resilient :class:`~grounded_rag.store.client.ChunkStoreClient` is
written entirely against :class:`ChunkStoreTransport`.  Adding a new
backend only requires subclassing it and implementing one method per
logical store operation; deletion and pagination policy stay in the
client.

Every method returns a :class:`TransportResponse` envelope — an HTTP-like
status plus an optional decoded ``result`` — so the client never depends
on a store-specific schema.  Methods raise
:class:`~grounded_rag.errors.TransportError` only when the store could
not be reached at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from grounded_rag.store.models import ScrollPage, StoredPoint


@dataclass
class TransportResponse:
    """Status + optional result payload returned by every transport call."""

    status_code: int
    result: Any = None
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def body_contains(self, text: str) -> bool:
        """Case-insensitive search of the raw response body."""
        return text.lower() in self.body.lower()


@dataclass
class PointWrite:
    """A point to upsert: store id, vector, and payload."""

    point_id: str
    vector: list[float]
    payload: dict[str, Any]


@dataclass
class CollectionInfo:
    """Collection statistics as reported by the store."""

    points_count: int | None = None
    vector_size: int | None = None


class ChunkStoreTransport(ABC):
    """Backend-agnostic store interface, one method per logical operation.

    Parameters
    ----------
    collection_name:
        Name of the collection every call addresses.
    """

    backend_name = "store"

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- control plane --------------------------------------------------------

    @abstractmethod
    def collection_info(self) -> TransportResponse:
        """Fetch collection stats; ``result`` is a :class:`CollectionInfo`.

        A missing collection answers with status ``404``.
        """
        ...

    @abstractmethod
    def create_collection(self, dimension: int, distance: str) -> TransportResponse:
        """Create the collection with the given vector size and metric."""
        ...

    @abstractmethod
    def create_payload_index(self, field_name: str, field_schema: str = "keyword") -> TransportResponse:
        """Create a secondary index on a payload field."""
        ...

    # -- data plane -----------------------------------------------------------

    @abstractmethod
    def upsert(self, points: list[PointWrite]) -> TransportResponse:
        """Write *points*; existing ids are overwritten."""
        ...

    @abstractmethod
    def search(self, vector: list[float], limit: int) -> TransportResponse:
        """Similarity search; ``result`` is a ranked ``list[StoredPoint]``.

        Payloads are returned, vectors are not.
        """
        ...

    @abstractmethod
    def scroll(self, limit: int, offset: Any = None) -> TransportResponse:
        """Return one page of points; ``result`` is a :class:`ScrollPage`.

        *offset* is the opaque cursor from the previous page's
        ``next_offset`` (``None`` for the first page).
        """
        ...

    @abstractmethod
    def count_by_filter(self, field_name: str, value: str) -> TransportResponse:
        """Count points whose payload *field_name* equals *value*; ``result`` is an ``int``."""
        ...

    @abstractmethod
    def delete_by_filter(self, field_name: str, value: str) -> TransportResponse:
        """Delete points whose payload *field_name* equals *value*."""
        ...

    @abstractmethod
    def delete_by_ids(self, point_ids: list[str]) -> TransportResponse:
        """Delete points by their store-internal ids."""
        ...

    @abstractmethod
    def delete_all(self) -> TransportResponse:
        """Delete every point in the collection (empty filter)."""
        ...

    # -- optional overrides ---------------------------------------------------

    def close(self) -> None:
        """Release connections held by the transport."""


__all__ = [
    "ChunkStoreTransport",
    "CollectionInfo",
    "PointWrite",
    "ScrollPage",
    "StoredPoint",
    "TransportResponse",
]
