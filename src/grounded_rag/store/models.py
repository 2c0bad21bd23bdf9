"""Domain models for chunk records and the collection they live in."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Union

from pydantic import BaseModel, Field, field_validator

MetadataValue = Union[str, int, float, bool]
"""Closed set of scalar types allowed as metadata values."""

# Payload keys owned by the store client.
CONTENT_KEY = "content"
DOCUMENT_ID_KEY = "document_id"
INGESTED_AT_KEY = "ingested_at"
RESERVED_KEYS = frozenset({CONTENT_KEY, DOCUMENT_ID_KEY, INGESTED_AT_KEY})

# Metadata keys added by the client on read.
SCORE_KEY = "score"
POINT_ID_KEY = "point_id"

PREVIEW_LENGTH = 80


def to_payload_value(value: Any) -> MetadataValue:
    """Convert an arbitrary metadata value to a wire-safe scalar."""
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return "" if value is None else str(value)


def from_payload_value(value: Any) -> MetadataValue:
    """Convert a payload value read from the store back to a scalar."""
    if isinstance(value, (bool, int, float, str)):
        return value
    return "" if value is None else str(value)


def make_preview(content: str, length: int = PREVIEW_LENGTH) -> str:
    """Return the first *length* characters of *content*, with ``…`` if cut."""
    return content[:length] + "…" if len(content) > length else content


class ChunkRecord(BaseModel):
    """One chunk of a document together with its vector and metadata.

    Attributes
    ----------
    logical_id:
        Stable caller-facing id, ``doc_{document}_chunk_{chunk}``.  This is
        stored as the ``document_id`` payload field, never as the store's
        own primary key.
    content:
        The chunk text.
    embedding:
        Dense vector; empty on records returned by a search.
    metadata:
        Flat scalar metadata.  Reserved keys (``content``,
        ``document_id``, ``ingested_at``) are written by the client and
        win over caller-supplied values.
    """

    logical_id: str
    content: str = Field(min_length=1)
    embedding: list[float] = Field(default_factory=list)
    metadata: dict[str, MetadataValue] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _coerce_metadata(cls, value: Any) -> dict[str, MetadataValue]:
        if value is None:
            return {}
        return {str(k): to_payload_value(v) for k, v in dict(value).items()}


class ListedChunk(BaseModel):
    """Lightweight view of a stored chunk returned by listing."""

    logical_id: str
    preview: str
    metadata: dict[str, Any] = Field(default_factory=dict)


@dataclass
class StoredPoint:
    """A point as returned by the transport (search hit or scroll entry)."""

    point_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    score: float | None = None


@dataclass
class ScrollPage:
    """One page of a cursor-paginated scan."""

    points: list[StoredPoint] = field(default_factory=list)
    next_offset: Any = None


@dataclass
class CollectionHandle:
    """The remote collection plus the session's index-readiness state.

    Created once at startup and shared by reference with the client.
    ``index_confirmed`` is the only mutable state and is guarded by a lock
    so one handle can serve concurrent callers.
    """

    name: str
    dimension: int = 384
    distance: str = "Cosine"
    index_field: str = DOCUMENT_ID_KEY
    _index_confirmed: bool = field(default=False, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @property
    def index_confirmed(self) -> bool:
        with self._lock:
            return self._index_confirmed

    def mark_index_confirmed(self) -> None:
        with self._lock:
            self._index_confirmed = True

    def reset_index(self) -> None:
        """Forget the confirmation so the next check re-verifies the index."""
        with self._lock:
            self._index_confirmed = False
