"""
Store — the chunk store client and its backend transports.

Public surface
--------------
- :class:`ChunkStoreClient` — resilient client (init, store, search, list, delete).
- :class:`ChunkStoreTransport` — abstract backend (subclass for new stores).
- :class:`QdrantTransport` — default Qdrant REST backend.
- :class:`ChromaTransport` — Chroma backend.
- :class:`ChunkRecord`, :class:`ListedChunk`, :class:`CollectionHandle` — data models.
- :func:`build_store_client` — client factory driven by the global settings.
"""

from grounded_rag.store.client import ChunkStoreClient
from grounded_rag.store.models import ChunkRecord, CollectionHandle, ListedChunk
from grounded_rag.store.transport import ChunkStoreTransport, TransportResponse

__all__ = [
    "ChromaTransport",
    "ChunkRecord",
    "ChunkStoreClient",
    "ChunkStoreTransport",
    "CollectionHandle",
    "ListedChunk",
    "QdrantTransport",
    "TransportResponse",
    "build_store_client",
]


def build_store_client(backend: str | None = None) -> ChunkStoreClient:
    """Create a :class:`ChunkStoreClient` for the configured backend."""
    from grounded_rag.config import settings
    from grounded_rag.errors import ConfigurationError

    backend = (backend or settings.store_backend).lower()
    handle = CollectionHandle(name=settings.collection_name, dimension=settings.vector_dimension)
    if backend == "qdrant":
        from grounded_rag.store.qdrant_transport import QdrantTransport

        transport: ChunkStoreTransport = QdrantTransport(handle.name)
    elif backend == "chroma":
        from grounded_rag.store.chroma_transport import ChromaTransport

        transport = ChromaTransport(handle.name)
    else:
        raise ConfigurationError(f"Unsupported store backend: {backend!r}")
    return ChunkStoreClient(transport, handle)


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import transports to avoid pulling in their libraries at import time."""
    if name == "QdrantTransport":
        from grounded_rag.store.qdrant_transport import QdrantTransport

        return QdrantTransport
    if name == "ChromaTransport":
        from grounded_rag.store.chroma_transport import ChromaTransport

        return ChromaTransport
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
