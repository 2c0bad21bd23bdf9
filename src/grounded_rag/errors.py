"""Exception hierarchy for grounded-rag.

    GroundedRagError
    +-- ConfigurationError        (bad settings / unknown backend)
    +-- ChunkStoreError           (store rejected an operation)
        +-- TransportError        (store unreachable: timeout, refused, ...)
        +-- StoreInitializationError   (collection cannot be created / verified)
            +-- DimensionMismatchError (embedding size != collection size)

Initialization errors are fatal; everything else is surfaced by the
operation that hit it.
"""

from __future__ import annotations


class GroundedRagError(Exception):
    """Base exception for all grounded-rag errors.

    ``backend`` names the store or provider that caused the failure and
    is prefixed in ``str()`` for log scanning, e.g. ``[qdrant] ...``.
    """

    def __init__(self, message: str = "An unexpected error occurred", backend: str | None = None) -> None:
        self._message = message
        self._backend = backend
        super().__init__(message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def backend(self) -> str | None:
        return self._backend

    def __str__(self) -> str:
        if self._backend:
            return f"[{self._backend}] {self._message}"
        return self._message


class ConfigurationError(GroundedRagError):
    """Raised when settings are missing or inconsistent."""


class ChunkStoreError(GroundedRagError):
    """Raised when the chunk store answers an operation with an error status."""

    def __init__(
        self,
        message: str = "Chunk store operation failed",
        backend: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, backend=backend)
        self.status_code = status_code


class TransportError(ChunkStoreError):
    """Raised when the store cannot be reached at all."""


class StoreInitializationError(ChunkStoreError):
    """Raised when the collection cannot be created or verified."""


class DimensionMismatchError(StoreInitializationError):
    """Raised when embeddings do not match the collection's vector size."""

    def __init__(self, expected: int, actual: int, backend: str | None = None) -> None:
        super().__init__(
            message=f"Embedding dimension {actual} does not match collection dimension {expected}",
            backend=backend,
        )
        self.expected = expected
        self.actual = actual
