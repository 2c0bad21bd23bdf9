"""RAG orchestration — ingestion and question answering.

:class:`RagService` drives the two pipelines:

* ingest: document → chunks → embeddings → chunk store
* query:  question → embedding → similarity search → context → answer

Embedding and generation are injected as plain callables so the service
can be exercised without a model server::

    service = RagService(client, embed=embed_text, generate=generate_answer)
    service.initialize()
    service.ingest(["Qdrant stores vectors. It supports payload filters."])
    print(service.query("What does Qdrant store?"))
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Sequence

from pydantic import BaseModel, Field

from grounded_rag.config import settings
from grounded_rag.errors import DimensionMismatchError
from grounded_rag.ingestion.chunker import split_text
from grounded_rag.store.client import ChunkStoreClient
from grounded_rag.store.models import ChunkRecord, ListedChunk

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], Sequence[float]]
GenerateFn = Callable[[str, str], str]

QUERY_TOP_K = 5
NO_CONTEXT = "No relevant context found."
CONTEXT_HEADER = "Relevant information:\n\n"
APOLOGY_MESSAGE = "I apologize, but I encountered an error while processing your question. Please try again."


def make_logical_id(document_index: int, chunk_index: int) -> str:
    """Return the stable id of a chunk, ``doc_{document}_chunk_{chunk}``."""
    return f"doc_{document_index}_chunk_{chunk_index}"


def build_context(records: Sequence[ChunkRecord]) -> str:
    """Concatenate retrieved chunks under ``[Context i]`` labels."""
    if not records:
        return NO_CONTEXT
    parts = [CONTEXT_HEADER]
    for i, record in enumerate(records, 1):
        parts.append(f"[Context {i}]\n{record.content}\n\n")
        logger.debug("Context %d score: %s", i, record.metadata.get("score"))
    return "".join(parts)


class IngestReport(BaseModel):
    """Outcome of one :meth:`RagService.ingest` call."""

    documents: int = 0
    chunks: int = 0
    failed_documents: list[int] = Field(default_factory=list)


class RagService:
    """Ingestion / query orchestrator.

    Parameters
    ----------
    store:
        Chunk store client.
    embed:
        ``text -> vector`` function.
    generate:
        ``(prompt, context) -> answer`` function.
    chunk_size / chunk_overlap:
        Chunker parameters (characters).
    """

    def __init__(
        self,
        store: ChunkStoreClient,
        embed: EmbedFn,
        generate: GenerateFn,
        *,
        chunk_size: int = settings.chunk_size,
        chunk_overlap: int = settings.chunk_overlap,
    ) -> None:
        self.store = store
        self._embed = embed
        self._generate = generate
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    # -- lifecycle ------------------------------------------------------------

    def initialize(self, verify_embedding: bool = True) -> None:
        """Prepare the store; optionally probe the embedding dimension.

        Raises
        ------
        StoreInitializationError
            The collection could not be created or verified, or the
            embedding model's vector size differs from the collection's.
        """
        logger.info("Initializing RAG service...")
        self.store.initialize()
        if verify_embedding:
            dimension = len(self._embed("test"))
            expected = self.store.handle.dimension
            if dimension != expected:
                raise DimensionMismatchError(expected, dimension, backend=self.store.backend)
            logger.info("Embedding service check passed (dim=%d)", dimension)
        logger.info("RAG service initialized")

    # -- ingestion ------------------------------------------------------------

    def ingest(self, documents: Sequence[str]) -> IngestReport:
        """Chunk, embed and store *documents*.

        A failure while processing one document is logged and that
        document is skipped; the others are still ingested.  All records
        are written in a single ``store`` call at the end.
        """
        documents = list(documents)
        report = IngestReport(documents=len(documents))
        logger.info("Starting ingestion of %d document(s)", len(documents))

        records: list[ChunkRecord] = []
        for doc_index, document in enumerate(documents):
            try:
                logger.info("Processing document %d/%d", doc_index + 1, len(documents))
                records.extend(self._build_records(doc_index, document))
            except Exception:
                logger.error("Failed to process document %d", doc_index + 1, exc_info=True)
                report.failed_documents.append(doc_index)

        report.chunks = self.store.store(records)
        logger.info(
            "Ingestion completed: %d chunk(s) from %d document(s), %d failed",
            report.chunks,
            len(documents),
            len(report.failed_documents),
        )
        return report

    def _build_records(self, doc_index: int, document: str) -> list[ChunkRecord]:
        # Built per document so one failure discards only that document.
        records: list[ChunkRecord] = []
        for chunk_index, chunk in enumerate(split_text(document, self.chunk_size, self.chunk_overlap)):
            embedding = list(self._embed(chunk))
            records.append(
                ChunkRecord(
                    logical_id=make_logical_id(doc_index, chunk_index),
                    content=chunk,
                    embedding=embedding,
                    metadata={
                        "document_index": doc_index,
                        "chunk_index": chunk_index,
                        "chunk_size": len(chunk),
                        "ingested_at": datetime.now(timezone.utc).isoformat(),
                    },
                )
            )
        return records

    # -- query ----------------------------------------------------------------

    def query(self, question: str) -> str:
        """Answer *question* from the stored chunks.

        Never raises: any failure yields :data:`APOLOGY_MESSAGE`.
        """
        logger.info("Processing query: %s", question)
        try:
            embedding = list(self._embed(question))
            relevant = self.store.search(embedding, max_results=QUERY_TOP_K)
            logger.info("Retrieved %d relevant chunk(s)", len(relevant))
            answer = self._generate(question, build_context(relevant))
            logger.info("Generated response for query")
            return answer
        except Exception:
            logger.error("Failed to process query", exc_info=True)
            return APOLOGY_MESSAGE

    # -- management -----------------------------------------------------------

    def list_chunks(self, limit: int = 100, offset: int = 0) -> list[ListedChunk]:
        return self.store.list(limit=limit, offset=offset)

    def delete_chunk(self, logical_id: str) -> bool:
        return self.store.delete(logical_id)

    def delete_all(self) -> int:
        return self.store.delete_all()


def build_service(backend: str | None = None) -> RagService:
    """Wire a :class:`RagService` from the global settings."""
    from grounded_rag.generation.llm import generate_answer
    from grounded_rag.ingestion.embedder import embed_text
    from grounded_rag.store import build_store_client

    return RagService(build_store_client(backend), embed=embed_text, generate=generate_answer)
