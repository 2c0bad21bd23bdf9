"""FastAPI application exposing the RAG service as a REST API."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from grounded_rag.ingestion.loader import FILE_PREFIX, PDF_PREFIX
from grounded_rag.service import IngestReport, RagService, build_service
from grounded_rag.store.models import ListedChunk

app = FastAPI(
    title="Grounded RAG API",
    version="0.1.0",
    description="Ingest documents into a vector store and ask questions grounded in them.",
)


@lru_cache(maxsize=1)
def get_service() -> RagService:
    """Build and initialize the process-wide service on first use."""
    service = build_service()
    service.initialize()
    return service


# ── Request / Response schemas ────────────────────────────────────────
class IngestRequest(BaseModel):
    """Raw document texts to ingest.

    ``file:`` / ``pdf:`` sources are rejected: the API never reads the
    server's filesystem on behalf of a caller.
    """

    documents: list[str] = Field(min_length=1)


class QueryRequest(BaseModel):
    """Incoming question from the user."""

    query: str


class QueryResponse(BaseModel):
    """Answer returned by the service."""

    answer: str


class DeleteAllResponse(BaseModel):
    """``previous_count`` is -1 when the count is unknown."""

    previous_count: int


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.post("/ingest", response_model=IngestReport)
def ingest(request: IngestRequest, service: RagService = Depends(get_service)) -> IngestReport:
    """Chunk, embed and store the given documents."""
    for doc in request.documents:
        if doc.strip().lower().startswith((FILE_PREFIX, PDF_PREFIX)):
            raise HTTPException(
                status_code=400,
                detail="File sources are not accepted over HTTP; send the document text instead.",
            )
    return service.ingest(request.documents)


@app.post("/query", response_model=QueryResponse)
def query(request: QueryRequest, service: RagService = Depends(get_service)) -> QueryResponse:
    """Answer a question from the stored chunks."""
    return QueryResponse(answer=service.query(request.query))


@app.get("/chunks", response_model=list[ListedChunk])
def list_chunks(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    service: RagService = Depends(get_service),
) -> list[ListedChunk]:
    """List stored chunks with content previews."""
    return service.list_chunks(limit=limit, offset=offset)


@app.delete("/chunks/{logical_id}")
def delete_chunk(logical_id: str, service: RagService = Depends(get_service)) -> dict[str, str]:
    """Delete every chunk stored under *logical_id*."""
    if not service.delete_chunk(logical_id):
        raise HTTPException(status_code=404, detail=f"Nothing deleted for {logical_id!r}")
    return {"status": "deleted", "logical_id": logical_id}


@app.delete("/chunks", response_model=DeleteAllResponse)
def delete_all(service: RagService = Depends(get_service)) -> DeleteAllResponse:
    """Delete every chunk in the collection."""
    return DeleteAllResponse(previous_count=service.delete_all())
