"""Embedding function backed by a sentence-transformer model."""

from __future__ import annotations

from functools import lru_cache

from langchain_huggingface import HuggingFaceEmbeddings

from grounded_rag.config import settings


@lru_cache(maxsize=1)
def get_embedding_function() -> HuggingFaceEmbeddings:
    """Return the configured sentence-transformer embedding function."""
    return HuggingFaceEmbeddings(model_name=settings.embedding_model)


def embed_text(text: str) -> list[float]:
    """Embed a single piece of text (a chunk or a question)."""
    return get_embedding_function().embed_query(text)
