"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

QDRANT_GRPC_PORT = 6334
QDRANT_REST_PORT = 6333


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for Ollama / vLLM)")
    llm_model_name: str = Field(default="llama3.1", description="Chat model identifier")
    llm_base_url: str = Field(
        default="http://localhost:11434/v1",
        description=(
            "Base URL of an OpenAI-compatible chat endpoint. "
            "Defaults to a local Ollama server; leave empty to use OpenAI cloud."
        ),
    )
    llm_temperature: float = 0.0

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    # Vector store
    store_backend: str = Field(default="qdrant", description="Chunk store backend: 'qdrant' or 'chroma'")
    collection_name: str = "rag_documents"
    vector_dimension: int = 384

    qdrant_host: str = Field(
        default="localhost",
        validation_alias=AliasChoices("qdrant_host", "qdrant_endpoint"),
    )
    qdrant_port: int = QDRANT_REST_PORT
    qdrant_use_tls: bool = False
    qdrant_api_key: str = ""
    request_timeout: float = 30.0

    chroma_host: str = "localhost"
    chroma_port: int = 8000

    # Chunking
    chunk_size: int = 1000
    chunk_overlap: int = 100

    # Logging
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator("qdrant_port")
    @classmethod
    def _map_grpc_port(cls, value: int) -> int:
        # The REST API lives on 6333 even when the gRPC port is configured.
        return QDRANT_REST_PORT if value == QDRANT_GRPC_PORT else value

    @field_validator("store_backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("qdrant", "chroma"):
            raise ValueError(f"Unsupported store_backend: {value!r}")
        return value

    @property
    def qdrant_url(self) -> str:
        """REST base URL of the Qdrant server."""
        scheme = "https" if self.qdrant_use_tls else "http"
        host = self.qdrant_host.rstrip("/")
        if "://" in host:
            return host
        return f"{scheme}://{host}:{self.qdrant_port}"


# Singleton — import `settings` wherever needed.
settings = Settings()
