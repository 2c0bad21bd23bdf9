"""Document loaders — turn files into plain document strings."""

from __future__ import annotations

from pathlib import Path

from langchain_community.document_loaders import PyPDFLoader, TextLoader

FILE_PREFIX = "file:"
PDF_PREFIX = "pdf:"


def _require_file(path: str | Path) -> Path:
    path = Path(path).expanduser()
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    return path


def load_text_file(path: str | Path) -> str:
    """Load a UTF-8 text file as one document."""
    docs = TextLoader(str(_require_file(path)), encoding="utf-8").load()
    return "\n".join(doc.page_content for doc in docs)


def load_pdf(path: str | Path) -> str:
    """Load a PDF as one document, prefixing each page with ``[Page n]``."""
    pages = PyPDFLoader(str(_require_file(path))).load()
    return "\n".join(f"[Page {n}]\n{page.page_content}\n" for n, page in enumerate(pages, 1))


def load_document(source: str) -> str:
    """Resolve a ``file:<path>`` / ``pdf:<path>`` reference or return raw text.

    Prefixes are matched case-insensitively.
    """
    lowered = source.lower()
    if lowered.startswith(FILE_PREFIX):
        return load_text_file(source[len(FILE_PREFIX) :].strip())
    if lowered.startswith(PDF_PREFIX):
        return load_pdf(source[len(PDF_PREFIX) :].strip())
    return source
