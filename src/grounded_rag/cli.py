"""Interactive shell for ingesting, listing, deleting and querying chunks.

Run::

    python -m grounded_rag.cli
    python -m grounded_rag.cli --backend chroma --log-level DEBUG
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from grounded_rag.ingestion.loader import FILE_PREFIX, PDF_PREFIX, load_document
from grounded_rag.service import RagService

logger = logging.getLogger(__name__)

LIST_LIMIT = 200
CONFIRM = "YES"
CLEAR_SCREEN = "\033[2J\033[H"

HELP_TEXT = """Available commands:
  ingest (i)     - Add documents to the knowledge base
  list   (ls)    - List stored document chunks
  delete (del)   - Delete one or all document chunks
  query  (ask)   - Ask a question about your documents
  help   (h)     - Show this help message
  clear  (cls)   - Clear the screen
  exit   (quit)  - Exit the shell
Anything else is treated as a question."""


class Shell:
    """Read-eval loop over a :class:`RagService`.

    *input_fn* and *output* default to the terminal; tests pass scripted
    replacements.
    """

    def __init__(
        self,
        service: RagService,
        input_fn: Callable[[str], str] = input,
        output: Callable[[str], None] = print,
    ) -> None:
        self.service = service
        self._input = input_fn
        self._out = output
        self._commands: dict[str, Callable[[], None]] = {
            "ingest": self.ingest,
            "i": self.ingest,
            "list": self.list_chunks,
            "ls": self.list_chunks,
            "delete": self.delete,
            "del": self.delete,
            "query": self.ask,
            "ask": self.ask,
            "help": self.help,
            "h": self.help,
            "clear": self.clear,
            "cls": self.clear,
        }

    def _read(self, prompt: str = "") -> str | None:
        try:
            return self._input(prompt)
        except EOFError:
            return None

    def run(self) -> None:
        self.help()
        while True:
            line = self._read("RAG> ")
            if line is None:
                return
            command = line.strip()
            if not command:
                continue
            if command.lower() in ("exit", "quit", "q"):
                self._out("Goodbye!")
                return
            try:
                handler = self._commands.get(command.lower())
                if handler is not None:
                    handler()
                else:
                    self.answer(command)
            except Exception as exc:
                logger.error("Error processing command: %s", command, exc_info=True)
                self._out(f"Error: {exc}")
            self._out("")

    def help(self) -> None:
        self._out(HELP_TEXT)

    def clear(self) -> None:
        self._out(CLEAR_SCREEN)

    def ingest(self) -> None:
        self._out(
            "Enter text, or 'file:<path>' / 'pdf:<path>' lines. Type END on its own line when finished."
        )
        documents: list[str] = []
        typed: list[str] = []
        while True:
            line = self._read()
            if line is None or line.strip().upper() == "END":
                break
            if line.lower().startswith((FILE_PREFIX, PDF_PREFIX)):
                try:
                    documents.append(load_document(line.strip()))
                    self._out(f"Loaded {line.strip()} ({len(documents[-1])} characters)")
                except FileNotFoundError as exc:
                    self._out(str(exc))
                except Exception as exc:
                    logger.warning("Error reading %s", line.strip(), exc_info=True)
                    self._out(f"Error reading file: {exc}")
            else:
                typed.append(line)
        if typed:
            documents.append("\n".join(typed))

        if not documents:
            self._out("No documents to process.")
            return
        started = time.monotonic()
        report = self.service.ingest(documents)
        elapsed_ms = (time.monotonic() - started) * 1000
        self._out(
            f"Ingested {report.documents - len(report.failed_documents)} document(s), "
            f"{report.chunks} chunk(s) in {elapsed_ms:.0f}ms"
        )

    def _show_listing(self) -> list:
        chunks = self.service.list_chunks(limit=LIST_LIMIT)
        for n, chunk in enumerate(chunks, 1):
            self._out(f"[{n}] ID={chunk.logical_id} | {chunk.preview.replace(chr(10), ' ')}")
        return chunks

    def list_chunks(self) -> None:
        chunks = self._show_listing()
        if not chunks:
            self._out("(No documents found)")
        else:
            self._out(f"Found {len(chunks)} chunk(s) (showing up to {LIST_LIMIT})")

    def delete(self) -> None:
        choice = (self._read("Delete (1) a single chunk or (2) all chunks? ") or "").strip()
        if choice == "2":
            if (self._read(f"Delete ALL chunks? Type '{CONFIRM}' to confirm: ") or "").strip() != CONFIRM:
                self._out("Cancelled.")
                return
            previous = self.service.delete_all()
            count = "unknown" if previous < 0 else str(previous)
            self._out(f"All chunks deletion requested (previous count: {count}).")
            return
        if choice != "1":
            return

        chunks = self._show_listing()
        if not chunks:
            self._out("No documents to delete.")
            return
        number = (self._read("Enter number to delete (or 0 to cancel): ") or "").strip()
        if not number.isdigit() or not 0 < int(number) <= len(chunks):
            self._out("Cancelled.")
            return
        target = chunks[int(number) - 1]
        if (self._read(f"Confirm delete of {target.logical_id}? Type '{CONFIRM}': ") or "").strip() != CONFIRM:
            self._out("Cancelled.")
            return
        self._out("Deleted." if self.service.delete_chunk(target.logical_id) else "Delete failed.")

    def ask(self) -> None:
        question = (self._read("Your question: ") or "").strip()
        if question:
            self.answer(question)

    def answer(self, question: str) -> None:
        started = time.monotonic()
        response = self.service.query(question)
        elapsed_ms = (time.monotonic() - started) * 1000
        self._out(f"Response ({elapsed_ms:.0f}ms):")
        self._out("-" * 50)
        for line in response.splitlines():
            self._out(f"   {line.strip()}" if line.strip() else "")
        self._out("-" * 50)


def main(argv: list[str] | None = None) -> int:
    import argparse

    from grounded_rag.config import settings
    from grounded_rag.logging_config import configure_logging
    from grounded_rag.service import build_service

    parser = argparse.ArgumentParser(description="Grounded RAG interactive shell")
    parser.add_argument("--backend", choices=["qdrant", "chroma"], default=None, help="Chunk store backend")
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings)")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    service = build_service(args.backend or settings.store_backend)
    try:
        try:
            service.initialize()
        except Exception:
            logger.error("Application failed to start", exc_info=True)
            return 1
        Shell(service).run()
    finally:
        service.store.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
