"""Logging setup for the CLI and server entry points."""

from __future__ import annotations

import logging

from grounded_rag.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once; library modules only call ``getLogger``."""
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
