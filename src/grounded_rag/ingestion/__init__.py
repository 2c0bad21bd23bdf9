"""
Ingestion — document loading, chunking, and embedding.

This module turns raw text (typed in, read from a file, or extracted
from a PDF) into the overlapping chunks and vectors that the chunk
store persists.
"""
