"""Grounded RAG — chunk, embed and store documents; answer questions from them."""

__version__ = "0.1.0"
