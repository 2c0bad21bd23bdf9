"""Sentence-based text chunking with word overlap."""

from __future__ import annotations

import re

_SENTENCE_BREAK = re.compile(r"[.!?]")


def split_sentences(text: str) -> list[str]:
    """Split *text* on ``.``, ``!`` and ``?`` and normalise each sentence.

    Every surviving sentence is trimmed and terminated with a single
    ``.``; the original terminator is not preserved.
    """
    sentences: list[str] = []
    for fragment in _SENTENCE_BREAK.split(text):
        fragment = fragment.strip()
        if fragment:
            sentences.append(fragment + ".")
    return sentences


def _overlap_words(chunk: str, overlap_size: int) -> list[str]:
    words = chunk.split()
    if not words or overlap_size <= 0:
        return []
    take = min(overlap_size // 10, len(words) // 2)
    return words[len(words) - take :] if take else []


def split_text(
    text: str,
    max_chunk_size: int = 1000,
    overlap_size: int = 100,
) -> list[str]:
    """Split *text* into ordered, overlapping chunks.

    Sentences are accumulated greedily while the chunk stays within
    *max_chunk_size* characters.  When a chunk is closed, the next one is
    seeded with the last ``min(overlap_size // 10, words // 2)`` words of
    the closed chunk.  A sentence is never split, so a single sentence
    longer than *max_chunk_size* becomes its own oversized chunk.

    Parameters
    ----------
    text:
        Raw document text.
    max_chunk_size:
        Target upper bound on chunk length, in characters.
    overlap_size:
        Approximate overlap between consecutive chunks, in characters.

    Returns
    -------
    list[str]
        Chunks in document order; empty for blank input.
    """
    if max_chunk_size <= 0:
        raise ValueError(f"max_chunk_size must be positive, got {max_chunk_size}")
    if overlap_size < 0:
        raise ValueError(f"overlap_size must not be negative, got {overlap_size}")

    chunks: list[str] = []
    if not text or not text.strip():
        return chunks

    current = ""
    for sentence in split_sentences(text):
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= max_chunk_size:
            current = candidate
            continue

        if current:
            chunks.append(current)

        overlap = _overlap_words(current, overlap_size)
        # Drop overlap words that would push a fitting sentence past the limit.
        while overlap and len(" ".join(overlap)) + 1 + len(sentence) > max_chunk_size:
            overlap.pop(0)
        current = " ".join([*overlap, sentence])

    if current:
        chunks.append(current)
    return chunks
