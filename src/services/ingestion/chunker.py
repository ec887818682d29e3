"""Sentence-aware text chunking with overlapping windows.

Splits parsed document text into :class:`~src.models.knowledge.TextChunk`
segments sized for the embedding model (~500 estimated tokens each with
~50 tokens of overlap).

Token counts are estimated as ``ceil(chars / 4)`` everywhere in this
module; no real tokenizer is involved.

The algorithm is greedy:

1. Split the text into sentence-like units at ``.``/``!``/``?`` followed by
   whitespace, or at blank-line paragraph breaks.
2. Accumulate units into a buffer.  When the next unit would push the
   buffer past ``max_tokens * 4`` characters, emit the buffer as a chunk.
3. Seed the next buffer with the last ``overlap_tokens * 4`` characters of
   the emitted one, starting after the first ``". "`` if it falls in the
   first half of that window, so the seed does not open mid-sentence.
   A seed that would push the next unit past the budget is dropped.

A unit longer than the whole budget (e.g. a paragraph with no sentence
punctuation) is first cut at word boundaries into pieces that still fit
once an overlap seed is prepended.
"""

from __future__ import annotations

import math
import re

import structlog

from src.models.knowledge import ChunkMetadata, TextChunk

logger = structlog.get_logger(logger_name=__name__)

_CHARS_PER_TOKEN = 4

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|(?:\r?\n){2,}")


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


class TextChunker:
    """Splits text into overlapping, sentence-aligned chunks.

    Parameters
    ----------
    max_tokens:
        Estimated token budget per chunk (default 500).
    overlap_tokens:
        Estimated tokens carried over from the end of one chunk into the
        start of the next (default 50).  ``0`` disables overlap.
    """

    def __init__(self, max_tokens: int = 500, overlap_tokens: int = 50) -> None:
        if max_tokens <= 0:
            msg = f"max_tokens must be positive, got {max_tokens}"
            raise ValueError(msg)
        if overlap_tokens < 0:
            msg = f"overlap_tokens must not be negative, got {overlap_tokens}"
            raise ValueError(msg)
        self._max_tokens = max_tokens
        self._overlap_tokens = overlap_tokens

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[TextChunk]:
        """Split *text* into chunks indexed ``0..n-1`` in text order.

        Empty or whitespace-only text yields ``[]``.  Text whose estimate
        fits in one chunk is returned trimmed as a single chunk.
        """
        trimmed = text.strip()
        if not trimmed:
            return []

        if estimate_tokens(trimmed) <= self._max_tokens:
            return [TextChunk(content=trimmed, chunk_index=0, token_count=estimate_tokens(trimmed))]

        contents = self._accumulate(self._split_units(trimmed))
        chunks = [
            TextChunk(content=content, chunk_index=idx, token_count=estimate_tokens(content))
            for idx, content in enumerate(contents)
        ]

        logger.debug(
            "text_chunked",
            chars=len(trimmed),
            chunks=len(chunks),
            max_tokens=self._max_tokens,
            overlap_tokens=self._overlap_tokens,
        )
        return chunks

    def chunk_with_pages(self, text: str, page_count: int | None) -> list[TextChunk]:
        """Chunk *text* and stamp each chunk with an estimated page number.

        Chunks are spread evenly over the pages:
        ``page = floor(i / (n / page_count)) + 1``.  Only applied when the
        source had more than one page; this is a positional heuristic, not
        a true page mapping.
        """
        chunks = self.chunk(text)
        if not page_count or page_count <= 1 or not chunks:
            return chunks

        total = len(chunks)
        return [
            c.model_copy(
                update={
                    "metadata": c.metadata.model_copy(
                        update={"page": (i * page_count) // total + 1}
                    )
                }
            )
            for i, c in enumerate(chunks)
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _split_units(self, text: str) -> list[str]:
        """Split into trimmed sentence units, cutting any oversized unit."""
        max_chars = self._max_tokens * _CHARS_PER_TOKEN
        overlap_chars = self._overlap_tokens * _CHARS_PER_TOKEN
        piece_limit = max(max_chars - overlap_chars - 1, max_chars // 2, 1)

        units: list[str] = []
        for raw in _SENTENCE_SPLIT.split(text):
            sentence = raw.strip()
            if not sentence:
                continue
            if len(sentence) > max_chars:
                units.extend(_split_at_words(sentence, piece_limit))
            else:
                units.append(sentence)
        return units

    def _accumulate(self, units: list[str]) -> list[str]:
        max_chars = self._max_tokens * _CHARS_PER_TOKEN
        overlap_chars = self._overlap_tokens * _CHARS_PER_TOKEN

        contents: list[str] = []
        current = ""
        for sentence in units:
            if current and len(current) + len(sentence) + 1 > max_chars:
                contents.append(current.strip())
                current = self._overlap_seed(current, overlap_chars)
                if len(current) + len(sentence) + 1 > max_chars:
                    current = ""
            current = f"{current} {sentence}" if current else sentence

        if current.strip():
            contents.append(current.strip())
        return contents

    @staticmethod
    def _overlap_seed(closed: str, overlap_chars: int) -> str:
        """Return the start of the next buffer, taken from the closed one."""
        if overlap_chars <= 0 or len(closed) <= overlap_chars:
            return ""
        tail = closed[-overlap_chars:]
        boundary = tail.find(". ")
        if 0 < boundary < overlap_chars / 2:
            return tail[boundary + 2 :]
        return tail


def _split_at_words(text: str, limit: int) -> list[str]:
    """Cut *text* into pieces of at most *limit* characters at spaces."""
    pieces: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind(" ", 0, limit + 1)
        if cut <= 0:
            cut = limit
        piece = remaining[:cut].strip()
        if piece:
            pieces.append(piece)
        remaining = remaining[cut:].strip()
    if remaining:
        pieces.append(remaining)
    return pieces
