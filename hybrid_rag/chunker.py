"""
Semantic chunking
Groups extracted items into bounded retrieval units that keep heading context
"""
import logging
import re
from dataclasses import replace
from typing import Literal, Optional

from hybrid_rag.config import get_settings
from hybrid_rag.docling import DoclingDocument
from hybrid_rag.extractor import TOP_LEVEL_HEADINGS, ContentExtractor
from hybrid_rag.types import Chunk, ContentItem

logger = logging.getLogger("hybrid_rag.chunker")

SEPARATOR = "\n\n"
MAX_HEADING_DEPTH = 3
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

HeadingAction = Literal["replace", "push"]


def heading_action(label: str) -> HeadingAction:
    return "replace" if label in TOP_LEVEL_HEADINGS else "push"


def apply_heading(headings: list[str], action: HeadingAction, text: str) -> list[str]:
    """Return the heading path after entering a heading of the given kind"""
    if action == "replace":
        return [text]
    if len(headings) >= MAX_HEADING_DEPTH:
        headings = headings[-(MAX_HEADING_DEPTH - 1):]
    return [*headings, text]


def _sentences(text: str) -> list[str]:
    """Split after ``.``, ``?`` or ``!`` followed by whitespace, losing nothing"""
    pieces = []
    start = 0
    for match in SENTENCE_BOUNDARY.finditer(text):
        pieces.append(text[start:match.end()])
        start = match.end()
    if start < len(text):
        pieces.append(text[start:])
    return pieces


def _split_words(text: str, max_size: int) -> list[str]:
    """Greedy word packing; a single word longer than the limit is sliced"""
    result = []
    current = ""
    for word in text.split():
        while len(word) > max_size:
            if current:
                result.append(current)
                current = ""
            result.append(word[:max_size])
            word = word[max_size:]
        if not word:
            continue
        if current and len(current) + len(word) + 1 > max_size:
            result.append(current)
            current = word
        else:
            current = f"{current} {word}" if current else word
    if current:
        result.append(current)
    return result


def split_at_sentences(text: str, max_size: int) -> list[str]:
    """Split text into pieces of at most ``max_size`` characters"""
    if len(text) <= max_size:
        return [text]

    packed = []
    current = ""
    for sentence in _sentences(text):
        if current and len(current) + len(sentence) > max_size:
            packed.append(current.strip())
            current = sentence
        else:
            current += sentence
    if current.strip():
        packed.append(current.strip())

    result = []
    for piece in packed:
        if len(piece) > max_size:
            result.extend(_split_words(piece, max_size))
        elif piece:
            result.append(piece)
    return result


class SemanticChunker:
    """
    Chunker that follows document structure

    - Headings travel with the content they introduce and set the heading
      context of following chunks
    - Tables become standalone chunks (never merged, never split)
    - Small consecutive items are merged up to ``max_chunk_size``
    - Oversized text is split at sentence, then word, boundaries
    """

    def __init__(self, max_chunk_size: Optional[int] = None, min_chunk_size: Optional[int] = None):
        settings = get_settings()
        self.max_chunk_size = settings.max_chunk_size if max_chunk_size is None else max_chunk_size
        self.min_chunk_size = settings.min_chunk_size if min_chunk_size is None else min_chunk_size

        if self.max_chunk_size < 1:
            raise ValueError("max_chunk_size must be positive")

    def chunk(self, items: list[ContentItem]) -> list[Chunk]:
        if not items:
            return []

        chunks: list[Chunk] = []
        headings: list[str] = []
        text = ""
        types: list[str] = []

        def add_type(label: str) -> None:
            if label not in types:
                types.append(label)

        def flush() -> None:
            nonlocal text, types
            body = text.strip()
            if body:
                for part in split_at_sentences(body, self.max_chunk_size):
                    chunks.append(Chunk(
                        text=part,
                        headings=list(headings),
                        item_types=list(types),
                        chunk_index=len(chunks),
                    ))
            text = ""
            types = []

        for item in items:
            if item.is_heading:
                # Flush first so the chunk keeps the headings of its own body
                if len(text) >= self.min_chunk_size:
                    flush()
                headings = apply_heading(headings, heading_action(item.label), item.text)
                text += item.text + SEPARATOR
                add_type(item.label)
                continue

            if item.label == "table":
                if text.strip():
                    flush()
                if item.text.strip():
                    chunks.append(Chunk(
                        text=item.text,
                        headings=list(headings),
                        item_types=["table"],
                        chunk_index=len(chunks),
                    ))
                continue

            candidate = text + item.text + SEPARATOR
            if len(candidate) > self.max_chunk_size:
                flush()
                text = item.text + SEPARATOR
            else:
                text = candidate
            add_type(item.label)

        flush()

        # Final pass: dense 0..n-1 indices over the finished list
        return [replace(chunk, chunk_index=i) for i, chunk in enumerate(chunks)]


def chunk_document(
    doc: DoclingDocument,
    max_chunk_size: Optional[int] = None,
    min_chunk_size: Optional[int] = None,
) -> list[Chunk]:
    """Extract items from a document tree and chunk them"""
    items = ContentExtractor().extract(doc)
    chunks = SemanticChunker(max_chunk_size, min_chunk_size).chunk(items)
    logger.debug("Chunked %s: %d items -> %d chunks", doc.name or "<document>", len(items), len(chunks))
    return chunks
