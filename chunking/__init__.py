"""
Paragraph Chunking Module.

Chunks are the atomic unit of context assembly:
- Split extracted text on blank lines
- Drop whitespace-only paragraphs
- Classify each paragraph with an ordered keyword rule table

Usage:
    from chunking import ChunkBuilder

    chunks = ChunkBuilder().build(document, text)
"""

from .paragraph_chunker import (
    SECTION_RULES,
    ChunkBuilder,
    count_words,
    detect_section_type,
    split_paragraphs,
)

__all__ = [
    "ChunkBuilder",
    "SECTION_RULES",
    "count_words",
    "detect_section_type",
    "split_paragraphs",
]
