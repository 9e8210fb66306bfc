"""
Paragraph chunking for context assembly.

Extracted document text is split on blank lines into paragraph chunks,
the atomic unit of context assembly. Each chunk is tagged with a section
type from an ordered keyword rule table.
"""

import logging
import re
from typing import Any, Dict, List, Sequence, Tuple

from shared.schemas import ContextChunk, Document, SectionType

logger = logging.getLogger(__name__)

PARAGRAPH_BOUNDARY = re.compile(r"\n\s*\n")

# Ordered, first match wins
SECTION_RULES: List[Tuple[SectionType, Tuple[str, ...]]] = [
    (SectionType.EXECUTIVE_SUMMARY, ("executive summary", "summary")),
    (SectionType.TECHNICAL, ("technical", "technology", "solution")),
    (SectionType.MANAGEMENT, ("management", "project management", "timeline")),
    (SectionType.REQUIREMENTS, ("requirement", "specification")),
    (SectionType.EXPERIENCE, ("experience", "performance", "past")),
]


def count_words(text: str) -> int:
    """Count whitespace-separated words."""
    if not text or not isinstance(text, str):
        return 0
    return len(text.split())


def detect_section_type(
    content: str,
    rules: Sequence[Tuple[SectionType, Tuple[str, ...]]] = SECTION_RULES,
) -> SectionType:
    """
    Classify a paragraph by keyword.

    Args:
        content: Paragraph text
        rules: Ordered (section type, keywords) table

    Returns:
        First matching section type, or GENERAL
    """
    lower = content.lower()
    for section_type, keywords in rules:
        if any(keyword in lower for keyword in keywords):
            return section_type
    return SectionType.GENERAL


def split_paragraphs(text: str) -> List[str]:
    """Split text on blank lines, dropping whitespace-only paragraphs."""
    if not text or not isinstance(text, str):
        return []
    return [block.strip() for block in PARAGRAPH_BOUNDARY.split(text) if block.strip()]


class ChunkBuilder:
    """
    Builds ordered, classified paragraph chunks for one document.

    Deterministic: the same text always produces the same chunk sequence.

    Usage:
        builder = ChunkBuilder()
        chunks = builder.build(document, text)
    """

    def __init__(
        self,
        section_rules: Sequence[Tuple[SectionType, Tuple[str, ...]]] = SECTION_RULES,
    ):
        self.section_rules = list(section_rules)

    def chunk_metadata(self, document: Document) -> Dict[str, Any]:
        return {
            "document_type": document.category.value,
            "project": document.project,
            "upload_date": document.created_at.isoformat() if document.created_at else None,
        }

    def build(self, document: Document, text: str) -> List[ContextChunk]:
        """
        Chunk a document's extracted text.

        Args:
            document: Source document
            text: Extracted plaintext

        Returns:
            Chunks in document order
        """
        paragraphs = split_paragraphs(text)
        metadata = self.chunk_metadata(document)

        chunks = [
            ContextChunk(
                id=f"{document.id}_chunk_{index}",
                document_id=document.id,
                document_name=document.name,
                content=paragraph,
                chunk_index=index,
                word_count=count_words(paragraph),
                character_count=len(paragraph),
                section_type=detect_section_type(paragraph, self.section_rules),
                metadata=dict(metadata),
            )
            for index, paragraph in enumerate(paragraphs)
        ]

        logger.debug(f"Chunked {document.name}: {len(chunks)} paragraphs")
        return chunks
