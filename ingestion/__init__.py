"""
Document Ingestion Module.

Prepares project documents for context assembly:
- Document set fingerprinting for cache invalidation
- Document prioritization and relevance scoring

Usage:
    from ingestion import ChecksumService, DocumentPrioritizer

    ordered = DocumentPrioritizer().prioritize(documents)
    checksum = ChecksumService().compute(ordered)
"""

from .checksum import ChecksumService, document_descriptor
from .prioritizer import (
    CATEGORY_PRIORITY,
    METADATA_KEYWORD_RULES,
    DocumentPrioritizer,
)

__all__ = [
    "ChecksumService",
    "document_descriptor",
    "DocumentPrioritizer",
    "CATEGORY_PRIORITY",
    "METADATA_KEYWORD_RULES",
]
