"""
Document set fingerprinting for cache staleness detection.

A cached context is valid only while the checksum of the project's
active documents matches the checksum it was built from. This is not a
security hash; md5 is plenty for change detection.
"""

import hashlib
import json
import logging
from typing import Dict, Iterable, List, Optional

from shared.schemas import Document

logger = logging.getLogger(__name__)


def document_descriptor(document: Document) -> Dict[str, Optional[object]]:
    """
    Reduce a document to the fields that invalidate a context.

    Args:
        document: Document reference

    Returns:
        Descriptor dict with id, filename, timestamp and size
    """
    changed_at = document.updated_at or document.created_at
    return {
        "id": document.id,
        "filename": document.stored_filename,
        "updated_at": changed_at.isoformat() if changed_at else None,
        "size": document.size,
    }


class ChecksumService:
    """
    Fingerprints a document set.

    Descriptors are sorted by id before hashing, so the listing order of
    the document store never invalidates a context on its own.

    Usage:
        checksums = ChecksumService()
        checksum = checksums.compute(documents)
    """

    def __init__(self, algorithm: str = "md5"):
        """
        Args:
            algorithm: Hash algorithm (md5, sha256)
        """
        if algorithm not in ("md5", "sha256"):
            raise ValueError(f"Unsupported checksum algorithm: {algorithm}")
        self.algorithm = algorithm

    def serialize(self, documents: Iterable[Document]) -> str:
        """Canonical serialization of a document set."""
        descriptors: List[Dict] = sorted(
            (document_descriptor(doc) for doc in documents),
            key=lambda d: (d["id"], d["filename"] or ""),
        )
        return json.dumps(descriptors, sort_keys=True, separators=(",", ":"))

    def compute(self, documents: Iterable[Document]) -> str:
        """
        Compute the fingerprint of a document set.

        Args:
            documents: Documents in any order

        Returns:
            Hex digest (32 chars for md5, 64 for sha256)
        """
        payload = self.serialize(documents).encode("utf-8")
        if self.algorithm == "sha256":
            return hashlib.sha256(payload).hexdigest()
        return hashlib.md5(payload).hexdigest()
