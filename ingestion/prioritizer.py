"""
Document prioritization for context assembly.

Documents are ranked before chunking so the most useful material comes
first in the context and survives overflow trimming. All heuristics are
rule tables so they can be tuned and tested on their own.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from shared.schemas import Document, DocumentCategory

logger = logging.getLogger(__name__)

KB = 1024
MB = 1024 * 1024

# Lower sorts first
CATEGORY_PRIORITY: Dict[DocumentCategory, int] = {
    DocumentCategory.SOLICITATIONS: 1,
    DocumentCategory.REQUIREMENTS: 2,
    DocumentCategory.REFERENCES: 3,
    DocumentCategory.PAST_PERFORMANCE: 4,
    DocumentCategory.PROPOSALS: 5,
    DocumentCategory.COMPLIANCE: 6,
    DocumentCategory.MEDIA: 7,
}
UNKNOWN_CATEGORY_PRIORITY = 8

# (keywords, delta) over filename + description; every matching rule applies
METADATA_KEYWORD_RULES: List[Tuple[Tuple[str, ...], int]] = [
    (("executive", "summary"), -3),
    (("requirement", "specification"), -2),
    (("technical", "approach"), -2),
    (("management", "plan"), -1),
]

# (predicate on size in bytes, penalty); first match wins
SIZE_PENALTY_RULES: List[Tuple[Callable[[int], bool], int]] = [
    (lambda size: size > 5 * MB, 3),
    (lambda size: size < KB, 2),
]

RELEVANCE_BASE = 50
RELEVANCE_SIZE_RANGE = (100, 5 * MB)
RELEVANCE_SIZE_BONUS = 20
# (max age in days, bonus); first match wins
RELEVANCE_RECENCY_RULES: List[Tuple[int, int]] = [(30, 15), (90, 10)]
RELEVANCE_CATEGORY_BONUS = 15
RELEVANCE_CATEGORIES = (DocumentCategory.SOLICITATIONS, DocumentCategory.REQUIREMENTS)
# (filename keywords, delta)
RELEVANCE_FILENAME_RULES: List[Tuple[Tuple[str, ...], int]] = [
    (("final", "approved"), 10),
    (("draft", "temp"), -10),
]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _aware(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class DocumentPrioritizer:
    """
    Ranks documents and scores their relevance.

    Sort key, in order:
    1. Active status first
    2. Category priority (solicitations first, unknown last)
    3. Keyword/size metadata score (lower first)
    4. Newest created_at first

    Usage:
        prioritizer = DocumentPrioritizer()
        ordered = prioritizer.prioritize(documents)
        score = prioritizer.relevance_score(ordered[0])
    """

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        """
        Args:
            now: Clock returning an aware datetime, injectable for tests
        """
        self._now = now or (lambda: datetime.now(timezone.utc))

    def category_priority(self, document: Document) -> int:
        return CATEGORY_PRIORITY.get(document.category, UNKNOWN_CATEGORY_PRIORITY)

    def metadata_score(self, document: Document) -> int:
        """Keyword and size heuristic score (lower = higher priority)."""
        text = f"{document.name} {document.description or ''}".lower()
        score = 0

        for keywords, delta in METADATA_KEYWORD_RULES:
            if any(keyword in text for keyword in keywords):
                score += delta

        size = document.size or 0
        for predicate, penalty in SIZE_PENALTY_RULES:
            if predicate(size):
                score += penalty
                break

        return score

    def sort_key(self, document: Document) -> Tuple[int, int, int, float]:
        return (
            0 if document.status == "active" else 1,
            self.category_priority(document),
            self.metadata_score(document),
            -_aware(document.created_at).timestamp(),
        )

    def prioritize(self, documents: Sequence[Document]) -> List[Document]:
        """
        Sort documents by priority.

        Args:
            documents: Documents in store order

        Returns:
            New list, highest priority first
        """
        return sorted(documents, key=self.sort_key)

    def priority_scores(self, documents: Sequence[Document]) -> Dict[str, int]:
        """Map document id to its rank in the prioritized order (0 = first)."""
        return {doc.id: rank for rank, doc in enumerate(self.prioritize(documents))}

    def relevance_score(self, document: Document) -> int:
        """
        Score how relevant a document is likely to be (0-100).

        Args:
            document: Document reference

        Returns:
            Clamped integer relevance score
        """
        score = RELEVANCE_BASE

        size = document.size or 0
        low, high = RELEVANCE_SIZE_RANGE
        if low < size < high:
            score += RELEVANCE_SIZE_BONUS

        age_days = (self._now() - _aware(document.created_at)).total_seconds() / 86400
        for max_age, bonus in RELEVANCE_RECENCY_RULES:
            if age_days < max_age:
                score += bonus
                break

        if document.category in RELEVANCE_CATEGORIES:
            score += RELEVANCE_CATEGORY_BONUS

        filename = (document.name or "").lower()
        for keywords, delta in RELEVANCE_FILENAME_RULES:
            if any(keyword in filename for keyword in keywords):
                score += delta

        return max(0, min(100, score))
