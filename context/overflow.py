"""
Context overflow analysis.

Detects when assembled chunks exceed a model's context budget and
recommends which documents to keep. Selection is greedy over the same
priority order used to assemble the context, so a user can see why a
document was dropped: everything ranked above it already used the budget.
"""

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Sequence

from app.config import ContextSettings
from ingestion.prioritizer import DocumentPrioritizer
from shared.schemas import (
    ContextChunk,
    Document,
    DocumentTokenUsage,
    OverflowReport,
    Recommendations,
    RemovedDocument,
    SectionUsage,
)

from .context_budgeting import allocate_token_budget, calculate_token_usage, chunk_tokens

logger = logging.getLogger(__name__)

REASON_EXCEEDS_REMAINING = "Exceeds remaining token budget"
REASON_EXCEEDS_BUDGET = "Exceeds entire token budget on its own"
REASON_NO_CONTENT = "No extracted content"


def apply_document_selection(
    selected_document_ids: Iterable[str],
    chunks: Sequence[ContextChunk],
) -> List[ContextChunk]:
    """
    Keep only chunks of the selected documents, preserving order.

    Args:
        selected_document_ids: Document ids chosen by the user
        chunks: Assembled context chunks

    Returns:
        Filtered chunks
    """
    selected = set(selected_document_ids)
    return [chunk for chunk in chunks if chunk.document_id in selected]


class OverflowAnalyzer:
    """
    Checks assembled chunks against a model's token budget.

    Usage:
        analyzer = OverflowAnalyzer()
        report = analyzer.analyze(documents, chunks, "small", settings)
        if report.will_overflow:
            keep = report.recommendations.suggested_documents
    """

    def __init__(self, prioritizer: DocumentPrioritizer = None):
        self.prioritizer = prioritizer or DocumentPrioritizer()

    def document_breakdown(
        self,
        documents: Sequence[Document],
        chunks: Sequence[ContextChunk],
    ) -> List[DocumentTokenUsage]:
        """
        Aggregate token usage per document in priority order.

        Args:
            documents: Documents the chunks were built from
            chunks: Context chunks

        Returns:
            Per-document usage, highest priority first
        """
        ranks = self.prioritizer.priority_scores(documents)
        usage: Dict[str, DocumentTokenUsage] = OrderedDict()
        sections: Dict[str, Dict] = {}

        for doc in documents:
            usage[doc.id] = DocumentTokenUsage(
                id=doc.id,
                name=doc.name,
                category=doc.category,
                category_priority=self.prioritizer.category_priority(doc),
                priority_score=ranks[doc.id],
                relevance_score=self.prioritizer.relevance_score(doc),
            )
            sections[doc.id] = OrderedDict()

        orphans = 0
        for chunk in chunks:
            entry = usage.get(chunk.document_id)
            if entry is None:
                orphans += 1
                continue
            tokens = chunk_tokens(chunk)
            entry.token_count += tokens
            entry.chunk_count += 1
            doc_sections = sections[chunk.document_id]
            doc_sections[chunk.section_type] = doc_sections.get(chunk.section_type, 0) + tokens

        if orphans:
            logger.warning(f"{orphans} chunks reference documents outside the analyzed set")

        for doc_id, entry in usage.items():
            entry.sections = [
                SectionUsage(type=section_type, token_count=tokens)
                for section_type, tokens in sections[doc_id].items()
            ]

        return sorted(
            usage.values(),
            key=lambda d: (d.priority_score, -d.relevance_score),
        )

    def recommend(
        self,
        breakdown: List[DocumentTokenUsage],
        max_tokens: int,
        current_tokens: int,
    ) -> Recommendations:
        """
        Greedy document selection within the budget.

        Documents are taken in breakdown order; one that does not fit is
        skipped and later, smaller documents may still be accepted.
        Documents without chunks (e.g. failed extraction) are never suggested.
        """
        recommendations = Recommendations()
        candidates = []
        for doc in breakdown:
            if doc.chunk_count == 0:
                recommendations.removed_documents.append(
                    RemovedDocument(id=doc.id, name=doc.name, token_count=0, reason=REASON_NO_CONTENT)
                )
            else:
                candidates.append(doc)

        if current_tokens <= max_tokens:
            for doc in candidates:
                doc.is_recommended = True
            recommendations.suggested_documents = [doc.id for doc in candidates]
            recommendations.priority_message = "All documents fit within token limits"
            if recommendations.removed_documents:
                recommendations.priority_message += (
                    f"; {len(recommendations.removed_documents)} document(s) have no extracted content"
                )
            return recommendations

        running = 0
        for doc in candidates:
            if running + doc.token_count <= max_tokens:
                recommendations.suggested_documents.append(doc.id)
                running += doc.token_count
                doc.is_recommended = True
                continue

            oversized = doc.token_count > max_tokens
            if oversized:
                recommendations.oversized_documents.append(doc.id)
            recommendations.removed_documents.append(
                RemovedDocument(
                    id=doc.id,
                    name=doc.name,
                    token_count=doc.token_count,
                    reason=REASON_EXCEEDS_BUDGET if oversized else REASON_EXCEEDS_REMAINING,
                )
            )

        recommendations.tokens_saved = current_tokens - running
        recommendations.priority_message = (
            f"Recommended {len(recommendations.suggested_documents)}/{len(breakdown)} "
            f"documents to stay within {max_tokens} token limit"
        )
        if recommendations.oversized_documents:
            recommendations.priority_message += (
                f"; {len(recommendations.oversized_documents)} document(s) exceed the "
                f"limit on their own and cannot be included whole"
            )

        return recommendations

    def analyze(
        self,
        documents: Sequence[Document],
        chunks: Sequence[ContextChunk],
        model_category: str,
        settings: ContextSettings,
    ) -> OverflowReport:
        """
        Check whether chunks fit the model's context budget.

        Args:
            documents: Documents the chunks were built from
            chunks: Assembled context chunks
            model_category: Model size class (small, medium, large)
            settings: Context settings snapshot

        Returns:
            OverflowReport with breakdown and recommendations

        Raises:
            ConfigurationError: If the model category is unknown
        """
        budget = allocate_token_budget(settings, model_category)
        current_tokens = calculate_token_usage(chunks)
        breakdown = self.document_breakdown(documents, chunks)
        recommendations = self.recommend(breakdown, budget.context_tokens, current_tokens)

        will_overflow = current_tokens > budget.context_tokens
        usage_percent = budget.usage_percent(current_tokens)

        report = OverflowReport(
            will_overflow=will_overflow,
            current_tokens=current_tokens,
            max_context_tokens=budget.context_tokens,
            token_limit=budget.total_tokens,
            overflow_amount=max(0, current_tokens - budget.context_tokens),
            context_percentage=budget.context_percent,
            usage_percent=usage_percent,
            near_limit=not will_overflow and usage_percent >= budget.warning_threshold_percent,
            document_breakdown=breakdown,
            recommendations=recommendations,
        )

        if will_overflow:
            logger.warning(
                f"Context overflow detected: {current_tokens}/{budget.context_tokens} tokens "
                f"({report.overflow_amount} over limit), {len(documents)} documents, "
                f"{len(chunks)} chunks"
            )

        return report
