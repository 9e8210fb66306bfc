"""
Context Budget Module.

Treat prompt context as a resource with a budget.

This module handles:
- Token estimation (four characters per token)
- Token budget allocation per model category
- Overflow detection and greedy document recommendations
- Manual document selection

Usage:
    from context import OverflowAnalyzer

    report = OverflowAnalyzer().analyze(documents, chunks, "small", settings)
    if report.will_overflow:
        keep = report.recommendations.suggested_documents
"""

from .context_budgeting import (
    ContextBudget,
    allocate_token_budget,
    calculate_token_usage,
    estimate_tokens,
)
from .overflow import OverflowAnalyzer, apply_document_selection

__all__ = [
    "OverflowAnalyzer",
    "apply_document_selection",
    "ContextBudget",
    "allocate_token_budget",
    "calculate_token_usage",
    "estimate_tokens",
]
