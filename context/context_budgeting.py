"""
Context token budget management.

Treat prompt context as a resource with a budget.

Token counts are estimated at four characters per token. The estimate is
deliberately coarse and independent of any tokenizer so budgets are
stable across model providers.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable

from app.config import ContextSettings
from shared.schemas import ContextChunk

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


def estimate_tokens(character_count: int) -> int:
    """Estimate tokens for a character count."""
    return math.ceil(character_count / CHARS_PER_TOKEN)


def chunk_tokens(chunk: ContextChunk) -> int:
    return estimate_tokens(chunk.character_count)


def calculate_token_usage(chunks: Iterable[ContextChunk]) -> int:
    """Sum of per-chunk token estimates."""
    return sum(chunk_tokens(chunk) for chunk in chunks)


@dataclass
class ContextBudget:
    """Token budget allocation for one model category."""

    model_category: str
    total_tokens: int
    context_tokens: int
    generation_tokens: int
    buffer_tokens: int
    context_percent: float
    warning_threshold_percent: float

    def usage_percent(self, tokens: int) -> float:
        if self.context_tokens <= 0:
            return 100.0
        return round(tokens / self.context_tokens * 100, 2)

    def fits(self, tokens: int) -> bool:
        return tokens <= self.context_tokens


def allocate_token_budget(
    settings: ContextSettings,
    model_category: str,
) -> ContextBudget:
    """
    Allocate a model's window between context, generation and buffer.

    Args:
        settings: Current context settings
        model_category: Model size class (small, medium, large)

    Returns:
        ContextBudget allocation

    Raises:
        ConfigurationError: If the model category is unknown
    """
    total = settings.max_tokens_for(model_category)
    allocation = settings.token_allocation

    return ContextBudget(
        model_category=model_category,
        total_tokens=total,
        context_tokens=math.floor(total * allocation.context_percent / 100),
        generation_tokens=math.floor(total * allocation.generation_percent / 100),
        buffer_tokens=math.floor(total * allocation.buffer_percent / 100),
        context_percent=allocation.context_percent,
        warning_threshold_percent=settings.warning_threshold_percent,
    )
