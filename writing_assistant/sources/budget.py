"""
Word budget for the generation context.

The generation service accepts roughly 750,000 words; 600,000 of them are
reserved for user content (manuscript, outline and reference material) and a
fixed overhead is held back for the system prompt and formatting.
"""

from __future__ import annotations

from .models import BudgetSnapshot

TOTAL_CONTEXT_WORDS = 600_000
PROMPT_OVERHEAD_WORDS = 3_000


def count_words(text: str) -> int:
    return len(text.split()) if text else 0


def calculate_context_budget(manuscript_words: int, outline_words: int) -> BudgetSnapshot:
    """
    Compute how many words remain for source material. Clamps at zero when
    manuscript and outline already exceed the budget.
    """
    used = manuscript_words + outline_words + PROMPT_OVERHEAD_WORDS
    return BudgetSnapshot(
        total_budget=TOTAL_CONTEXT_WORDS,
        used=used,
        available_for_sources=max(0, TOTAL_CONTEXT_WORDS - used),
    )
