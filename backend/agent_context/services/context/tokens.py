"""
Token estimation for context budgeting.
"""
import math
from typing import Optional


def estimate_tokens(text: Optional[str]) -> int:
    """
    Rough token estimate: ~4 characters per token (English text average).

    Deterministic and dependency-free. Budgets computed with it are
    approximate; swap in a provider tokenizer for exact counts.
    """
    if not text:
        return 0
    return math.ceil(len(text) / 4)
