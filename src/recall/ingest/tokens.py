"""Token estimation for chunk sizing and context budgets.

Uses a 4-characters-per-token approximation; no tokenizer dependency. The same
estimate is stored on each chunk and charged against retrieval budgets, so the
two always agree.
"""

from __future__ import annotations

CHARS_PER_TOKEN = 4


def count_tokens(text: str) -> int:
    """Approximate token count: 4 characters ≈ 1 token, 0 for blank text."""
    if not text or not text.strip():
        return 0
    return max(1, len(text) // CHARS_PER_TOKEN)
