"""TF-IDF relevance scoring helpers."""

import math
import time


def compute_idf(total_docs: int, doc_freq: int) -> float:
    """Inverse document frequency of a term.

    Args:
        total_docs: Number of stored documents
        doc_freq: Number of documents containing the term

    Returns:
        ``ln(1 + total_docs / doc_freq)``, or 0 when the term occurs nowhere
    """
    if doc_freq <= 0 or total_docs <= 0:
        return 0.0
    return math.log(1 + total_docs / doc_freq)


def compute_term_score(frequency: int, idf: float, weight: float) -> float:
    """Score of one posting: ``(1 + ln(tf)) * idf * weight``."""
    if frequency <= 0:
        return 0.0
    return (1 + math.log(frequency)) * idf * weight


def recency_factor(
    indexed_at: float, now: float | None = None, half_life_days: float = 30.0
) -> float:
    """Multiplier in ``(1, 2]`` that halves its bonus every ``half_life_days``."""
    now = time.time() if now is None else now
    age_days = max(0.0, (now - indexed_at) / 86400)
    return 1 + 0.5 ** (age_days / half_life_days)
