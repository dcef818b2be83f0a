from __future__ import annotations

import re

_SENTENCE_BREAK = re.compile(r"[.!?]+")


def assess_quality(text: str) -> float:
    """Cheap lexical quality heuristic in [0, 1].

    Rewards moderate length, terminal punctuation, a plausible sentence count
    and low word repetition. No semantic evaluation is attempted.
    """
    score = 0.5

    if 50 < len(text) < 2000:
        score += 0.1

    if any(mark in text for mark in ".!?"):
        score += 0.1

    sentences = [part for part in _SENTENCE_BREAK.split(text) if part.strip()]
    if 1 < len(sentences) < 20:
        score += 0.1

    words = text.lower().split()
    if words and len(set(words)) / len(words) > 0.7:
        score += 0.1

    return min(1.0, max(0.0, score))
