from __future__ import annotations

from collections.abc import Mapping, Sequence
from itertools import combinations

from chorus.app.backends.contracts import BackendSuccess
from chorus.app.merge.contracts import MergedResponse, WeightedResponse


def _word_set(text: str) -> set[str]:
    return set(text.lower().split())


def jaccard_similarity(left: str, right: str) -> float:
    left_words = _word_set(left)
    right_words = _word_set(right)
    union = left_words | right_words
    if not union:
        return 0.0
    return len(left_words & right_words) / len(union)


def calculate_consensus(contents: Sequence[str]) -> float:
    if not contents:
        return 0.5
    if len(contents) == 1:
        return 1.0
    similarities = [
        jaccard_similarity(left, right) for left, right in combinations(contents, 2)
    ]
    return min(1.0, sum(similarities) / len(similarities))


def merge_responses(
    successes: Sequence[BackendSuccess],
    weights: Mapping[str, float],
) -> MergedResponse:
    if not successes:
        raise ValueError("merge_responses requires at least one successful outcome")

    weighted = tuple(
        WeightedResponse(
            backend_id=outcome.backend_id,
            content=outcome.content,
            weight=max(weights.get(outcome.backend_id, 0.0), 0.0),
            response_time_ms=outcome.response_time_ms,
        )
        for outcome in successes
    )

    # strict comparison keeps the first backend on ties
    best = weighted[0]
    for candidate in weighted[1:]:
        if candidate.weight > best.weight:
            best = candidate

    return MergedResponse(
        content=best.content,
        primary_backend=best.backend_id,
        confidence=calculate_consensus([outcome.content for outcome in successes]),
        weighted_responses=weighted,
    )
