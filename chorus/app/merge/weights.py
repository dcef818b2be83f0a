from __future__ import annotations

from collections.abc import Mapping

from chorus.app.performance.contracts import BackendProfile


def performance_score(profile: BackendProfile) -> float:
    return profile.quality_score * profile.success_rate


def compute_weights(profiles: Mapping[str, BackendProfile]) -> dict[str, float]:
    if not profiles:
        return {}
    scores = {
        backend_id: max(performance_score(profile), 0.0)
        for backend_id, profile in profiles.items()
    }
    total = sum(scores.values())
    if total <= 0:
        uniform = 1 / len(scores)
        return {backend_id: uniform for backend_id in scores}
    return {backend_id: score / total for backend_id, score in scores.items()}
