from datetime import datetime, timezone

import pytest

from chorus.app.merge.weights import compute_weights
from chorus.app.performance.contracts import BackendProfile


def _profile(backend_id: str, success_rate: float, quality_score: float) -> BackendProfile:
    return BackendProfile(
        backend_id=backend_id,
        success_rate=success_rate,
        avg_response_time_ms=1000.0,
        quality_score=quality_score,
        total_calls=10,
        successful_calls=5,
        fallback_calls=0,
        last_updated=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


def test_compute_weights_normalizes_performance_mass() -> None:
    profiles = {
        "a": _profile("a", 0.9, 0.8),
        "b": _profile("b", 0.5, 0.6),
        "c": _profile("c", 0.2, 0.9),
    }

    weights = compute_weights(profiles)

    assert sum(weights.values()) == pytest.approx(1.0)
    assert all(weight >= 0 for weight in weights.values())
    total = 0.9 * 0.8 + 0.5 * 0.6 + 0.2 * 0.9
    assert weights["a"] == pytest.approx(0.72 / total)


def test_compute_weights_matches_expected_split() -> None:
    profiles = {
        "a": _profile("a", 0.40, 1.0),
        "b": _profile("b", 0.35, 1.0),
        "c": _profile("c", 0.25, 1.0),
        "d": _profile("d", 0.0, 1.0),
    }

    weights = compute_weights(profiles)

    assert weights == pytest.approx({"a": 0.40, "b": 0.35, "c": 0.25, "d": 0.0})


def test_compute_weights_is_uniform_when_total_score_is_zero() -> None:
    profiles = {
        "a": _profile("a", 0.0, 0.7),
        "b": _profile("b", 0.9, 0.0),
        "c": _profile("c", 0.0, 0.0),
    }

    weights = compute_weights(profiles)

    assert weights == {"a": 1 / 3, "b": 1 / 3, "c": 1 / 3}


def test_compute_weights_empty_profiles() -> None:
    assert compute_weights({}) == {}
