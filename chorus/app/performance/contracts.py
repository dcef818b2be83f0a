from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

DEFAULT_SUCCESS_RATE = 0.8
DEFAULT_AVG_RESPONSE_TIME_MS = 5000.0
DEFAULT_QUALITY_SCORE = 0.7


@dataclass(frozen=True)
class BackendProfile:
    backend_id: str
    success_rate: float
    avg_response_time_ms: float
    quality_score: float
    total_calls: int
    successful_calls: int
    fallback_calls: int
    last_updated: datetime


def default_profile(backend_id: str, now: datetime | None = None) -> BackendProfile:
    return BackendProfile(
        backend_id=backend_id,
        success_rate=DEFAULT_SUCCESS_RATE,
        avg_response_time_ms=DEFAULT_AVG_RESPONSE_TIME_MS,
        quality_score=DEFAULT_QUALITY_SCORE,
        total_calls=0,
        successful_calls=0,
        fallback_calls=0,
        last_updated=now or datetime.now(timezone.utc),
    )


def serialize_profile(profile: BackendProfile) -> dict[str, object]:
    return {
        "backend_id": profile.backend_id,
        "success_rate": profile.success_rate,
        "avg_response_time_ms": profile.avg_response_time_ms,
        "quality_score": profile.quality_score,
        "total_calls": profile.total_calls,
        "successful_calls": profile.successful_calls,
        "fallback_calls": profile.fallback_calls,
        "last_updated": profile.last_updated.isoformat(),
    }


def _unit_interval(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value < 0 or value > 1:
        return None
    return float(value)


def _parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def deserialize_profile(backend_id: str, payload: object) -> BackendProfile | None:
    if not isinstance(payload, dict):
        return None
    success_rate = _unit_interval(payload.get("success_rate"))
    quality_score = _unit_interval(payload.get("quality_score"))
    avg_response_time_ms = payload.get("avg_response_time_ms")
    total_calls = payload.get("total_calls")
    successful_calls = payload.get("successful_calls")
    fallback_calls = payload.get("fallback_calls", 0)
    last_updated = _parse_timestamp(payload.get("last_updated"))
    if success_rate is None or quality_score is None or last_updated is None:
        return None
    if isinstance(avg_response_time_ms, bool) or not isinstance(
        avg_response_time_ms, (int, float)
    ):
        return None
    if avg_response_time_ms < 0:
        return None
    if not all(
        isinstance(value, int) and not isinstance(value, bool) and value >= 0
        for value in (total_calls, successful_calls, fallback_calls)
    ):
        return None
    if successful_calls > total_calls or fallback_calls > successful_calls:
        return None
    return BackendProfile(
        backend_id=backend_id,
        success_rate=success_rate,
        avg_response_time_ms=float(avg_response_time_ms),
        quality_score=quality_score,
        total_calls=total_calls,
        successful_calls=successful_calls,
        fallback_calls=fallback_calls,
        last_updated=last_updated,
    )
