from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BACKEND_IDS = (
    "tngtech/deepseek-r1t2-chimera:free",
    "deepseek/deepseek-r1-0528-qwen3-8b:free",
    "mistralai/mistral-small-3.2-24b-instruct:free",
    "moonshotai/kimi-dev-72b:free",
)


@dataclass(frozen=True)
class AppConfig:
    app_name: str
    app_version: str
    environment: str
    api_base_url: str
    api_key: str | None
    backend_ids: tuple[str, ...]
    max_tokens: int
    temperature: float
    timeout_seconds: float
    max_retries: int
    retry_delay_ms: int
    query_cache_ttl_seconds: int
    performance_ttl_seconds: int
    http_referer: str
    http_title: str


def _read_optional_env(name: str) -> str | None:
    value = os.getenv(name)
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _read_int_env(name: str, default: int) -> int:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float_env(name: str, default: float) -> float:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_temperature_env(name: str, default: float) -> float:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    if parsed < 0:
        return default
    if parsed > 2:
        return 2.0
    return parsed


def _read_backend_ids(name: str) -> tuple[str, ...]:
    value = _read_optional_env(name)
    if value is None:
        return DEFAULT_BACKEND_IDS
    backend_ids: list[str] = []
    for item in value.split(","):
        backend_id = item.strip()
        if backend_id and backend_id not in backend_ids:
            backend_ids.append(backend_id)
    return tuple(backend_ids) if backend_ids else DEFAULT_BACKEND_IDS


def load_app_config() -> AppConfig:
    return AppConfig(
        app_name=os.getenv("APP_NAME", "Chorus Multi-Backend Pipeline"),
        app_version=os.getenv("APP_VERSION", "0.1.0"),
        environment=os.getenv("APP_ENV", "development"),
        api_base_url=(
            _read_optional_env("CHORUS_API_BASE_URL") or "https://openrouter.ai/api/v1"
        ),
        api_key=_read_optional_env("CHORUS_API_KEY")
        or _read_optional_env("OPENROUTER_API_KEY"),
        backend_ids=_read_backend_ids("CHORUS_BACKENDS"),
        max_tokens=_read_int_env("CHORUS_MAX_TOKENS", default=1000),
        temperature=_read_temperature_env("CHORUS_TEMPERATURE", default=0.7),
        timeout_seconds=_read_positive_float_env(
            "CHORUS_TIMEOUT_SECONDS", default=30.0
        ),
        max_retries=_read_int_env("CHORUS_MAX_RETRIES", default=3),
        retry_delay_ms=_read_int_env("CHORUS_RETRY_DELAY_MS", default=1000),
        query_cache_ttl_seconds=_read_int_env(
            "CHORUS_QUERY_CACHE_TTL_SECONDS", default=3600
        ),
        performance_ttl_seconds=_read_int_env(
            "CHORUS_PERFORMANCE_TTL_SECONDS", default=86400
        ),
        http_referer=os.getenv("CHORUS_HTTP_REFERER", "https://chorus.local"),
        http_title=os.getenv("CHORUS_HTTP_TITLE", "Chorus Pipeline"),
    )
