from __future__ import annotations

import pytest

_CONFIG_ENV_VARS = (
    "APP_NAME",
    "APP_VERSION",
    "APP_ENV",
    "CHORUS_API_BASE_URL",
    "CHORUS_API_KEY",
    "OPENROUTER_API_KEY",
    "CHORUS_BACKENDS",
    "CHORUS_MAX_TOKENS",
    "CHORUS_TEMPERATURE",
    "CHORUS_TIMEOUT_SECONDS",
    "CHORUS_MAX_RETRIES",
    "CHORUS_RETRY_DELAY_MS",
    "CHORUS_QUERY_CACHE_TTL_SECONDS",
    "CHORUS_PERFORMANCE_TTL_SECONDS",
    "CHORUS_HTTP_REFERER",
    "CHORUS_HTTP_TITLE",
)


@pytest.fixture(autouse=True)
def isolate_config_env(request, monkeypatch) -> None:
    if request.node.get_closest_marker("integration"):
        return
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
