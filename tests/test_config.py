from chorus.core.config import DEFAULT_BACKEND_IDS, load_app_config


def test_load_app_config_uses_defaults_without_env() -> None:
    config = load_app_config()

    assert config.api_base_url == "https://openrouter.ai/api/v1"
    assert config.api_key is None
    assert config.backend_ids == DEFAULT_BACKEND_IDS
    assert config.max_tokens == 1000
    assert config.temperature == 0.7
    assert config.timeout_seconds == 30.0
    assert config.max_retries == 3
    assert config.retry_delay_ms == 1000
    assert config.query_cache_ttl_seconds == 3600
    assert config.performance_ttl_seconds == 86400


def test_load_app_config_reads_overrides(monkeypatch) -> None:
    monkeypatch.setenv("CHORUS_API_BASE_URL", "https://llm.internal/v1")
    monkeypatch.setenv("CHORUS_API_KEY", "  key-123  ")
    monkeypatch.setenv("CHORUS_BACKENDS", "a/model, b/model ,a/model,,")
    monkeypatch.setenv("CHORUS_MAX_TOKENS", "256")
    monkeypatch.setenv("CHORUS_TEMPERATURE", "0.2")
    monkeypatch.setenv("CHORUS_MAX_RETRIES", "5")

    config = load_app_config()

    assert config.api_base_url == "https://llm.internal/v1"
    assert config.api_key == "key-123"
    assert config.backend_ids == ("a/model", "b/model")
    assert config.max_tokens == 256
    assert config.temperature == 0.2
    assert config.max_retries == 5


def test_openrouter_key_is_used_when_chorus_key_missing(monkeypatch) -> None:
    monkeypatch.setenv("OPENROUTER_API_KEY", "router-key")

    assert load_app_config().api_key == "router-key"


def test_invalid_numbers_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("CHORUS_MAX_TOKENS", "lots")
    monkeypatch.setenv("CHORUS_MAX_RETRIES", "0")
    monkeypatch.setenv("CHORUS_TIMEOUT_SECONDS", "-3")
    monkeypatch.setenv("CHORUS_TEMPERATURE", "-1")

    config = load_app_config()

    assert config.max_tokens == 1000
    assert config.max_retries == 3
    assert config.timeout_seconds == 30.0
    assert config.temperature == 0.7


def test_temperature_is_clamped_to_upper_bound(monkeypatch) -> None:
    monkeypatch.setenv("CHORUS_TEMPERATURE", "3.5")

    assert load_app_config().temperature == 2.0


def test_blank_backend_list_uses_defaults(monkeypatch) -> None:
    monkeypatch.setenv("CHORUS_BACKENDS", " , ")

    assert load_app_config().backend_ids == DEFAULT_BACKEND_IDS
