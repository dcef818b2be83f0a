import pytest

from chorus.app.backends.contracts import (
    BackendFailure,
    BackendSuccess,
    CallOptions,
    FailureKind,
)
from chorus.app.dispatch.retry import backoff_delay_ms, call_with_retry

_RETRYABLE = {
    FailureKind.RATE_LIMITED,
    FailureKind.SERVER_ERROR,
    FailureKind.NETWORK_ERROR,
}


def _failure(
    backend_id: str, kind: FailureKind, retry_after_ms: int | None = None
) -> BackendFailure:
    return BackendFailure(
        backend_id=backend_id,
        kind=kind,
        retryable=kind in _RETRYABLE,
        retry_after_ms=retry_after_ms,
        message=kind.value,
        response_time_ms=20,
    )


class _ScriptedBackend:
    def __init__(
        self, backend_id: str, outcomes: list[BackendSuccess | BackendFailure]
    ) -> None:
        self._backend_id = backend_id
        self._outcomes = outcomes
        self.calls = 0

    @property
    def backend_id(self) -> str:
        return self._backend_id

    async def generate(
        self, prompt: str, options: CallOptions
    ) -> BackendSuccess | BackendFailure:
        _ = prompt
        _ = options
        index = min(self.calls, len(self._outcomes) - 1)
        self.calls += 1
        return self._outcomes[index]


class _SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.mark.asyncio
async def test_retry_stops_at_max_attempts_with_exponential_backoff() -> None:
    backend = _ScriptedBackend("a", [_failure("a", FailureKind.SERVER_ERROR)])
    sleep = _SleepRecorder()

    outcome = await call_with_retry(
        backend, "prompt", CallOptions(), 3, retry_delay_ms=1000, sleep=sleep
    )

    assert isinstance(outcome, BackendFailure)
    assert outcome.kind == FailureKind.SERVER_ERROR
    assert outcome.attempts == 3
    assert backend.calls == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_client_error_is_never_retried() -> None:
    backend = _ScriptedBackend("a", [_failure("a", FailureKind.CLIENT_ERROR)])
    sleep = _SleepRecorder()

    outcome = await call_with_retry(
        backend, "prompt", CallOptions(), 5, retry_delay_ms=1000, sleep=sleep
    )

    assert isinstance(outcome, BackendFailure)
    assert outcome.kind == FailureKind.CLIENT_ERROR
    assert backend.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_rate_limit_waits_for_hint_or_default() -> None:
    hinted = _ScriptedBackend(
        "a",
        [
            _failure("a", FailureKind.RATE_LIMITED, retry_after_ms=5000),
            BackendSuccess(backend_id="a", content="ok", response_time_ms=10),
        ],
    )
    unhinted = _ScriptedBackend("b", [_failure("b", FailureKind.RATE_LIMITED)])
    hinted_sleep = _SleepRecorder()
    unhinted_sleep = _SleepRecorder()

    hinted_outcome = await call_with_retry(
        hinted, "p", CallOptions(), 3, retry_delay_ms=1000, sleep=hinted_sleep
    )
    unhinted_outcome = await call_with_retry(
        unhinted, "p", CallOptions(), 2, retry_delay_ms=1000, sleep=unhinted_sleep
    )

    assert isinstance(hinted_outcome, BackendSuccess)
    assert hinted_outcome.attempts == 2
    assert hinted_sleep.delays == [5.0]
    assert isinstance(unhinted_outcome, BackendFailure)
    assert unhinted.calls == 2
    assert unhinted_sleep.delays == [60.0]


@pytest.mark.asyncio
async def test_server_hint_overrides_shorter_backoff() -> None:
    backend = _ScriptedBackend(
        "a", [_failure("a", FailureKind.SERVER_ERROR, retry_after_ms=3000)]
    )
    sleep = _SleepRecorder()

    await call_with_retry(
        backend, "p", CallOptions(), 4, retry_delay_ms=1000, sleep=sleep
    )

    assert sleep.delays == [3.0, 3.0, 4.0]


@pytest.mark.asyncio
async def test_network_error_then_success() -> None:
    backend = _ScriptedBackend(
        "a",
        [
            _failure("a", FailureKind.NETWORK_ERROR),
            BackendSuccess(backend_id="a", content="recovered", response_time_ms=30),
        ],
    )
    sleep = _SleepRecorder()

    outcome = await call_with_retry(
        backend, "p", CallOptions(), 3, retry_delay_ms=500, sleep=sleep
    )

    assert isinstance(outcome, BackendSuccess)
    assert outcome.content == "recovered"
    assert sleep.delays == [0.5]


@pytest.mark.asyncio
async def test_auth_error_returns_fallback_success() -> None:
    backend_id = "deepseek/deepseek-r1-0528-qwen3-8b:free"
    backend = _ScriptedBackend(backend_id, [_failure(backend_id, FailureKind.AUTH_ERROR)])
    sleep = _SleepRecorder()

    outcome = await call_with_retry(
        backend,
        "What is artificial intelligence?",
        CallOptions(),
        3,
        retry_delay_ms=1000,
        sleep=sleep,
    )

    assert isinstance(outcome, BackendSuccess)
    assert outcome.fallback is True
    assert outcome.content.startswith("AI is a branch of computer science")
    assert outcome.usage_tokens > 0
    assert backend.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_max_attempts_must_be_positive() -> None:
    backend = _ScriptedBackend("a", [_failure("a", FailureKind.SERVER_ERROR)])

    with pytest.raises(ValueError):
        await call_with_retry(backend, "p", CallOptions(), 0, retry_delay_ms=1000)


def test_backoff_delay_doubles_per_attempt() -> None:
    assert [backoff_delay_ms(attempt, 250) for attempt in (1, 2, 3)] == [
        250,
        500,
        1000,
    ]
    assert backoff_delay_ms(1, 250, server_hint_ms=900) == 900


class _AttemptRecorder:
    def __init__(self) -> None:
        self.outcomes: list[BackendSuccess | BackendFailure] = []

    async def __call__(self, outcome: BackendSuccess | BackendFailure) -> None:
        self.outcomes.append(outcome)


@pytest.mark.asyncio
async def test_on_attempt_sees_every_call() -> None:
    backend = _ScriptedBackend(
        "a",
        [
            _failure("a", FailureKind.SERVER_ERROR),
            _failure("a", FailureKind.NETWORK_ERROR),
            BackendSuccess(backend_id="a", content="third time", response_time_ms=5),
        ],
    )
    recorder = _AttemptRecorder()

    await call_with_retry(
        backend,
        "p",
        CallOptions(),
        3,
        retry_delay_ms=10,
        sleep=_SleepRecorder(),
        on_attempt=recorder,
    )

    assert [outcome.status for outcome in recorder.outcomes] == [
        "failure",
        "failure",
        "success",
    ]
    assert [outcome.attempts for outcome in recorder.outcomes] == [1, 2, 3]


@pytest.mark.asyncio
async def test_on_attempt_reports_auth_error_as_fallback_success() -> None:
    backend = _ScriptedBackend("a", [_failure("a", FailureKind.AUTH_ERROR)])
    recorder = _AttemptRecorder()

    await call_with_retry(
        backend,
        "p",
        CallOptions(),
        3,
        retry_delay_ms=10,
        sleep=_SleepRecorder(),
        on_attempt=recorder,
    )

    assert len(recorder.outcomes) == 1
    assert isinstance(recorder.outcomes[0], BackendSuccess)
    assert recorder.outcomes[0].fallback is True
