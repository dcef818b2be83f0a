from __future__ import annotations

import json
import logging
from typing import Any

from chorus.app.backends.contracts import BackendFailure, BackendSuccess

DEFAULT_TELEMETRY_TAG = "chorus-dispatch"


def emit_event(
    event: str,
    payload: dict[str, Any],
    logger: logging.Logger | None = None,
    level: int = logging.INFO,
) -> None:
    active_logger = logger or logging.getLogger(__name__)
    body = {"tag": DEFAULT_TELEMETRY_TAG, **payload}
    active_logger.log(level, "%s %s", event, json.dumps(body, sort_keys=True))


def emit_backend_call(
    outcome: BackendSuccess | BackendFailure,
    *,
    prompt_length: int,
    logger: logging.Logger | None = None,
) -> None:
    payload: dict[str, Any] = {
        "backend_id": outcome.backend_id,
        "request_id": outcome.request_id,
        "prompt_length": prompt_length,
        "response_time_ms": outcome.response_time_ms,
        "status": outcome.status,
    }
    if isinstance(outcome, BackendSuccess):
        payload["response_length"] = len(outcome.content)
        payload["fallback"] = outcome.fallback
        emit_event("backend_call", payload, logger=logger)
        return
    payload["kind"] = outcome.kind.value
    payload["retryable"] = outcome.retryable
    payload["error"] = outcome.message
    emit_event("backend_call", payload, logger=logger, level=logging.WARNING)


def emit_dispatch_completed(
    *,
    query_id: str,
    total_time_ms: int,
    outcomes: list[BackendSuccess | BackendFailure],
    logger: logging.Logger | None = None,
) -> None:
    successful = sum(1 for outcome in outcomes if isinstance(outcome, BackendSuccess))
    emit_event(
        "dispatch_completed",
        {
            "query_id": query_id,
            "total_time_ms": total_time_ms,
            "successful": successful,
            "failed": len(outcomes) - successful,
            "fallbacks": sum(
                1
                for outcome in outcomes
                if isinstance(outcome, BackendSuccess) and outcome.fallback
            ),
        },
        logger=logger,
    )
