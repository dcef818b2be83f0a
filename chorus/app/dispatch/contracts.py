from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from chorus.app.backends.contracts import BackendFailure, BackendSuccess, CallOutcome
from chorus.app.merge.contracts import (
    MERGE_STRATEGY_WEIGHTED_SELECTION,
    WeightedResponse,
)


@dataclass(frozen=True)
class QueryOptions:
    skip_cache: bool = False
    max_tokens: int | None = None
    temperature: float | None = None


class QueryResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    query_id: str
    merged_content: str
    primary_backend: str
    confidence: float = Field(ge=0.0, le=1.0)
    individual_outcomes: tuple[CallOutcome, ...]
    weights: dict[str, float]
    weighted_responses: tuple[WeightedResponse, ...] = ()
    merge_strategy: str = MERGE_STRATEGY_WEIGHTED_SELECTION
    total_time_ms: int = Field(ge=0)
    success_rate: float = Field(ge=0.0, le=1.0)
    timestamp: str
    from_cache: bool = False


class AllBackendsFailedError(Exception):
    def __init__(
        self,
        query_id: str,
        outcomes: list[BackendSuccess | BackendFailure],
    ) -> None:
        self.query_id = query_id
        self.outcomes = tuple(outcomes)
        kinds = ", ".join(
            f"{outcome.backend_id}={outcome.kind.value}"
            for outcome in outcomes
            if isinstance(outcome, BackendFailure)
        )
        super().__init__(f"All backend calls failed ({kinds or 'no backends'})")
