from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

MERGE_STRATEGY_WEIGHTED_SELECTION = "weighted_selection"


class WeightedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend_id: str
    content: str
    weight: float = Field(ge=0.0)
    response_time_ms: int = Field(ge=0)


class MergedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    primary_backend: str
    confidence: float = Field(ge=0.0, le=1.0)
    weighted_responses: tuple[WeightedResponse, ...]
    merge_strategy: str = MERGE_STRATEGY_WEIGHTED_SELECTION
