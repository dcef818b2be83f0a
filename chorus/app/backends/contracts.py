from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Literal, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    AUTH_ERROR = "auth_error"
    CLIENT_ERROR = "client_error"
    NETWORK_ERROR = "network_error"


@dataclass(frozen=True)
class BackendSpec:
    backend_id: str
    max_tokens: int
    temperature: float
    timeout_seconds: float


@dataclass(frozen=True)
class CallOptions:
    max_tokens: int | None = None
    temperature: float | None = None


class BackendSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    backend_id: str
    content: str
    response_time_ms: int = Field(ge=0)
    usage_tokens: int = Field(default=0, ge=0)
    request_id: str | None = None
    attempts: int = Field(default=1, ge=1)
    fallback: bool = False


class BackendFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["failure"] = "failure"
    backend_id: str
    kind: FailureKind
    retryable: bool
    retry_after_ms: int | None = Field(default=None, ge=0)
    message: str = ""
    response_time_ms: int = Field(default=0, ge=0)
    request_id: str | None = None
    attempts: int = Field(default=1, ge=1)


CallOutcome = Annotated[
    Union[BackendSuccess, BackendFailure], Field(discriminator="status")
]


class TextBackend(Protocol):
    @property
    def backend_id(self) -> str: ...

    async def generate(
        self, prompt: str, options: CallOptions
    ) -> BackendSuccess | BackendFailure: ...
