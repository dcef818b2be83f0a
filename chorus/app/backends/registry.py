from __future__ import annotations

from collections.abc import Iterator

from chorus.app.backends.contracts import BackendSpec
from chorus.core.config import AppConfig


class BackendRegistry:
    """Fixed, ordered set of backends and their call parameters."""

    def __init__(self, specs: tuple[BackendSpec, ...]) -> None:
        seen: set[str] = set()
        for spec in specs:
            if spec.backend_id in seen:
                raise ValueError(f"Duplicate backend id: {spec.backend_id}")
            seen.add(spec.backend_id)
        self._specs = specs
        self._by_id = {spec.backend_id: spec for spec in specs}

    @property
    def backend_ids(self) -> tuple[str, ...]:
        return tuple(spec.backend_id for spec in self._specs)

    def get(self, backend_id: str) -> BackendSpec | None:
        return self._by_id.get(backend_id)

    def __contains__(self, backend_id: object) -> bool:
        return backend_id in self._by_id

    def __iter__(self) -> Iterator[BackendSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)


def build_backend_registry(config: AppConfig) -> BackendRegistry:
    return BackendRegistry(
        tuple(
            BackendSpec(
                backend_id=backend_id,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                timeout_seconds=config.timeout_seconds,
            )
            for backend_id in config.backend_ids
        )
    )
