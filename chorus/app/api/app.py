from __future__ import annotations

import time
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from chorus.app.dispatch.contracts import AllBackendsFailedError, QueryOptions
from chorus.app.performance.contracts import serialize_profile
from chorus.app.pipeline.service import PipelineService, build_pipeline_service
from chorus.core.config import load_app_config


class QueryRequest(BaseModel):
    query: str = Field(min_length=1, max_length=20000)
    skip_cache: bool = False
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)


def create_app(service: PipelineService | None = None) -> FastAPI:
    config = load_app_config()
    pipeline = service or build_pipeline_service(config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        try:
            yield
        finally:
            await pipeline.shutdown()

    app = FastAPI(title=config.app_name, version=config.app_version, lifespan=lifespan)

    @app.get("/")
    async def root() -> JSONResponse:
        return JSONResponse(
            content={
                "name": config.app_name,
                "version": config.app_version,
                "environment": config.environment,
                "docs": "/docs",
            }
        )

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/ready")
    async def ready() -> JSONResponse:
        report = await pipeline.health_check()
        status_code = 200 if report.get("cache") else 503
        return JSONResponse(content=report, status_code=status_code)

    @app.post("/api/v1/query")
    async def query(payload: QueryRequest) -> dict[str, object]:
        started = time.perf_counter()
        try:
            result = await pipeline.submit_query(
                payload.query,
                QueryOptions(
                    skip_cache=payload.skip_cache,
                    max_tokens=payload.max_tokens,
                    temperature=payload.temperature,
                ),
            )
        except AllBackendsFailedError as exc:
            raise HTTPException(
                status_code=502,
                detail={
                    "message": str(exc),
                    "query_id": exc.query_id,
                    "failures": [
                        outcome.model_dump(mode="json") for outcome in exc.outcomes
                    ],
                },
            ) from exc
        return {
            "success": True,
            "result": result.model_dump(mode="json"),
            "response_time_ms": int((time.perf_counter() - started) * 1000),
        }

    @app.get("/api/v1/models/performance")
    async def model_performance() -> dict[str, object]:
        stats = await pipeline.get_performance_stats()
        summary = await pipeline.get_performance_summary()
        return {
            "success": True,
            "models": {
                backend_id: serialize_profile(profile)
                for backend_id, profile in stats.items()
            },
            "summary": asdict(summary),
        }

    @app.get("/api/v1/models/weights")
    async def model_weights() -> dict[str, object]:
        return {"success": True, "weights": await pipeline.get_current_weights()}

    @app.post("/api/v1/models/reset-performance")
    async def reset_performance() -> dict[str, object]:
        await pipeline.reset_performance()
        return {
            "success": True,
            "message": "Model performance data reset successfully",
        }

    @app.get("/api/v1/models/config")
    async def model_config() -> dict[str, object]:
        return {"success": True, **pipeline.get_model_config()}

    @app.post("/api/v1/cache/flush")
    async def flush_cache() -> dict[str, object]:
        await pipeline.clear_query_cache()
        return {"success": True}

    return app
