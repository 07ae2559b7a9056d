"""FastAPI health endpoints for liveness and readiness checks."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .models import CrawlerState, CrawlerStatus, HealthStatus

if TYPE_CHECKING:
    from .runner import CrawlerRunner

# logged in and working through the mailbox
_SERVING_STATES = frozenset({CrawlerState.POLLING.value, CrawlerState.WAITING.value})


def create_health_app(runner: CrawlerRunner) -> FastAPI:
    """Build a minimal FastAPI app with ``/health`` and ``/ready`` routes
    reporting on *runner* and its crawler.
    """
    app = FastAPI(title=f"{runner.config.name} health", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        details = await runner.crawler.health_check()
        status = HealthStatus(
            crawler_name=runner.config.name,
            status=runner.status,
            uptime_seconds=time.monotonic() - runner.start_time,
            records_received=runner.records_received,
            details=details,
        )
        code = 200 if runner.status in (CrawlerStatus.RUNNING, CrawlerStatus.STARTING) else 503
        return JSONResponse(content=status.model_dump(mode="json"), status_code=code)

    @app.get("/ready")
    async def ready() -> JSONResponse:
        # a crawler without a state field is judged by the runner alone
        details = await runner.crawler.health_check()
        state = details.get("state")
        is_ready = runner.status == CrawlerStatus.RUNNING and (
            state is None or state in _SERVING_STATES
        )
        return JSONResponse(
            content={"ready": is_ready, "state": state},
            status_code=200 if is_ready else 503,
        )

    return app
