"""
FastAPI application entry point.

HTTP surface for the club calculation job queue: enqueue and inspect
calculation jobs, manage scheduled entries, and schedule per-area
calculations.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI

from src import __version__
from src.infra.content_store import create_content_store
from src.scheduler.config import QueueConfig
from src.scheduler.service import init_job_service

from .dependencies.auth import verify_api_key, API_AUTH_ENABLED
from .routers import calculations, jobs, scheduler
from ._service_state import (
    get_calculation_jobs,
    init_calculation_jobs,
    shutdown_calculation_jobs,
)


load_dotenv()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: build the job service from the environment, wire the content
    store and calculation adapters, start workers and the scheduler loop.
    Shutdown: stop the scheduler, then drain running jobs.
    """
    config = QueueConfig.from_env()
    service = init_job_service(config)
    init_calculation_jobs(service, create_content_store())

    await service.start()
    logger.info(
        f"[API] Job service started: {config.max_workers} workers, "
        f"queue capacity {config.max_queue_size}"
    )

    yield

    await shutdown_calculation_jobs(timeout=config.stop_timeout)
    logger.info("[API] Job service stopped")


# Tag metadata for Swagger UI
tags_metadata = [
    {
        "name": "jobs",
        "description": "Enqueue named calculations, poll job status, cancel and retry jobs, queue statistics",
    },
    {
        "name": "scheduler",
        "description": "Job service control plane and scheduled (delayed/recurring) entries",
    },
    {
        "name": "calculations",
        "description": "Calculation catalog and per-area scheduling for seasons, teams and league tables",
    },
]

app = FastAPI(
    title="Club Calculation Jobs API",
    lifespan=lifespan,
    description="""
## Club Calculation Jobs API

Background calculation queue for the club backend: season statistics,
team rankings and league tables are computed by workers off the request path.

### Authentication
When `API_AUTH_ENABLED=true`, all endpoints except `/health` require an
`X-API-Key` header matching the `API_KEY` environment variable.

### Usage
```bash
# Start server
uvicorn src.api.main:app --host 127.0.0.1 --port 8000

# Enqueue a calculation
curl -X POST http://localhost:8000/jobs \\
  -H "Content-Type: application/json" \\
  -d '{"name": "season-statistics-calculation", "payload": {"area": "season", "saison_id": 1}}'

# Poll it
curl http://localhost:8000/jobs/<job_id>
```
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)


# Health check - NO authentication (operational endpoint)
@app.get("/health")
async def health_check():
    """Health check endpoint. Not authenticated."""
    service = get_calculation_jobs().service
    return {
        "status": "ok" if service.is_running else "stopped",
        "version": __version__,
    }


auth_dependency = [Depends(verify_api_key)] if API_AUTH_ENABLED else []

app.include_router(
    jobs.router, prefix="/jobs", tags=["jobs"], dependencies=auth_dependency
)
app.include_router(
    scheduler.router, prefix="/scheduler", tags=["scheduler"], dependencies=auth_dependency
)
app.include_router(
    calculations.router, prefix="/calculations", tags=["calculations"], dependencies=auth_dependency
)


if __name__ == "__main__":
    import uvicorn

    from src.infra.logging_config import setup_logging

    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    uvicorn.run(app, host="127.0.0.1", port=8000)
