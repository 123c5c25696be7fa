"""
FastAPI application entry point.

The engine is created, reconciled and started in the application lifespan,
and stopped gracefully on shutdown.
"""

# Load environment variables BEFORE importing modules that depend on them
from dotenv import load_dotenv
load_dotenv()

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .. import __version__, config
from ..config import EngineConfig
from ..infra.logging_config import setup_logging
from .routers import engine, jobs
from ._engine_state import init_engine_service, shutdown_engine_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: configure logging, load persisted state, reconcile, start the
    dispatch loop. Shutdown: stop the dispatch loop and wait for in-flight runs.
    """
    setup_logging(
        os.getenv("LOG_LEVEL", config.LOG_LEVEL),
        log_dir=os.getenv("JOB_ENGINE_LOG_DIR", config.LOG_DIR or "") or None,
    )

    service = init_engine_service(EngineConfig.from_env())
    await service.start()

    yield

    await shutdown_engine_service()


tags_metadata = [
    {
        "name": "jobs",
        "description": "Job submission and run history - submit immediate or scheduled jobs, list runs, view logs",
    },
    {
        "name": "engine",
        "description": "Engine status - dispatcher state, load and configuration",
    },
]

app = FastAPI(
    title="Job Execution Engine API",
    lifespan=lifespan,
    description="""
## Job Execution Engine API

Submit named jobs (a command plus arguments) for immediate or scheduled
execution. Runs are dispatched under a concurrency cap, bounded by a timeout,
and persisted across restarts.

### Run lifecycle
`SCHEDULED -> PENDING -> RUNNING -> SUCCESS | FAILED | TIMEOUT | KILLED`

### Usage
```bash
# Start server
uvicorn job_engine.api.main:app --host 127.0.0.1 --port 8000

# Submit a job
curl -X POST http://localhost:8000/jobs \\
  -H "Content-Type: application/json" \\
  -d '{"job_name": "t1", "command": "echo", "args": "hi"}'
```
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=tags_metadata,
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
app.include_router(engine.router, prefix="/engine", tags=["engine"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
