"""
FastAPI app for the decision trail service.

Endpoints:
- Listing, storing and inspecting recorded executions
- Running competitor detection against the configured catalog

Run with: uvicorn decision_trail.api.main:app
"""

# .env must be in os.environ before settings are first read
from dotenv import load_dotenv
load_dotenv()

import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from decision_trail import __version__
from decision_trail.api.deps import get_storage
from decision_trail.api.routes import detection, executions
from decision_trail.config import configure_logging, get_settings
from decision_trail.trace.errors import StorageError

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup, release storage on shutdown."""
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)
    logger.info("api_startup", storage_backend=settings.storage_backend, version=__version__)

    yield

    storage = get_storage()
    close = getattr(storage, "close", None)
    if close is not None:
        close()
    logger.info("api_shutdown")


app = FastAPI(
    title="Decision Trail API",
    description="Inspect why multi-stage pipelines chose what they chose",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("storage_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content={"error": "Storage unavailable", "details": str(exc)},
    )


app.include_router(executions.router, prefix="/api", tags=["Executions"])
app.include_router(detection.router, prefix="/api", tags=["Competitor Detection"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8100))
    uvicorn.run("decision_trail.api.main:app", host="0.0.0.0", port=port, reload=False)
