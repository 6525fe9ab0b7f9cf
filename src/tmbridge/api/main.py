"""
tmbridge API Main Application

FastAPI application exposing the terminology engine as FHIR operations.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tmbridge import __version__
from tmbridge.config import get_settings
from tmbridge.errors import TerminologyError
from tmbridge.observability.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    is_configured,
)
from tmbridge.store.clients import close_store, init_store
from tmbridge.terminology import fhir
from tmbridge.terminology.service import TerminologyService

logger = structlog.get_logger(__name__)

FHIR_JSON = "application/fhir+json"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    settings = get_settings()
    if not is_configured():
        configure_logging(settings.app.log_level, json_logs=settings.app.log_json)

    # Startup
    logger.info(
        "Starting tmbridge API",
        env=settings.app.env,
        debug=settings.app.debug,
        store_backend=settings.terminology.store_backend,
    )

    store = await init_store(settings)
    app.state.service = TerminologyService(store, settings.terminology)

    yield

    # Shutdown
    logger.info("Shutting down tmbridge API")
    await close_store(store)
    app.state.service = None


app = FastAPI(
    title="tmbridge API",
    description="NAMASTE / Unani / ICD-11 terminology mapping and dual-coding",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Bind a request id to every log line emitted while handling the request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    bind_request_context(request_id=request_id, path=request.url.path, method=request.method)
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-ID"] = request_id
    return response


# =============================================================================
# Health Check Endpoints
# =============================================================================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "tmbridge API",
        "version": __version__,
        "fhirBase": "/fhir",
        "docs": "/docs",
    }


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Store reachability and loaded CodeSystems."""
    service = getattr(request.app.state, "service", None)
    if service is None:
        return JSONResponse(status_code=503, content={"status": "starting"})

    try:
        code_systems = await service.store.list_code_systems(limit=100)
    except TerminologyError as e:
        logger.warning("Health check failed", error=e.message)
        return JSONResponse(status_code=503, content={"status": "unhealthy", "error": e.message})

    return {
        "status": "healthy",
        "version": __version__,
        "store": get_settings().terminology.store_backend,
        "codeSystems": [cs.url for cs in code_systems],
    }


@app.get("/health/live", tags=["Health"])
async def liveness_check():
    """Kubernetes liveness check."""
    return {"status": "alive"}


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(TerminologyError)
async def terminology_error_handler(request: Request, exc: TerminologyError):
    """Render engine errors as FHIR OperationOutcome."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Terminology request failed",
        path=request.url.path,
        error=exc.message,
        status_code=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=fhir.operation_outcome(exc.message, code=exc.issue_code),
        media_type=FHIR_JSON,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=fhir.operation_outcome(str(exc.errors()), code="invalid"),
        media_type=FHIR_JSON,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )
    detail = str(exc) if get_settings().app.debug else "An unexpected error occurred"
    return JSONResponse(
        status_code=500,
        content=fhir.operation_outcome(detail),
        media_type=FHIR_JSON,
    )


# =============================================================================
# Include Routers
# =============================================================================

from tmbridge.api.routes import (  # noqa: E402
    codesystems_router,
    conceptmaps_router,
    terminology_router,
    valuesets_router,
)

app.include_router(terminology_router, prefix="/fhir")
app.include_router(codesystems_router, prefix="/fhir")
app.include_router(conceptmaps_router, prefix="/fhir")
app.include_router(valuesets_router, prefix="/fhir")


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "tmbridge.api.main:app",
        host=settings.app.api_host,
        port=settings.app.api_port,
        workers=settings.app.api_workers,
        reload=settings.app.api_reload,
    )


if __name__ == "__main__":
    run()
