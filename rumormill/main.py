"""
RumorMill - Anonymous Rumor Board

Main application entry point.

Rumors are scored by the people who vote on them, and voters are scored
by how often they end up agreeing with the crowd.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import router as api_router
from .core import RumorMillError
from .db.store import StoreError
from .observability import (
    RequestContextMiddleware,
    check_health,
    get_logger,
    get_metrics,
    setup_logging,
)
from .shared import create_service, create_store

# Setup logging at import time
setup_logging()
logger = get_logger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",  # Vite dev server
    "http://127.0.0.1:5173",
]


def _cors_origins() -> list[str]:
    raw = os.environ.get("RUMORMILL_CORS_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or DEFAULT_CORS_ORIGINS


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # A service injected before startup (tests) is used as is
    service = getattr(app.state, "service", None)
    owns_store = service is None
    if owns_store:
        service = create_service(create_store())
        app.state.service = service

    logger.info(
        "Application startup complete",
        store_type=type(service.store).__name__,
        consensus_threshold=service.resolver.policy.threshold,
    )

    yield

    if owns_store:
        service.store.close()
        logger.info("Store closed")

    logger.info("Application shutdown complete")


app = FastAPI(
    title="RumorMill",
    description="""
## Anonymous Rumor Board

Post rumors anonymously and vote on whether they are true.

### Scoring

- Each identity has a **credibility** between 0.05 and 3.0 (starts at 0.1)
- A vote moves a rumor's **trust score** by `credibility x confidence`,
  positive for verify and negative for dispute
- Once a rumor has 5 votes, every voter on it is judged against the
  consensus: agreeing earns +0.02, confidently disagreeing costs 20%

### Lifecycle

- Rumors older than ~7 months or with trust below -0.8 are archived
- Identities idle for a year are pruned
- Submitters may delete their own rumor, at a 0.1 credibility penalty

### Identity

Clients send a 64-character hex token derived from their own secret.
The server never sees the secret.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add request context middleware for logging
app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(api_router)


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(RumorMillError)
async def rumormill_error_handler(request: Request, exc: RumorMillError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        detail = str(first.get("msg", "")).removeprefix("Value error, ")
        message = f"{field}: {detail}" if field else detail
    return JSONResponse(
        status_code=400,
        content={"success": False, "kind": "validation_error", "error": message},
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(
        "Store operation failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(
        status_code=500,
        content={"success": False, "kind": "internal_error", "error": "Internal server error"},
    )


# ============================================================
# System Endpoints
# ============================================================

@app.get("/health", tags=["System"])
async def health():
    """
    Basic health check endpoint.

    Returns 200 if the service is running.
    For detailed health, use /health/detailed
    """
    return {"status": "healthy", "service": "rumormill"}


@app.get("/health/detailed", tags=["System"])
def health_detailed(request: Request):
    """
    Detailed health check.

    Checks:
    - Service liveness
    - Store connectivity

    Returns 200 if healthy, 503 if unhealthy.
    """
    health_status = check_health(service=request.app.state.service)

    return JSONResponse(
        status_code=200 if health_status.healthy else 503,
        content={
            "status": "healthy" if health_status.healthy else "unhealthy",
            "checks": health_status.checks,
            "duration_ms": health_status.duration_ms,
        },
    )


@app.get("/metrics", tags=["System"])
async def metrics():
    """
    Get application metrics.

    Returns counters and latency percentiles.
    """
    return get_metrics().get_summary()


@app.get("/api", tags=["System"])
async def api_info(request: Request):
    """API info for clients."""
    return {
        "name": "RumorMill API",
        "version": __version__,
        "storage_backend": type(request.app.state.service.store).__name__,
        "endpoints": {
            "rumors": "/api/rumors",
            "vote": "/api/vote",
            "credibility": "/api/credibility/{identity}",
            "delete": "/api/delete",
        },
    }
