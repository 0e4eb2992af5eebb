from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.api.v1.router import api_router
from app.core.exceptions import (
    ConflictError,
    DomainError,
    NotFoundError,
    OrderNotEditableError,
    StateError,
    StockOperationFailed,
    ValidationError,
)
from app.core.logging_config import bind_log_context, clear_log_context, configure_logging
from app.database import init_db, async_session_factory


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Configure logging
    - Create missing tables (Alembic owns the schema in deployed databases)
    """
    # Startup
    configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    yield

    # Shutdown
    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Orders", "description": "Order lifecycle, totals, tax and stock side effects"},
    {"name": "Stock Transfers", "description": "Multi-SKU inter-warehouse transfers"},
    {"name": "Health", "description": "Liveness and database connectivity"},
]

FULL_API_DESCRIPTION = """
## LPG Distribution API

Orders and warehouse stock for LPG cylinder distribution.

### Core Modules

| Module | Description |
|--------|-------------|
| **Orders** | Draft to invoiced workflow with stock reservation |
| **Stock Transfers** | Validated warehouse-to-warehouse cylinder movements |

### Identity

Authentication happens upstream. Pass the acting user in the `X-User-Id` header.

### Error Codes

| Code | Description |
|------|-------------|
| 400 | Bad Request - Validation failed |
| 404 | Not Found - Resource doesn't exist |
| 409 | Conflict - Invalid status transition or concurrent change |
| 422 | Unprocessable Entity - Order not editable / malformed request |
| 502 | Bad Gateway - Stock update failed |

Error bodies: `{"error": ..., "code": ..., "errors": [...]}`.
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=FULL_API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Tag every log record of the request with its request id."""
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    bind_log_context(request_id=request_id)
    try:
        response = await call_next(request)
    finally:
        clear_log_context()
    response.headers["X-Request-ID"] = request_id
    return response


# Include API router
app.include_router(api_router)


def _status_for(exc: DomainError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, OrderNotEditableError):
        return 422
    if isinstance(exc, (StateError, ConflictError)):
        return 409
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, StockOperationFailed):
        return 502
    return 400


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    """Map business errors to HTTP responses."""
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except SQLAlchemyError as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
