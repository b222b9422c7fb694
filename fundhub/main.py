"""
Main FastAPI application for the FundHub backend.
Handles CORS, request logging middleware, error mapping, lifespan events,
and router registration.
"""
import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fundhub.config import settings
from fundhub.database import close_db, init_db
from fundhub.errors import AppError
from fundhub.routers import (
    admin_documents,
    admin_funds,
    admin_templates,
    funds,
    health,
    profiles,
    storage,
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting FundHub backend (brand=%s) …", settings.BRAND)
    logger.info("=" * 60)

    # 1 — Database (required; raises on failure)
    try:
        await init_db()
        logger.info("✓ Database connection OK")
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise

    # 2 — Object storage directory
    os.makedirs(settings.STORAGE_DIR, exist_ok=True)
    logger.info("✓ Storage directory: %s", os.path.abspath(settings.STORAGE_DIR))

    # 3 — Email (optional)
    if settings.RESEND_API_KEY:
        logger.info("✓ Email sending enabled (from %s)", settings.EMAIL_FROM)
    else:
        logger.warning("⚠ RESEND_API_KEY not set — email notifications are disabled")

    logger.info("=" * 60)
    logger.info("  FundHub backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health/", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down FundHub backend …")
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="FundHub API",
    description=(
        "**FundHub** — venture fund capital-commitment administration.\n\n"
        "Manage funds and members, version document templates, and generate "
        "versioned LPA, consent form and member list PDFs.\n\n"
        "Identity is taken from the `X-User-Id` / `X-User-Email` headers set "
        "by the upstream auth proxy.\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Document-Id", "X-Version-Number"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip health-check polling
    if not request.url.path.startswith("/api/health") and request.url.path != "/":
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Map domain errors to their HTTP status with an ``{"error": ...}`` body."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400 with a readable message."""
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "; ".join(messages) or "Invalid request."},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,          prefix="/api/health",      tags=["Health"])
app.include_router(admin_funds.router,     prefix="/api/admin",       tags=["Admin: Funds"])
app.include_router(
    admin_documents.router,
    prefix="/api/admin/funds/{fund_id}/generated-documents",
    tags=["Admin: Documents"],
)
app.include_router(admin_templates.router, prefix="/api/admin/templates", tags=["Admin: Templates"])
app.include_router(funds.router,           prefix="/api/funds",       tags=["Funds"])
app.include_router(profiles.router,        prefix="/api/profiles",    tags=["Profiles"])
app.include_router(storage.router,         prefix="/api/storage",     tags=["Storage"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "FundHub API",
        "version": "0.1.0",
        "brand": settings.BRAND,
        "docs": "/docs",
        "health": "/api/health/",
        "endpoints": {
            "admin_funds": "/api/admin/funds",
            "admin_templates": "/api/admin/templates",
            "funds": "/api/funds",
            "profiles": "/api/profiles",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "fundhub.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
