"""
CarePath Backend API Server

FastAPI application for structured treatment programs: catalog authoring,
patient enrollment, module progress and assessment grading.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from datetime import datetime, timezone
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
import time

from carepath.api.routes import assessments, dashboard, enrollments, modules, patients, programs, progress
from carepath.database import close_redis, get_db, init_redis
from carepath.errors import CarePathError, ValidationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting CarePath API server...")
    redis = await init_redis()
    logger.info(f"Cache invalidation signals {'enabled' if redis else 'disabled'}")

    yield

    # Shutdown
    logger.info("Shutting down CarePath API server...")
    await close_redis()


# Create FastAPI application
app = FastAPI(
    title="CarePath API",
    description="Structured treatment programs for patient care",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# CORS middleware for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing"""
    start_time = time.time()

    # Process request
    response = await call_next(request)

    # Calculate duration
    duration_ms = (time.time() - start_time) * 1000

    # Log request
    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Duration: {duration_ms:.2f}ms"
    )

    return response


# Domain error handler
@app.exception_handler(CarePathError)
async def carepath_exception_handler(request: Request, exc: CarePathError):
    """Render service errors as the failure envelope"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all uncaught exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {"message": "An internal server error occurred"}
        }
    )


# HTTP error handler (unknown routes, wrong methods)
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render framework HTTP errors as the failure envelope"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": {"message": exc.detail}},
        headers=getattr(exc, "headers", None),
    )


# Validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors as field-level ValidationError envelopes"""
    details = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "request"
        message = "Required" if error.get("type") == "missing" else error.get("msg", "Invalid value")
        details.setdefault(field, []).append(message)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ValidationError(details=details).to_envelope()
    )


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns server status, database reachability and version information.
    """
    database = "ok"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Health check could not reach the database: {e}")
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "service": "carepath-api"
    }


# Include routers
app.include_router(programs.router)
app.include_router(modules.router)
app.include_router(assessments.router)
app.include_router(patients.router)
app.include_router(enrollments.router)
app.include_router(progress.router)
app.include_router(dashboard.router)


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """API root endpoint"""
    return {
        "name": "CarePath API",
        "version": VERSION,
        "description": "Structured treatment programs for patient care",
        "docs": "/api/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
