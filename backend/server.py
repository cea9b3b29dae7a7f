from fastapi import FastAPI, APIRouter, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import logging
import time
import uuid
from pathlib import Path
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import traceback

# Load environment variables first
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Import configuration
from config import get_settings, get_cors_config, validate_environment

# Import logging and error tracking
from logging_config import setup_logging, get_logger, set_request_context, clear_request_context
from sentry_integration import init_sentry, capture_exception

# Import databases and routers
from database import init_db, ping_db, close_db, init_mongo, ping_mongo, close_mongo
from email_integration import get_mailer
from routers import auth_router, comments_router
from utils.errors import CoreError, ValidationError
from utils.validation_errors import from_pydantic_errors

# Get settings
settings = get_settings()

# Configure structured logging
# Use JSON format in production, plain text in development
setup_logging(
    level=settings.LOG_LEVEL,
    json_format=settings.is_production,
    service_name="dualstore-identity"
)
logger = get_logger(__name__)

# Initialize Sentry error tracking
if settings.SENTRY_DSN:
    init_sentry(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        release=settings.API_VERSION,
        traces_sample_rate=0.1 if settings.is_production else 0.0,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info("=" * 60)
    logger.info("Starting Dual-Store Identity API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug Mode: {settings.debug_enabled}")
    logger.info("=" * 60)

    # Validate environment
    env_status = validate_environment()
    if not env_status["valid"]:
        for error in env_status["errors"]:
            logger.error(f"Configuration Error: {error}")
        if settings.is_production:
            raise RuntimeError("Cannot start in production with invalid configuration")

    for warning in env_status.get("warnings", []):
        logger.warning(f"Configuration Warning: {warning}")

    # Either store may be down; requests degrade to the other one
    try:
        await init_mongo()
    except Exception as e:
        logger.error(f"Failed to initialize MongoDB: {e}")

    try:
        await init_db()
    except Exception as e:
        logger.error(f"Failed to initialize PostgreSQL: {e}")

    logger.info("Dual-Store Identity API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Dual-Store Identity API...")
    close_mongo()
    await close_db()


# Create the main app
app = FastAPI(
    title=settings.API_TITLE,
    description="""
    Identity and comments API backed by two independent stores
    (MongoDB and PostgreSQL).

    ## Features

    ### Authentication (/api/auth)
    - Signup into both stores, with per-store status reporting
    - Login by email or username, with lockout after repeated failures
    - Email verification and password reset
    - Profile read/update

    ### Comments (/api/comments)
    - Create, update and delete in every store the caller has an identity in
    - Merged, newest-first listings across both stores

    ### Status codes
    - 206: the operation was applied in one store only (`storeStatus`)
    - 429: login locked (`lockedUntil`)
    """,
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug_enabled else None,
    redoc_url="/api/redoc" if settings.debug_enabled else None,
)

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")


# ==================== HEALTH CHECK ENDPOINTS ====================

@api_router.get("/", tags=["Health"])
async def root():
    """Basic health check - returns 200 if service is running"""
    return {
        "message": "Dual-Store Identity API",
        "status": "healthy",
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
    }


async def _check_stores() -> dict:
    checks = {}

    try:
        await ping_mongo()
        checks["mongo"] = {"status": "connected", "type": "mongodb"}
    except Exception as e:
        logger.error(f"MongoDB health check failed: {e}")
        checks["mongo"] = {"status": "disconnected", "error": str(e)}

    try:
        await ping_db()
        checks["sql"] = {"status": "connected", "type": "postgresql"}
    except Exception as e:
        logger.error(f"PostgreSQL health check failed: {e}")
        checks["sql"] = {"status": "disconnected", "error": str(e)}

    return checks


@api_router.get("/health", tags=["Health"])
async def health_check():
    """
    Detailed health check for load balancers and uptime monitors.

    Returns:
    - 200: at least one store reachable ("degraded" if only one)
    - 503: both stores unavailable
    """
    checks = await _check_stores()
    connected = [name for name, check in checks.items() if check["status"] == "connected"]

    if len(connected) == len(checks):
        status = "healthy"
    elif connected:
        status = "degraded"
    else:
        status = "unhealthy"

    env_status = validate_environment()
    checks["configuration"] = {
        "status": "valid" if env_status["valid"] else "invalid",
        "warnings": len(env_status.get("warnings", [])),
        "errors": len(env_status.get("errors", []))
    }
    checks["email"] = get_mailer().client.get_status()

    health_status = {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
        "checks": checks,
    }

    if status == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status


@api_router.get("/health/ready", tags=["Health"])
async def readiness_check():
    """
    Kubernetes readiness check.
    Returns 200 only when both stores answer.
    """
    checks = await _check_stores()
    if any(check["status"] != "connected" for check in checks.values()):
        raise HTTPException(status_code=503, detail={"status": "not_ready", "checks": checks})

    return {"status": "ready", "timestamp": datetime.now(timezone.utc).isoformat()}


@api_router.get("/health/live", tags=["Health"])
async def liveness_check():
    """
    Kubernetes liveness check.
    Returns 200 if the process is running (doesn't check dependencies).
    """
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


# Include all routers
api_router.include_router(auth_router)
api_router.include_router(comments_router)

# Include the main router in the app
app.include_router(api_router)

# ==================== MIDDLEWARE ====================

# CORS middleware with production-safe configuration
cors_config = get_cors_config()
app.add_middleware(
    CORSMiddleware,
    **cors_config
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing information"""
    start_time = time.time()

    request_id = request.headers.get("X-Request-ID") or f"req-{uuid.uuid4().hex[:12]}"
    set_request_context(request_id=request_id)

    if settings.debug_enabled:
        logger.debug(f"{request.method} {request.url.path}")

    try:
        response = await call_next(request)

        process_time = time.time() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        if settings.debug_enabled or response.status_code >= 400:
            logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")

        return response
    except Exception as e:
        logger.error(f"Request failed: {str(e)}")
        raise
    finally:
        clear_request_context()


# ==================== EXCEPTION HANDLERS ====================

@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError):
    """Render the error taxonomy (including 206 partial results)"""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Re-render pydantic request errors as field-level 400s"""
    error = ValidationError("Validation failed", errors=from_pydantic_errors(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions"""
    logger.error(f"Unhandled exception: {exc}")
    if settings.debug_enabled:
        logger.error(traceback.format_exc())

    capture_exception(exc, path=request.url.path, method=request.method)

    # Don't expose internal errors in production
    if settings.is_production:
        return JSONResponse(
            status_code=500,
            content={"message": "Server error", "error": "server_error"}
        )
    else:
        return JSONResponse(
            status_code=500,
            content={
                "message": "Server error",
                "error": "server_error",
                "detail": str(exc),
                "type": type(exc).__name__,
                "traceback": traceback.format_exc() if settings.debug_enabled else None
            }
        )
