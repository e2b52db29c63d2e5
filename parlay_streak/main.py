"""
Main FastAPI application for the parlay streak settlement service.
"""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from parlay_streak.api.dependencies import close_stats_provider
from parlay_streak.api.routes import bets, parlays, selections, users
from parlay_streak.core.config import settings
from parlay_streak.core.database import get_db, init_db
from parlay_streak.core.errors import StreakEngineError
from parlay_streak.core.logging import configure_logging, get_logger
from parlay_streak.core.middleware import CorrelationIdMiddleware
from parlay_streak.services.circuit_breaker import get_breaker_state

# Load environment variables from .env file
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


def get_rate_limit_key(request: Request) -> str:
    """
    Get the rate limit key for a request.

    Uses IP address, with fallback to X-Forwarded-For for proxied requests.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=["60/minute"],
    storage_uri=settings.REDIS_URL if settings.RATE_LIMIT_STORAGE == "redis" else "memory://",
    enabled=settings.RATE_LIMIT_ENABLED,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    missing = settings.validate_required_secrets()
    if missing:
        logger.warning(f"Missing required settings: {', '.join(missing)}")
    init_db()
    logger.info("Application started")

    yield

    close_stats_provider()
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Bet resolution, parlay settlement and streak tracking",
    lifespan=lifespan,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Correlation IDs must wrap everything else
app.add_middleware(CorrelationIdMiddleware)

instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# ERROR HANDLING
# ============================================================================

@app.exception_handler(StreakEngineError)
async def streak_engine_error_handler(request: Request, exc: StreakEngineError):
    """Render domain errors as ``{"success": false, "error": {...}}``."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}", extra={"path": request.url.path, "details": exc.details})
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": {"code": "VALIDATION_ERROR", "message": "Invalid request", "errors": errors},
        },
    )


# ============================================================================
# ROUTES
# ============================================================================

app.include_router(bets.router, prefix="/api/v1")
app.include_router(selections.router, prefix="/api/v1")
app.include_router(parlays.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")


@app.get("/")
@limiter.limit("60/minute")
async def root(request: Request):
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "api_version": "v1",
            "bets": "/api/v1/bets",
            "selections": "/api/v1/selections",
            "parlays": "/api/v1/parlays",
            "users": "/api/v1/users",
            "docs": "/docs",
            "health": "/health",
        },
    }


def _health_payload(db: Session) -> dict:
    components = {}
    healthy = True

    try:
        db.execute(text("SELECT 1"))
        components["database"] = {"status": "connected"}
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        components["database"] = {"status": "unhealthy", "error": str(e)}
        healthy = False

    breaker_state = get_breaker_state()
    components["stats_provider"] = {"circuit": breaker_state}

    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.APP_VERSION,
        "components": components,
    }


@app.get("/health")
@limiter.limit("120/minute")
def health_check(request: Request, db: Session = Depends(get_db)):
    """Health check with database connectivity and stats provider breaker state."""
    return _health_payload(db)


@app.get("/api/v1/health")
@limiter.limit("120/minute")
def api_health(request: Request, db: Session = Depends(get_db)):
    return _health_payload(db)
