"""SugarWatch FastAPI application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from sugarwatch import __version__
from sugarwatch.config import settings, validate_secret_key
from sugarwatch.database import close_database
from sugarwatch.logging_config import get_logger, setup_logging
from sugarwatch.middleware import CorrelationIdMiddleware
from sugarwatch.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from sugarwatch.routers import athlete, auth, dexcom, events, glucose, health, messages
from sugarwatch.services.dexcom_sync import DexcomPoller
from sugarwatch.services.event_bus import EventBus
from sugarwatch.services.scheduler import start_scheduler, stop_scheduler

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    validate_secret_key()
    logger.info("SugarWatch API started")

    start_scheduler(app.state.dexcom_poller)

    yield

    logger.info("Shutting down SugarWatch API...")
    stop_scheduler()
    await close_database()
    logger.info("SugarWatch API shutdown complete")


app = FastAPI(
    title="SugarWatch API",
    description="Glucose monitoring between an athlete and their parents",
    version=__version__,
    lifespan=lifespan,
)

# One bus per application; publishers and streams share it
app.state.event_bus = EventBus(max_subscribers=settings.sse_max_subscribers)
app.state.dexcom_poller = DexcomPoller(app.state.event_bus)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(CorrelationIdMiddleware)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected errors and return a generic 500 without internals."""
    logger.exception(
        "Unhandled error",
        method=request.method,
        path=request.url.path,
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(health.router)
app.include_router(auth.router)
app.include_router(athlete.router)
app.include_router(glucose.router)
app.include_router(messages.router)
app.include_router(events.router)
app.include_router(dexcom.router)
app.include_router(dexcom.webhook_router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "SugarWatch API",
        "version": __version__,
        "docs": "/docs",
    }
