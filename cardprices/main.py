from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from cardprices.core.config import settings
from cardprices.core.database import close_db, init_db
from cardprices.core.logging import setup_logging
from cardprices.core.rate_limit import RateLimitExceeded, rate_limit_exceeded_handler
from cardprices.core.redis import close_redis, init_redis
from cardprices.routers import api_router
from cardprices.services.scheduler_service import init_scheduler, shutdown_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    setup_logging()
    await init_db()
    await init_redis()

    # Initialize scheduler
    if settings.scheduler_enabled:
        await init_scheduler()
        logger.info("Price pipeline scheduler initialized")

    yield

    # Shutdown
    if settings.scheduler_enabled:
        await shutdown_scheduler()
        logger.info("Price pipeline scheduler shut down")

    await close_db()
    await close_redis()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Card Prices - price ingestion, retention and exchange rate cache",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


class UnhandledErrorMiddleware(BaseHTTPMiddleware):
    """Turn uncaught errors into 500 {error} inside the CORS layer"""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
            return JSONResponse(status_code=500, content={"error": str(exc)})


# Must be added before CORSMiddleware, the last added middleware is outermost
app.add_middleware(UnhandledErrorMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "api": settings.api_v1_prefix,
    }
