"""Main application entry point."""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import redis
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.config import (
    API_VERSION,
    HOST,
    OTEL_ENABLED,
    PORT,
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_PER_MINUTE_IP,
    RATE_LIMIT_PER_MINUTE_USER,
    REDIS_URL,
    SEED_DATA,
)
from storefront.database import engine, init_db
from storefront.errors import StorefrontError
from storefront.logging_config import setup_logging
from storefront.monitoring import init_profiling
from storefront.redis_rate_limiter import RedisRateLimiter
from storefront.routers import admin, auth, catalog, orders, reports
from storefront.schemas import HealthResponse

logger = logging.getLogger(__name__)


def _error_body(message: str) -> dict:
    return {"success": False, "message": message}


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", extra={"endpoint": request.url.path, "error_type": type(exc).__name__})
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"][1:])
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return JSONResponse(status_code=400, content=_error_body("; ".join(messages)))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"endpoint": request.url.path})
    return JSONResponse(status_code=500, content=_error_body("Server Error"))


def create_app(
    redis_client: Optional[redis.Redis] = None,
    rate_limit: bool = RATE_LIMIT_ENABLED,
    init_database: bool = True
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        redis_client: Redis connection for the rate limiter; created from
            ``REDIS_URL`` when rate limiting is on and none is given
        rate_limit: Install the Redis rate limiting middleware
        init_database: Create tables (and seed, if configured) on startup

    Returns:
        Configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting application...")

        if init_database:
            init_db(seed=SEED_DATA)

        init_profiling()

        logger.info("Application startup complete")

        yield

        logger.info("Shutting down application...")
        if redis_client is not None:
            redis_client.close()
        logger.info("Application shutdown complete")

    if rate_limit and redis_client is None:
        redis_client = redis.from_url(REDIS_URL, decode_responses=True)

    app = FastAPI(
        title="Storefront API",
        version=API_VERSION,
        lifespan=lifespan
    )

    if rate_limit:
        app.add_middleware(
            RedisRateLimiter,
            redis_client=redis_client,
            requests_per_minute_ip=RATE_LIMIT_PER_MINUTE_IP,
            requests_per_minute_user=RATE_LIMIT_PER_MINUTE_USER
        )
        app.state.redis_client = redis_client

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    if OTEL_ENABLED:
        FastAPIInstrumentor.instrument_app(app)
        SQLAlchemyInstrumentor().instrument(engine=engine)
        if rate_limit:
            RedisInstrumentor().instrument()

    @app.get("/api/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint."""
        return {
            "status": "OK",
            "message": "Storefront API is running",
            "timestamp": datetime.now(timezone.utc),
        }

    app.include_router(auth.router)
    app.include_router(catalog.router)
    app.include_router(orders.router)
    app.include_router(admin.router)
    app.include_router(reports.router)

    return app


def run() -> None:
    """Console entry point."""
    setup_logging()
    uvicorn.run(create_app(), host=HOST, port=PORT)


if __name__ == "__main__":
    run()
