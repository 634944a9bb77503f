from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskhub.api.middleware.correlation_id import CorrelationIdMiddleware
from taskhub.api.middleware.metrics import RequestTimingMiddleware
from taskhub.api.v1.routers import health, metrics, users
from taskhub.application.exceptions import (
    ConflictError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from taskhub.config import settings
from taskhub.infrastructure.bus.redis_streams import RedisStreamBroker, RedisStreamConsumer
from taskhub.workers.outbox_publisher import build_periodic_tasks, build_publisher
from taskhub.workers.periodic import PeriodicTask
from taskhub.workers.user_events_consumer import build_consumers, build_existence_cache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")
    broker = RedisStreamBroker(
        app.state.redis,
        partitions=settings.BROKER_PARTITIONS,
        maxlen=settings.BROKER_STREAM_MAXLEN,
    )

    periodic: list[PeriodicTask] = []
    if settings.OUTBOX_PUBLISHER_ENABLED:
        periodic = build_periodic_tasks(build_publisher(broker))
        for task in periodic:
            task.start()

    http: httpx.AsyncClient | None = None
    consumers: list[RedisStreamConsumer] = []
    if app.state.service_name == "tasks":
        http = httpx.AsyncClient(
            base_url=settings.USERS_SERVICE_URL,
            timeout=settings.USERS_SERVICE_TIMEOUT,
        )
        app.state.existence_cache = build_existence_cache(http)
        if settings.CONSUMER_ENABLED:
            consumers = build_consumers(app.state.redis, broker, app.state.existence_cache)
            for consumer in consumers:
                await consumer.start()

    yield

    for consumer in consumers:
        await consumer.stop()
    for task in periodic:
        await task.stop()
    if http is not None:
        await http.aclose()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def _base_app(service_name: str, title: str) -> FastAPI:
    app = FastAPI(
        title=title,
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.service_name = service_name

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)
    app.include_router(health.router)
    app.include_router(metrics.router)
    return app


def create_users_app() -> FastAPI:
    app = _base_app("users", "TaskHub Users Service")
    app.include_router(users.router)
    return app


def create_tasks_app() -> FastAPI:
    return _base_app("tasks", "TaskHub Tasks Service")


def create_app() -> FastAPI:
    if settings.SERVICE_NAME == "users":
        return create_users_app()
    return create_tasks_app()


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ConflictError)
    async def _conflict(_req: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(ServiceUnavailableError)
    async def _unavailable(_req: Request, exc: ServiceUnavailableError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": exc.detail})
