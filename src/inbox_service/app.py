from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from inbox_service.api.middleware.correlation_id import CorrelationIdMiddleware
from inbox_service.api.v1.routers import health, inbox, operator_messages, ws
from inbox_service.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from inbox_service.config import settings
from inbox_service.infrastructure.ws.hub import RealtimeHub
from inbox_service.workers.account_events_consumer import build_consumer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    consumer = None
    if settings.ACCOUNT_EVENTS_CONSUMER_ENABLED:
        consumer = build_consumer(app.state.redis)
        await consumer.start()

    yield

    await app.state.hub.registry.close_all()
    if consumer is not None:
        await consumer.stop()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Report Inbox Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.hub = RealtimeHub.create(send_queue_size=settings.WS_SEND_QUEUE_SIZE)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(inbox.router)
    app.include_router(operator_messages.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        logger.warning("Forbidden: %s", exc.detail)
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": exc.detail})

    @app.exception_handler(StoreError)
    async def _store(_req: Request, exc: StoreError) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"detail": exc.detail, "retryable": True},
            headers={"Retry-After": "1"},
        )
