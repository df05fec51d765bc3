from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay_chat.api.middleware.request_logging import RequestLoggingMiddleware
from relay_chat.api.v1.routers import auth, health, messages, ws
from relay_chat.application.dto.principal import Principal
from relay_chat.application.exceptions import (
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from relay_chat.config import settings
from relay_chat.infrastructure.cache.ttl_cache import TTLCache
from relay_chat.infrastructure.ws.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    logger.info("Relay started")

    yield

    await app.state.registry.close_all()
    app.state.principal_cache.clear()
    logger.info("Relay stopped, all connections closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Relay Chat",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.registry = ConnectionRegistry()
    app.state.principal_cache = TTLCache[str, Principal](
        settings.AUTH_CACHE_TTL_SECONDS,
        settings.AUTH_CACHE_MAX_ENTRIES,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(AuthenticationError)
    async def _unauthenticated(_req: Request, exc: AuthenticationError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.detail})

    @app.exception_handler(PersistenceError)
    async def _persistence(_req: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Persistence failure: %s", exc.detail)
        return JSONResponse(status_code=503, content={"detail": exc.detail})
