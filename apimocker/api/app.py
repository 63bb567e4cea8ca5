"""
FastAPI application factory for apimocker.

This module creates the FastAPI app with:
- CORS configuration
- OData-Version headers on every response
- OData error bodies for duplicate ids and unexpected failures
- Tenant data persistence on shutdown (when configured)
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import ServerConfig
from ..errors import DuplicateEntityError
from ..query.engine import QueryEngine
from ..query.formatter import format_error
from ..store.resource_store import ResourceStore
from .routes import router
from .settings import Settings

logger = logging.getLogger(__name__)

ODATA_HEADERS = {"OData-Version": "4.0", "OData-MaxVersion": "4.0"}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Save tenant data on shutdown when configured."""
    yield

    config: ServerConfig = app.state.config
    if not config.store.save_on_shutdown:
        return
    store: ResourceStore = app.state.store
    for tenant in store.tenants():
        saved = store.save_directory(tenant, Path(config.store.data_dir) / tenant)
        logger.info(f"Saved {saved} collection(s) for tenant {tenant}")


def create_app(
    store: ResourceStore | None = None,
    engine: QueryEngine | None = None,
    settings: Settings | None = None,
    config: ServerConfig | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Resource store to serve (a fresh one by default)
        engine: Query engine bound to the store
        settings: HTTP settings (loaded from environment by default)
        config: Server configuration used for shutdown persistence

    Returns:
        Configured FastAPI app
    """
    config = config or ServerConfig()
    settings = settings or Settings()
    store = store or ResourceStore(timestamps=config.store.timestamps)
    engine = engine or QueryEngine(store)

    app = FastAPI(
        title="apimocker",
        description="OData-style mock API server over in-memory JSON collections.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.engine = engine
    app.state.settings = settings
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_odata_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(ODATA_HEADERS)
        return response

    @app.exception_handler(DuplicateEntityError)
    async def duplicate_entity(request: Request, exc: DuplicateEntityError) -> JSONResponse:
        return JSONResponse(status_code=409, content=format_error("Conflict", exc.message, exc.details))

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=format_error("InternalServerError", str(exc)),
            headers=ODATA_HEADERS,
        )

    app.include_router(router, prefix="/{tenant}" + settings.base_path.rstrip("/"))

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "apimocker", "tenants": store.tenants()}

    return app
