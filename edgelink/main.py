"""
FastAPI Application Entry Point

This module builds the edge handler and configures:
- API routes (short links, telemetry) and the origin passthrough
- Middleware (access logging, security headers, CORS guard)
- Collaborators held on app.state: settings, stores, edge cache, rate
  limiter, code generator, upstream client

Design Decisions:
- create_app() takes every collaborator as an optional argument, so tests
  can inject in-memory stores, fake clocks and mocked upstreams
- Collaborators not injected are built from Settings during lifespan startup
- A missing store binding leaves the store unset; endpoints that need it
  answer with a configuration error
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from edgelink.api import endpoints, telemetry
from edgelink.core.exceptions import EdgeLinkError, InternalServiceError
from edgelink.core.logging_config import setup_logging
from edgelink.core.rate_limit import FixedWindowRateLimiter
from edgelink.core.setting import Settings, settings as default_settings
from edgelink.db.interface import KeyValueStore
from edgelink.db.session import create_engine_and_sessions, init_models
from edgelink.db.store import MemoryKeyValueStore, SQLKeyValueStore
from edgelink.middleware.cors import CorsMiddleware
from edgelink.middleware.logging import add_logging_middleware
from edgelink.middleware.security_headers import SecurityHeadersMiddleware
from edgelink.services.background_tasks import drain_background_tasks
from edgelink.services.edge_cache import MemoryResponseCache, RedisResponseCache, ResponseCache
from edgelink.services.origin_proxy import OriginProxy
from edgelink.services.shortcode import ShortCodeGenerator

logger = logging.getLogger(__name__)

PASSTHROUGH_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


async def _open_stores(app: FastAPI, settings: Settings) -> None:
    """Bind the link and telemetry namespaces that are configured."""
    namespaces = {
        "link_store": settings.LINKS_NAMESPACE,
        "telemetry_store": settings.TELEMETRY_NAMESPACE,
    }

    if settings.DATABASE_URL.startswith("memory://"):
        for attribute, namespace in namespaces.items():
            if getattr(app.state, attribute, None) is None and namespace:
                setattr(app.state, attribute, MemoryKeyValueStore())
        return

    missing = [
        attribute for attribute, namespace in namespaces.items()
        if namespace and getattr(app.state, attribute, None) is None
    ]
    if not missing:
        return

    engine, session_maker, adapter = create_engine_and_sessions(settings.DATABASE_URL)
    await init_models(engine)
    app.state.engine = engine
    for attribute in missing:
        setattr(app.state, attribute, SQLKeyValueStore(session_maker, adapter, namespaces[attribute]))


def _warn_unbound(app: FastAPI) -> None:
    for attribute, variable in (("link_store", "LINKS_NAMESPACE"), ("telemetry_store", "TELEMETRY_NAMESPACE")):
        if getattr(app.state, attribute, None) is None:
            logger.warning(f"{variable} is not bound; its endpoints will report a configuration error")


def create_app(
    settings: Optional[Settings] = None,
    *,
    link_store: Optional[KeyValueStore] = None,
    telemetry_store: Optional[KeyValueStore] = None,
    edge_cache: Optional[ResponseCache] = None,
    rate_limiter: Optional[FixedWindowRateLimiter] = None,
    code_generator: Optional[ShortCodeGenerator] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Create and configure the edge handler.

    Args:
        settings: Configuration (defaults to the environment-derived settings)
        link_store: Links namespace; built from DATABASE_URL when omitted
        telemetry_store: Telemetry namespace; built from DATABASE_URL when omitted
        edge_cache: Redirect cache; in-process or Redis (EDGE_CACHE_URL) when omitted
        rate_limiter: Rate limiter; built from RATE_LIMITS when omitted
        code_generator: Short code generator
        http_client: Client for the upstream origin; created and owned when omitted

    Returns:
        Configured FastAPI app
    """
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await _open_stores(app, settings)
        _warn_unbound(app)

        if app.state.edge_cache is None:
            app.state.edge_cache = (
                RedisResponseCache.from_url(settings.EDGE_CACHE_URL)
                if settings.EDGE_CACHE_URL
                else MemoryResponseCache()
            )

        owned_client = None
        if http_client is None:
            owned_client = httpx.AsyncClient(timeout=settings.UPSTREAM_TIMEOUT)
        app.state.origin_proxy = OriginProxy(http_client or owned_client, settings.upstream_url)

        logger.info(f"Edge handler ready for {settings.APP_ORIGIN}")
        try:
            yield
        finally:
            await drain_background_tasks()
            if edge_cache is None:
                await app.state.edge_cache.close()
            if owned_client is not None:
                await owned_client.aclose()
            engine = getattr(app.state, "engine", None)
            if engine is not None:
                await engine.dispose()

    app = FastAPI(
        title="Edge Short Link Service",
        description="Short links for application-state URLs and anonymous usage counters",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.link_store = link_store if settings.LINKS_NAMESPACE else None
    app.state.telemetry_store = telemetry_store if settings.TELEMETRY_NAMESPACE else None
    app.state.edge_cache = edge_cache
    app.state.rate_limiter = rate_limiter or FixedWindowRateLimiter(
        settings.RATE_LIMITS,
        prune_threshold=settings.RATE_LIMIT_PRUNE_THRESHOLD,
    )
    app.state.code_generator = code_generator or ShortCodeGenerator()

    @app.exception_handler(EdgeLinkError)
    async def edgelink_error_handler(request: Request, exc: EdgeLinkError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        error = InternalServiceError()
        return JSONResponse(error.to_payload(), status_code=error.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse({"error": "Invalid request"}, status_code=400)

    # Last added runs first: logging -> security headers -> CORS -> routes
    app.add_middleware(CorsMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    add_logging_middleware(app)

    app.include_router(endpoints.router, tags=["Short Links"])
    app.include_router(telemetry.router)

    # Registered last so every route above matches first
    @app.api_route("/{full_path:path}", methods=PASSTHROUGH_METHODS, include_in_schema=False)
    async def passthrough(full_path: str, request: Request):
        return await request.app.state.origin_proxy.forward(request)

    return app


app = create_app()
