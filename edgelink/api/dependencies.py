"""
Request Dependencies

FastAPI dependencies shared by the routers:
- access to the settings and collaborators held on app.state
- the same-origin gate and per-bucket rate limiting
- bounded JSON body parsing into the per-endpoint request models

Gates are declared as route dependencies, so they run before the store is
touched and before the body is read.
"""

import json
from typing import Optional, Type, TypeVar

from fastapi import Depends, Request
from pydantic import BaseModel, ValidationError

from edgelink.core.exceptions import (
    ForbiddenOriginError,
    InvalidRequestError,
    PayloadTooLargeError,
    RateLimitedError,
    StoreNotConfiguredError,
)
from edgelink.core.origin import get_client_ip, request_looks_same_origin
from edgelink.core.setting import Settings
from edgelink.db.interface import KeyValueStore
from edgelink.services.link_service import LinkService
from edgelink.services.redirect_service import RedirectService
from edgelink.services.telemetry_service import TelemetryAggregator

M = TypeVar("M", bound=BaseModel)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_link_store(request: Request) -> KeyValueStore:
    store = getattr(request.app.state, "link_store", None)
    if store is None:
        raise StoreNotConfiguredError("LINKS_NAMESPACE")
    return store


def get_telemetry_store(request: Request) -> KeyValueStore:
    store = getattr(request.app.state, "telemetry_store", None)
    if store is None:
        raise StoreNotConfiguredError("TELEMETRY_NAMESPACE")
    return store


def get_link_service(
    request: Request,
    store: KeyValueStore = Depends(get_link_store),
    settings: Settings = Depends(get_settings),
) -> LinkService:
    return LinkService(
        store,
        settings,
        generator=request.app.state.code_generator,
        cache=getattr(request.app.state, "edge_cache", None),
    )


def get_redirect_service(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> RedirectService:
    # Visits never fail: without a link store every code is unknown
    store = getattr(request.app.state, "link_store", None)
    cache = getattr(request.app.state, "edge_cache", None)
    link_service = None
    if store is not None:
        link_service = LinkService(store, settings, generator=request.app.state.code_generator, cache=cache)
    return RedirectService(
        link_service,
        settings,
        cache=cache,
        origin=getattr(request.app.state, "origin_proxy", None),
    )


def get_telemetry_aggregator(
    store: KeyValueStore = Depends(get_telemetry_store),
    settings: Settings = Depends(get_settings),
) -> TelemetryAggregator:
    return TelemetryAggregator(store, settings)


def require_same_origin(request: Request, settings: Settings = Depends(get_settings)) -> None:
    if not request_looks_same_origin(request, settings):
        raise ForbiddenOriginError(hint="Requests must come from the application's own pages")


class RateLimit:
    """
    Dependency that counts the request against a rate limit bucket.

    Usage:
        @router.post("/path", dependencies=[Depends(RateLimit("create"))])
    """

    def __init__(self, bucket: str):
        self.bucket = bucket

    def __call__(self, request: Request) -> None:
        limiter = request.app.state.rate_limiter
        if not limiter.allow(self.bucket, get_client_ip(request)):
            raise RateLimitedError(self.bucket)


async def read_json_body(
    request: Request,
    model: Type[M],
    max_bytes: Optional[int] = None,
    hint: Optional[str] = None,
) -> M:
    """
    Read, size-check, parse and validate a JSON request body.

    Raises:
        PayloadTooLargeError: If the body exceeds max_bytes
        InvalidRequestError: If the body is not JSON or does not fit the model
    """
    declared_length = request.headers.get("Content-Length", "")
    if max_bytes is not None and declared_length.isdigit() and int(declared_length) > max_bytes:
        raise PayloadTooLargeError(hint=f"Body must be at most {max_bytes} bytes")

    body = await request.body()
    if max_bytes is not None and len(body) > max_bytes:
        raise PayloadTooLargeError(hint=f"Body must be at most {max_bytes} bytes")

    try:
        data = json.loads(body)
    except (ValueError, RecursionError):
        # Malformed, or nested deeper than the decoder can follow
        raise InvalidRequestError("Invalid JSON", hint=hint)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        first_error = e.errors()[0]
        location = ".".join(str(part) for part in first_error.get("loc", ())) or "body"
        raise InvalidRequestError(
            f"Invalid request body: {location}: {first_error.get('msg', 'invalid')}",
            hint=hint,
        )
