"""
FastAPI Endpoints for Short Links

Endpoints only handle:
- Gates (same-origin check, rate limiting) declared as route dependencies
- Request body parsing into the per-endpoint schema
- Translating service results into the public JSON contract

All business logic is in services (LinkService, RedirectService).
Errors are EdgeLinkError subclasses rendered by the handler in main.py;
anything unexpected is logged and reported as a generic server error.
"""

import logging

from fastapi import APIRouter, Depends, Request
from starlette.responses import Response

from edgelink.api.dependencies import (
    RateLimit,
    get_link_service,
    get_redirect_service,
    get_settings,
    read_json_body,
    require_same_origin,
)
from edgelink.api.schemas import (
    ResolveResponse,
    ShortenRequest,
    ShortenResponse,
    UpdateRequest,
    UpdateResponse,
    UsageResponse,
)
from edgelink.core.exceptions import EdgeLinkError, InternalServiceError, ShortCodeNotFoundError
from edgelink.core.setting import Settings
from edgelink.services.link_service import LinkService
from edgelink.services.redirect_service import RedirectService

logger = logging.getLogger(__name__)

router = APIRouter()

SHORTEN_HINT = 'Check that request body is valid JSON with { "url": "..." }'
UPDATE_HINT = 'Check that request body is valid JSON with { "code": "...", "url": "..." }'


@router.get(
    "/api/shorten",
    response_model=UsageResponse,
    summary="Short link API diagnostic",
)
async def shorten_usage(settings: Settings = Depends(get_settings)) -> UsageResponse:
    """No-op diagnostic so the endpoint can be checked from a browser."""
    return UsageResponse(
        status="ok",
        message="Short URL API is working. Use POST to create short URLs.",
        usage=f'POST /api/shorten with {{ "url": "{settings.APP_ORIGIN}/#..." }}',
    )


@router.post(
    "/api/shorten",
    response_model=ShortenResponse,
    summary="Create a short URL",
    description="Returns the existing code when the URL was shortened before",
    dependencies=[Depends(require_same_origin), Depends(RateLimit("create"))],
)
async def create_short_url(
    request: Request,
    link_service: LinkService = Depends(get_link_service),
    settings: Settings = Depends(get_settings),
) -> ShortenResponse:
    body = await read_json_body(
        request,
        ShortenRequest,
        max_bytes=settings.MAX_URL_LENGTH + 1024,
        hint=SHORTEN_HINT,
    )
    try:
        result = await link_service.create(body.url)
    except EdgeLinkError:
        raise
    except Exception as e:
        logger.error(f"Failed to create short URL: {e}", exc_info=True)
        raise InternalServiceError(hint=SHORTEN_HINT) from e

    return ShortenResponse(
        short_url=settings.short_url_for(result.code),
        code=result.code,
        existing=result.existing,
    )


@router.put(
    "/api/shorten",
    response_model=UpdateResponse,
    summary="Repoint a short URL",
    dependencies=[Depends(require_same_origin), Depends(RateLimit("update"))],
)
async def update_short_url(
    request: Request,
    link_service: LinkService = Depends(get_link_service),
    settings: Settings = Depends(get_settings),
) -> UpdateResponse:
    """
    Point an existing code at a new application URL.

    Any holder of a code may update it; short links carry no ownership.
    """
    body = await read_json_body(
        request,
        UpdateRequest,
        max_bytes=settings.MAX_URL_LENGTH + 1024,
        hint=UPDATE_HINT,
    )
    try:
        result = await link_service.update(body.code, body.url)
    except EdgeLinkError:
        raise
    except Exception as e:
        logger.error(f"Failed to update short URL {body.code}: {e}", exc_info=True)
        raise InternalServiceError() from e

    return UpdateResponse(
        short_url=settings.short_url_for(result.code),
        code=result.code,
        updated=result.updated,
    )


@router.get(
    "/api/resolve/{short_code}",
    response_model=ResolveResponse,
    summary="Resolve a short code",
)
async def resolve_short_code(
    short_code: str,
    link_service: LinkService = Depends(get_link_service),
) -> ResolveResponse:
    """
    Raises:
        InvalidShortCodeError 400: If short code format is invalid
        ShortCodeNotFoundError 404: If short code not found
    """
    try:
        code = link_service.validate_code(short_code)
        url = await link_service.resolve(code)
    except EdgeLinkError:
        raise
    except Exception as e:
        logger.error(f"Failed to resolve {short_code}: {e}", exc_info=True)
        raise InternalServiceError() from e

    if url is None:
        raise ShortCodeNotFoundError(code)
    return ResolveResponse(url=url, code=code)


@router.get(
    "/s/{short_code:path}",
    summary="Open a short URL",
    description="Redirects API clients; serves the application in place for browser navigations",
    response_class=Response,
)
async def open_short_url(
    short_code: str,
    request: Request,
    redirect_service: RedirectService = Depends(get_redirect_service),
) -> Response:
    return await redirect_service.redirect_or_serve(short_code, request)


@router.get("/api/health", tags=["Health"])
async def health_check():
    """Liveness probe for the edge handler."""
    return {"status": "healthy"}
