"""
Redirect Service

This service handles GET /s/<code>.

Behavior:
- Malformed or unknown code: redirect to the application's home page
- Browser navigation (Accept includes text/html): serve the application's
  markup with the resolved URL embedded, so the client restores state while
  the address bar keeps the short path; plain redirect if the markup can't
  be fetched
- Other clients: answer from the edge cache when possible, otherwise build a
  cacheable 302 and write it to the cache in the background
"""

import logging
from typing import Optional

from fastapi import Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.responses import Response

from edgelink.core.exceptions import StoreUnavailableError
from edgelink.core.setting import Settings
from edgelink.core.validators import sanitize_short_code
from edgelink.services.background_tasks import cache_response_background, spawn_background
from edgelink.services.edge_cache import CachedResponse, ResponseCache
from edgelink.services.link_service import LinkService
from edgelink.services.origin_proxy import OriginProxy, embed_link_target
from edgelink.services.retry import with_retry

logger = logging.getLogger(__name__)


def is_browser_navigation(request: Request) -> bool:
    return "text/html" in request.headers.get("Accept", "").lower()


class RedirectService:
    """
    Service for handling short link visits.

    Args:
        link_service: Used to resolve codes (None when no link store is bound)
        settings: Application settings
        cache: Edge cache for redirect responses (optional)
        origin: Upstream client for the application markup (optional)
    """

    def __init__(
        self,
        link_service: Optional[LinkService],
        settings: Settings,
        cache: Optional[ResponseCache] = None,
        origin: Optional[OriginProxy] = None,
    ):
        self.link_service = link_service
        self.settings = settings
        self.cache = cache
        self.origin = origin

    def _home(self) -> RedirectResponse:
        return RedirectResponse(
            self.settings.home_url,
            status_code=status.HTTP_302_FOUND,
            headers={"Cache-Control": "no-store", "Vary": "Accept"},
        )

    def _redirect(self, target: str) -> RedirectResponse:
        return RedirectResponse(
            target,
            status_code=status.HTTP_302_FOUND,
            headers={
                "Cache-Control": f"public, max-age={self.settings.REDIRECT_CACHE_TTL}",
                "Vary": "Accept",
            },
        )

    async def _resolve(self, code: str) -> Optional[str]:
        if self.link_service is None:
            logger.error("No link store bound, sending visitor home")
            return None
        try:
            return await self.link_service.resolve(code)
        except StoreUnavailableError:
            # Visitors land on the home page rather than an error page
            logger.error(f"Could not resolve {code}, sending visitor home")
            return None

    async def _cached(self, key: str) -> Optional[Response]:
        if self.cache is None:
            return None
        try:
            return await with_retry(
                lambda: self.cache.match(key),
                f"cache match {key}",
                attempts=self.settings.STORE_RETRY_ATTEMPTS,
                delay=self.settings.STORE_RETRY_DELAY,
            )
        except StoreUnavailableError:
            return None

    async def _serve_markup(self, target: str) -> Response:
        markup = await self.origin.fetch_app_markup() if self.origin else None
        if markup is None:
            return self._redirect(target)
        return HTMLResponse(
            embed_link_target(markup, target),
            headers={"Cache-Control": "private, no-store", "Vary": "Accept"},
        )

    async def redirect_or_serve(self, code: str, request: Request) -> Response:
        """
        Answer a visit to /s/<code>.

        Args:
            code: Code taken from the path
            request: Incoming request (its Accept header selects the branch)

        Returns:
            A redirect, the application markup, or a cached redirect
        """
        code = sanitize_short_code(code)
        if not code:
            return self._home()

        if is_browser_navigation(request):
            target = await self._resolve(code)
            if target is None:
                return self._home()
            return await self._serve_markup(target)

        cache_key = self.settings.short_url_for(code)
        cached = await self._cached(cache_key)
        if cached is not None:
            return cached

        target = await self._resolve(code)
        if target is None:
            return self._home()

        response = self._redirect(target)
        if self.cache is not None:
            snapshot = CachedResponse.from_response(response).to_response()
            spawn_background(
                cache_response_background(
                    self.cache,
                    cache_key,
                    snapshot,
                    self.settings.REDIRECT_CACHE_TTL,
                    attempts=self.settings.STORE_RETRY_ATTEMPTS,
                    delay=self.settings.STORE_RETRY_DELAY,
                ),
                description=f"cache {cache_key}",
            )
        return response
