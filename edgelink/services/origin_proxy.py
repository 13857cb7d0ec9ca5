"""
Upstream Origin Client

The edge handler only owns a handful of paths; everything else belongs to the
application's origin server. This module talks to that origin over httpx:

- forward(): pass an unmatched request through unchanged
- fetch_app_markup(): load the application's HTML shell so a short link can
  be served in place (see RedirectService)
"""

import html
import logging
import re
from typing import Optional

import httpx
from fastapi import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

# Headers that describe a single connection and must not be forwarded
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "host",
    "content-length",
}

# httpx hands back decoded bodies, so encoding headers no longer apply
STRIPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | {"content-encoding"}

LINK_TARGET_META = "x-short-link-target"
_HEAD_OPEN_RE = re.compile(r"<head(\s[^>]*)?>", re.IGNORECASE)


def embed_link_target(markup: str, target_url: str) -> str:
    """
    Insert the resolved URL into the page as a meta tag.

    The client script reads it to restore state while the address bar keeps
    showing the short path.
    """
    tag = f'<meta name="{LINK_TARGET_META}" content="{html.escape(target_url, quote=True)}">'
    match = _HEAD_OPEN_RE.search(markup)
    if match is None:
        return tag + markup
    return markup[:match.end()] + tag + markup[match.end():]


class OriginProxy:
    """Thin httpx wrapper around the upstream origin."""

    def __init__(self, client: httpx.AsyncClient, upstream_url: str):
        """
        Args:
            client: Shared async HTTP client (owned by the application lifespan)
            upstream_url: Base URL of the origin server, without trailing slash
        """
        self.client = client
        self.upstream_url = upstream_url.rstrip("/")

    async def fetch_app_markup(self) -> Optional[str]:
        """
        Fetch the application's HTML entry page.

        Returns:
            The markup, or None when the origin is unreachable or did not
            answer with HTML
        """
        try:
            response = await self.client.get(
                f"{self.upstream_url}/",
                headers={"Accept": "text/html"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Fetching application markup failed: {e}")
            return None

        content_type = response.headers.get("content-type", "")
        if response.status_code != 200 or "text/html" not in content_type:
            logger.warning(
                f"Application markup unavailable: status={response.status_code} "
                f"content-type={content_type!r}"
            )
            return None
        return response.text

    async def forward(self, request: Request) -> Response:
        """
        Pass a request through to the origin and relay its response.

        Returns:
            The origin's response, or 502 if the origin could not be reached
        """
        target = f"{self.upstream_url}{request.url.path}"
        if request.url.query:
            target = f"{target}?{request.url.query}"

        headers = [
            (name, value) for name, value in request.headers.items()
            if name.lower() not in HOP_BY_HOP_HEADERS
        ]
        body = await request.body()

        try:
            upstream = await self.client.request(
                request.method,
                target,
                headers=headers,
                content=body or None,
            )
        except httpx.HTTPError as e:
            logger.error(f"Passthrough to origin failed for {request.method} {request.url.path}: {e}")
            return JSONResponse({"error": "Origin unavailable"}, status_code=502)

        response = Response(content=upstream.content, status_code=upstream.status_code)
        response.raw_headers = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in upstream.headers.multi_items()
            if name.lower() not in STRIPPED_RESPONSE_HEADERS
        ] + [(b"content-length", str(len(upstream.content)).encode("latin-1"))]
        return response
