"""
Security Header Middleware

Every response leaving the edge handler gets the baseline security headers;
API responses (/api/*) also get a restrictive Content-Security-Policy.

Wrapping never mutates a response in place: a new response is built with the
original status and body and the original headers, overwritten or extended by
the overlay. Responses read from the edge cache or relayed from the origin
are therefore never altered at their source.
"""

from typing import Mapping

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response, StreamingResponse

BASELINE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}

API_HEADERS = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}


def is_api_path(path: str) -> bool:
    return path == "/api" or path.startswith("/api/")


def overlay_headers(response: Response, overlay: Mapping[str, str]) -> Response:
    """
    Return a new response with `overlay` applied on top of the original headers.

    Headers named in the overlay replace any original values; all other
    original headers (including repeated ones such as Set-Cookie) are kept.
    """
    replaced = {name.lower().encode("latin-1") for name in overlay}
    raw_headers = [
        (name, value) for name, value in response.raw_headers
        if name not in replaced
    ] + [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in overlay.items()
    ]

    if hasattr(response, "body_iterator"):
        wrapped = StreamingResponse(
            response.body_iterator,
            status_code=response.status_code,
            background=response.background,
        )
    else:
        wrapped = Response(
            content=response.body,
            status_code=response.status_code,
            background=response.background,
        )
    wrapped.raw_headers = raw_headers
    return wrapped


def with_security_headers(response: Response, api: bool) -> Response:
    overlay = dict(BASELINE_HEADERS)
    if api:
        overlay.update(API_HEADERS)
    return overlay_headers(response, overlay)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Apply the security header overlay to every outgoing response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        return with_security_headers(response, api=is_api_path(request.url.path))
