"""
CORS Middleware

Answers preflight requests for the API routes entirely from the origin
guard, and adds CORS headers to API responses for trusted origins only.

Preflight outcome:
- trusted origin: 204 with the route's allowed methods
- any other origin: 403
"""

from typing import Optional, Tuple

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from edgelink.core.origin import get_cors_headers
from edgelink.middleware.security_headers import overlay_headers

# (path, is_prefix) -> allowed methods
CORS_ROUTES: Tuple[Tuple[str, bool, Tuple[str, ...]], ...] = (
    ("/api/shorten", False, ("GET", "POST", "PUT", "OPTIONS")),
    ("/api/telemetry", False, ("GET", "POST", "DELETE", "OPTIONS")),
    ("/api/resolve/", True, ("GET", "OPTIONS")),
)


def cors_methods_for(path: str) -> Optional[Tuple[str, ...]]:
    for route, is_prefix, methods in CORS_ROUTES:
        if path == route or (is_prefix and path.startswith(route)):
            return methods
    return None


class CorsMiddleware(BaseHTTPMiddleware):
    """Origin-checked CORS for the edge API routes."""

    async def dispatch(self, request: Request, call_next):
        methods = cors_methods_for(request.url.path)
        if methods is None:
            return await call_next(request)

        settings = request.app.state.settings
        cors_headers = get_cors_headers(request, settings, methods)

        if request.method == "OPTIONS":
            if cors_headers is None:
                return JSONResponse(
                    {"error": "Origin not allowed"},
                    status_code=status.HTTP_403_FORBIDDEN,
                )
            return Response(status_code=status.HTTP_204_NO_CONTENT, headers=cors_headers)

        response = await call_next(request)
        if cors_headers is None:
            return response
        return overlay_headers(response, cors_headers)
