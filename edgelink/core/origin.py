"""
Origin / CORS Guard

Classifies the origin of a request and decides:
- whether it may receive CORS headers (canonical origin or a dev origin)
- whether a mutating request looks same-origin

The same-origin check is a lightweight cross-site heuristic for the mutating
endpoints, not a complete CSRF defense.
"""

from typing import Iterable, Optional

from fastapi import Request

from edgelink.core.setting import Settings

SAME_SITE_FETCH_VALUES = {"same-origin", "same-site"}
CORS_ALLOWED_HEADERS = "Content-Type, X-Admin-Token"
CORS_MAX_AGE = "86400"


def _trusted_origins(settings: Settings) -> set[str]:
    return {settings.APP_ORIGIN, *(origin.rstrip("/") for origin in settings.DEV_ORIGINS)}


def get_allowed_origin(request: Request, settings: Settings) -> Optional[str]:
    """Return the request's Origin if it is trusted, None otherwise."""
    origin = request.headers.get("Origin")
    if origin and origin in _trusted_origins(settings):
        return origin
    return None


def request_looks_same_origin(request: Request, settings: Settings) -> bool:
    if get_allowed_origin(request, settings):
        return True
    if request.headers.get("Origin"):
        return False
    fetch_site = request.headers.get("Sec-Fetch-Site", "").lower()
    return fetch_site in SAME_SITE_FETCH_VALUES


def get_cors_headers(
    request: Request,
    settings: Settings,
    methods: Iterable[str],
) -> Optional[dict[str, str]]:
    """
    Build the CORS header set for a trusted origin.

    Returns None for a disallowed origin; callers answer preflights with 403
    and omit CORS headers on every other response.
    """
    origin = get_allowed_origin(request, settings)
    if origin is None:
        return None
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": ", ".join(methods),
        "Access-Control-Allow-Headers": CORS_ALLOWED_HEADERS,
        "Access-Control-Max-Age": CORS_MAX_AGE,
        "Vary": "Origin",
    }


def get_client_ip(request: Request) -> str:
    """
    Extract the client identifier used for rate limiting.

    Handles proxies and load balancers by checking CF-Connecting-IP and
    X-Forwarded-For before falling back to the socket peer.
    """
    connecting_ip = request.headers.get("CF-Connecting-IP")
    if connecting_ip:
        return connecting_ip.strip()

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first one
        return forwarded_for.split(",")[0].strip()

    return request.client.host if request.client else "unknown"
