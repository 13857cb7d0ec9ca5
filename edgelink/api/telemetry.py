"""
FastAPI Endpoints for Anonymous Usage Telemetry

- POST   /api/telemetry  merge counter deltas (same-origin, rate limited)
- GET    /api/telemetry  read the aggregate (same-origin or admin token)
- DELETE /api/telemetry  reset the aggregate (admin token or insecure opt-in)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from edgelink.api.dependencies import (
    RateLimit,
    get_settings,
    get_telemetry_aggregator,
    read_json_body,
    require_same_origin,
)
from edgelink.api.schemas import AckResponse, TelemetryPostRequest
from edgelink.core.exceptions import EdgeLinkError, InternalServiceError, UnauthorizedError
from edgelink.core.origin import request_looks_same_origin
from edgelink.core.setting import Settings
from edgelink.services.telemetry_service import TelemetryAggregator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/telemetry", tags=["Telemetry"])

TELEMETRY_HINT = 'Send JSON with "increments" and/or "nested" counters'


@router.post(
    "",
    response_model=AckResponse,
    response_model_exclude_none=True,
    summary="Record usage counters",
    dependencies=[Depends(require_same_origin), Depends(RateLimit("telemetry"))],
)
async def post_telemetry(
    request: Request,
    aggregator: TelemetryAggregator = Depends(get_telemetry_aggregator),
    settings: Settings = Depends(get_settings),
) -> AckResponse:
    """Unknown metrics and invalid deltas are dropped without failing the request."""
    body = await read_json_body(
        request,
        TelemetryPostRequest,
        max_bytes=settings.TELEMETRY_MAX_BODY_BYTES,
        hint=TELEMETRY_HINT,
    )
    try:
        await aggregator.post(increments=body.increments, nested=body.nested)
    except EdgeLinkError:
        raise
    except Exception as e:
        logger.error(f"Failed to record telemetry: {e}", exc_info=True)
        raise InternalServiceError() from e
    return AckResponse()


@router.get("", summary="Read the usage aggregate")
async def get_telemetry(
    request: Request,
    aggregator: TelemetryAggregator = Depends(get_telemetry_aggregator),
    settings: Settings = Depends(get_settings),
    x_admin_token: Optional[str] = Header(default=None),
) -> JSONResponse:
    if not (request_looks_same_origin(request, settings) or aggregator.is_admin(x_admin_token)):
        raise UnauthorizedError(hint="Read telemetry from the application or send X-Admin-Token")

    aggregate = await aggregator.get()
    return JSONResponse(aggregate, headers={"Cache-Control": "no-store"})


@router.delete(
    "",
    response_model=AckResponse,
    summary="Reset the usage aggregate",
)
async def reset_telemetry(
    aggregator: TelemetryAggregator = Depends(get_telemetry_aggregator),
    x_admin_token: Optional[str] = Header(default=None),
) -> AckResponse:
    try:
        await aggregator.reset(x_admin_token)
    except EdgeLinkError:
        raise
    except Exception as e:
        logger.error(f"Failed to reset telemetry: {e}", exc_info=True)
        raise InternalServiceError() from e
    return AckResponse(message="Telemetry counters reset")
