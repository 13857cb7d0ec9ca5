"""
API Request and Response Schemas

This module defines all Pydantic models for API requests and responses.
Each endpoint that accepts a body has its own request shape; bodies that do
not conform are rejected before any handler logic runs.

Response field names follow the public JSON contract (camelCase) through
serialization aliases.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ShortenRequest(BaseModel):
    """Request model for POST /api/shorten."""
    url: str = Field(..., description="Application URL to shorten")


class UpdateRequest(BaseModel):
    """Request model for PUT /api/shorten."""
    code: str = Field(..., description="Existing short code")
    url: str = Field(..., description="New application URL for the code")


class TelemetryPostRequest(BaseModel):
    """
    Request model for POST /api/telemetry.

    Individual entries are validated by the aggregator, which drops the ones
    it does not accept; only the overall shape is checked here.
    """
    increments: Optional[dict[str, Any]] = Field(default=None, description="Flat metric -> delta")
    nested: Optional[dict[str, Any]] = Field(default=None, description="Group -> {metric -> delta}")

    @model_validator(mode="after")
    def _require_counters(self) -> "TelemetryPostRequest":
        if self.increments is None and self.nested is None:
            raise ValueError("Provide increments and/or nested")
        return self


class ShortenResponse(BaseModel):
    """Response model for POST /api/shorten."""
    model_config = ConfigDict(populate_by_name=True)

    short_url: str = Field(..., serialization_alias="shortUrl", description="Complete short URL")
    code: str = Field(..., description="The short code")
    existing: bool = Field(..., description="True when the URL already had a code")


class UpdateResponse(BaseModel):
    """Response model for PUT /api/shorten."""
    model_config = ConfigDict(populate_by_name=True)

    short_url: str = Field(..., serialization_alias="shortUrl")
    code: str
    updated: bool = Field(..., description="False when the code already pointed at this URL")


class ResolveResponse(BaseModel):
    """Response model for GET /api/resolve/<code>."""
    url: str
    code: str


class UsageResponse(BaseModel):
    """Response model for the GET /api/shorten diagnostic."""
    status: str
    message: str
    usage: str


class AckResponse(BaseModel):
    ok: bool = True
    message: Optional[str] = None
