"""Response models for API endpoints."""

from pydantic import BaseModel
from typing import Any


class TrackPage(BaseModel):
    """A page of top-level catalog records.

    Album entries carry an extra ``trackCount`` key.
    """

    tracks: list[dict[str, Any]]
    page: int
    pages: int
    count: int


class DeleteResponse(BaseModel):
    """Confirmation returned after a record is removed."""

    message: str


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    uptime_seconds: int
