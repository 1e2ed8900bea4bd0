"""Pydantic models for the music catalog API."""

from backend.models.responses import DeleteResponse, ErrorResponse, HealthResponse, TrackPage
from backend.models.track import (
    COVER_SIZE,
    PLACEHOLDER_COVER,
    AlbumRecord,
    Contributor,
    ContributorRole,
    CoverDimensions,
    SingleRecord,
    TrackKind,
    TrackRecord,
    validate_track_record,
)

__all__ = [
    # Track models
    "AlbumRecord",
    "Contributor",
    "ContributorRole",
    "CoverDimensions",
    "SingleRecord",
    "TrackKind",
    "TrackRecord",
    "validate_track_record",
    "COVER_SIZE",
    "PLACEHOLDER_COVER",
    # Response models
    "TrackPage",
    "DeleteResponse",
    "ErrorResponse",
    "HealthResponse",
]
