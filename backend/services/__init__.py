"""Backend services for the music catalog."""

from backend.services.database import DatabaseService, get_db
from backend.services.metadata import extract_audio_metadata, get_image_dimensions
from backend.services.tracks import TrackService, get_track_service
from backend.services.uploads import UploadGate

__all__ = [
    "DatabaseService",
    "get_db",
    "extract_audio_metadata",
    "get_image_dimensions",
    "TrackService",
    "get_track_service",
    "UploadGate",
]
