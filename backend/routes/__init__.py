"""API routes for the music catalog backend."""

from backend.routes.tracks import router as tracks_router

__all__ = [
    "tracks_router",
]
