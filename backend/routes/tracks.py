"""Track routes for the music catalog API."""

from backend.auth import require_admin
from backend.config import Settings, get_settings
from backend.models.responses import DeleteResponse, TrackPage
from backend.services.tracks import TrackService, get_track_service, serialize_track
from backend.services.uploads import UploadGate, mixed_gate, read_track_form
from fastapi import APIRouter, Depends, Query, Request

router = APIRouter(prefix="/tracks", tags=["tracks"])


def get_upload_gate(settings: Settings = Depends(get_settings)) -> UploadGate:
    """Mixed gate: any field name or type, validation deferred to the service."""
    return mixed_gate(settings.UPLOADS_DIR, settings.MAX_UPLOAD_FILE_SIZE, settings.MAX_UPLOAD_FILE_COUNT)


# More specific routes come before /{track_id}


@router.get("", response_model=TrackPage)
async def get_tracks(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, alias="pageSize"),
    genre: str | None = None,
    service: TrackService = Depends(get_track_service),
):
    """List albums and standalone singles, newest first."""
    return service.list_tracks(page=page, page_size=page_size, genre=genre)


@router.get("/search", response_model=TrackPage)
async def search_tracks(
    q: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    service: TrackService = Depends(get_track_service),
):
    """Search albums and standalone singles by title, genre or contributor."""
    return service.search_tracks(q, page=page, limit=limit)


@router.get("/genres")
async def get_genres(service: TrackService = Depends(get_track_service)) -> list[str]:
    """Get all distinct genres."""
    return service.get_genres()


@router.get("/album/{album_id}")
async def get_album_tracks(album_id: str, service: TrackService = Depends(get_track_service)):
    """Get the tracks of an album ordered by track number."""
    return [serialize_track(track) for track in service.get_album_tracks(album_id)]


@router.get("/{track_id}")
async def get_track(track_id: str, service: TrackService = Depends(get_track_service)):
    """Get a single track or album by ID."""
    return serialize_track(service.get_track(track_id))


@router.post("", status_code=201, dependencies=[Depends(require_admin)])
async def create_track(
    request: Request,
    service: TrackService = Depends(get_track_service),
    gate: UploadGate = Depends(get_upload_gate),
):
    """Create a single or album from a multipart form.

    File parts named ``coverImage`` and ``audioFile`` are recognised;
    anything else is discarded.
    """
    fields, uploads = await read_track_form(request, gate)
    return serialize_track(service.create_track(fields, uploads))


@router.patch("/{track_id}", dependencies=[Depends(require_admin)])
async def update_track(
    track_id: str,
    request: Request,
    service: TrackService = Depends(get_track_service),
    gate: UploadGate = Depends(get_upload_gate),
):
    """Partially update a track; omitted fields keep their values."""
    fields, uploads = await read_track_form(request, gate)
    return serialize_track(service.update_track(track_id, fields, uploads))


@router.delete("/{track_id}", response_model=DeleteResponse, dependencies=[Depends(require_admin)])
async def delete_track(track_id: str, service: TrackService = Depends(get_track_service)):
    """Delete a track and its stored files."""
    service.delete_track(track_id)
    return DeleteResponse(message="Track removed")
