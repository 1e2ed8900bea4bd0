"""Track service for the music catalog backend.

Translates request fields and stored uploads into catalog queries and
mutations, enforces the single/album rules and the cover size rule, and
shapes list responses.
"""

import json
import math
import pydantic
from backend.errors import NotFound, ValidationError
from backend.logging_config import log_api_request, start_action
from backend.models.responses import TrackPage
from backend.models.track import (
    COVER_SIZE,
    AlbumRecord,
    Contributor,
    CoverDimensions,
    SingleRecord,
    TrackKind,
    contributors_adapter,
    placeholder_dimensions,
    validate_track_record,
)
from backend.services.database import DatabaseService, is_valid_track_id
from backend.services.metadata import AudioMetadata, extract_audio_metadata, get_image_dimensions
from backend.services.uploads import StoredUpload, discard_uploads, remove_stored_file
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

# Front-end category names that are not real genres
GENRE_CATEGORIES = {"all", "new", "popular", "featured"}

AUDIO_FIELDS = ("audio_file", "bitrate", "duration", "sample_rate", "file_type")

CatalogRecord = SingleRecord | AlbumRecord


@dataclass
class ContributorParse:
    """Result of parsing a contributors field.

    ``used_fallback`` is set when the raw value could not be decoded into
    a list and an empty list was substituted.
    """

    contributors: list[Contributor] = field(default_factory=list)
    used_fallback: bool = False


def parse_contributors(raw: Any) -> ContributorParse:
    """Parse contributors given as JSON text or an already structured list.

    Undecodable text falls back to an empty list instead of failing. A
    decoded list whose entries break the contributor schema is an error.
    """
    if raw is None or raw == "":
        return ContributorParse()

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return ContributorParse(used_fallback=True)

    if not isinstance(raw, list):
        return ContributorParse(used_fallback=True)

    try:
        return ContributorParse(contributors=contributors_adapter.validate_python(raw))
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid contributors: {_describe(e)}") from e


def serialize_track(record: CatalogRecord, track_count: int | None = None) -> dict[str, Any]:
    """Render a record with camelCase keys, adding ``trackCount`` for albums."""
    data = record.model_dump(by_alias=True, mode="json")
    if track_count is not None:
        data["trackCount"] = track_count
    return data


def _describe(error: pydantic.ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    message = first["msg"].removeprefix("Value error, ")
    return f"{location}: {message}" if location else message


def _text(fields: Mapping[str, Any], key: str) -> str | None:
    value = fields.get(key)
    if value is None:
        return None
    return str(value).strip() or None


def _integer(fields: Mapping[str, Any], key: str) -> int | None:
    value = fields.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    try:
        return int(str(value).strip())
    except ValueError as e:
        raise ValidationError(f"{key} must be an integer") from e


def _timestamp(fields: Mapping[str, Any], key: str) -> datetime | None:
    value = _text(fields, key)
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"{key} must be an ISO 8601 date") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _kind(fields: Mapping[str, Any]) -> str | None:
    # Older clients send the discriminator as "type"
    value = _text(fields, "kind") or _text(fields, "type")
    if value is None:
        return None
    try:
        return TrackKind(value).value
    except ValueError as e:
        raise ValidationError(f"kind must be one of: {', '.join(k.value for k in TrackKind)}") from e


def _last_upload(uploads: list[StoredUpload], fieldname: str) -> StoredUpload | None:
    matching = [upload for upload in uploads if upload.fieldname == fieldname]
    return matching[-1] if matching else None


def _measure_cover(upload: StoredUpload) -> CoverDimensions:
    dimensions = get_image_dimensions(upload.path)
    if not dimensions.is_cover_size:
        raise ValidationError(
            f"Cover image must be exactly {COVER_SIZE}x{COVER_SIZE} pixels "
            f"(got {dimensions.width}x{dimensions.height})"
        )
    return dimensions


def _validate(data: dict[str, Any]) -> CatalogRecord:
    try:
        return validate_track_record(data)
    except pydantic.ValidationError as e:
        raise ValidationError(_describe(e)) from e


class TrackService:
    """Catalog operations behind the /tracks endpoints."""

    def __init__(self, db: DatabaseService, uploads_dir: str | Path):
        self.db = db
        self.uploads_dir = Path(uploads_dir)

    # ==================== Reads ====================

    def list_tracks(self, page: int = 1, page_size: int = 10, genre: str | None = None) -> TrackPage:
        """List top-level records (albums and standalone singles), newest first."""
        if genre and genre.strip().lower() in GENRE_CATEGORIES:
            genre = None
        log_api_request("list_tracks", page=page, page_size=page_size, genre=genre)
        return self._page(page, page_size, genre=genre)

    def search_tracks(self, q: str | None, page: int = 1, limit: int = 10) -> TrackPage:
        """Search top-level records by title, genre or contributor name."""
        if q is None or not q.strip():
            raise ValidationError("Search query is required")
        log_api_request("search_tracks", q=q, page=page, limit=limit)
        return self._page(page, limit, text=q.strip())

    def _page(self, page: int, page_size: int, genre: str | None = None, text: str | None = None) -> TrackPage:
        if page < 1 or page_size < 1:
            raise ValidationError("page and page size must be positive integers")

        rows, count = self.db.find_tracks(
            genre=genre,
            text=text,
            top_level_only=True,
            limit=page_size,
            offset=page_size * (page - 1),
        )
        records = [_validate(row) for row in rows]
        track_counts = self.db.count_album_tracks(r.id for r in records if isinstance(r, AlbumRecord))

        return TrackPage(
            tracks=[serialize_track(r, track_counts.get(r.id)) for r in records],
            page=page,
            pages=math.ceil(count / page_size),
            count=count,
        )

    def get_track(self, track_id: str) -> CatalogRecord:
        """Get a record by id; malformed ids are reported as not found."""
        row = self.db.get_track_by_id(track_id) if is_valid_track_id(track_id) else None
        if row is None:
            raise NotFound("Track not found")
        return _validate(row)

    def get_album_tracks(self, album_id: str) -> list[CatalogRecord]:
        """Get the tracks that belong to an album, ordered by track number."""
        if not is_valid_track_id(album_id):
            return []
        return [_validate(row) for row in self.db.get_tracks_by_album(album_id)]

    def get_genres(self) -> list[str]:
        return self.db.get_distinct_genres()

    # ==================== Writes ====================

    def create_track(self, fields: Mapping[str, Any], uploads: list[StoredUpload]) -> CatalogRecord:
        """Create a single or album from form fields and stored uploads.

        Every stored upload is removed if creation fails; uploads the new
        record does not reference are removed either way.
        """
        with start_action(action_type="track_create", title=_text(fields, "title")):
            try:
                record = self._build_new_record(fields, uploads)
                self.db.add_track(record.model_dump(mode="json"))
            except Exception:
                discard_uploads(uploads)
                raise

            self._discard_unreferenced(record, uploads)
            return record

    def _build_new_record(self, fields: Mapping[str, Any], uploads: list[StoredUpload]) -> CatalogRecord:
        title = _text(fields, "title")
        kind = _kind(fields)
        genre = _text(fields, "genre")
        if not title or not kind or not genre:
            raise ValidationError("Title, kind, and genre are required")

        listen_count = _integer(fields, "listenCount")
        now = datetime.now(UTC)
        data: dict[str, Any] = {
            "id": self.db.generate_id(),
            "kind": kind,
            "title": title,
            "genre": genre,
            "contributors": parse_contributors(fields.get("contributors")).contributors,
            "listen_count": listen_count if listen_count is not None else 0,
            "publish_date": _timestamp(fields, "publishDate") or now,
            "created_at": now,
            "updated_at": now,
        }

        cover = _last_upload(uploads, "coverImage")
        if cover:
            data["cover_image"] = cover.filename
            data["cover_image_dimensions"] = _measure_cover(cover)
        else:
            data["cover_image_dimensions"] = placeholder_dimensions()

        if kind == TrackKind.SINGLE.value:
            audio = _last_upload(uploads, "audioFile")
            metadata = extract_audio_metadata(audio.path) if audio else AudioMetadata()
            data.update(
                audio_file=audio.filename if audio else "",
                bitrate=metadata.bitrate or _integer(fields, "bitrate") or 0,
                duration=metadata.duration or _integer(fields, "duration") or 0,
                sample_rate=metadata.sample_rate or _integer(fields, "sampleRate") or 0,
                file_type=metadata.file_type or _text(fields, "fileType") or "",
                album=self._resolve_album(fields.get("album")),
                track_number=_integer(fields, "trackNumber"),
            )
        elif _text(fields, "album") not in (None, "null"):
            raise ValidationError("Only singles can belong to an album")

        return _validate(data)

    def update_track(self, track_id: str, fields: Mapping[str, Any], uploads: list[StoredUpload]) -> CatalogRecord:
        """Apply a partial update; omitted fields keep their stored values.

        Replaced cover and audio files are deleted only after the record
        has been saved.
        """
        with start_action(action_type="track_update", track_id=track_id):
            try:
                current = self.get_track(track_id)
                record, stale_files = self._apply_update(current, fields, uploads)
                self.db.update_track(track_id, record.model_dump(mode="json"))
            except Exception:
                discard_uploads(uploads)
                raise

            for filename in stale_files:
                remove_stored_file(self.uploads_dir, filename)
            self._discard_unreferenced(record, uploads)
            return record

    def _apply_update(
        self, current: CatalogRecord, fields: Mapping[str, Any], uploads: list[StoredUpload]
    ) -> tuple[CatalogRecord, list[str]]:
        data = current.model_dump()
        stale_files: list[str] = []

        for key in ("title", "genre"):
            value = _text(fields, key)
            if value:
                data[key] = value

        kind = _kind(fields)
        if kind:
            data["kind"] = kind

        parsed = parse_contributors(fields.get("contributors"))
        if fields.get("contributors") not in (None, "") and not parsed.used_fallback:
            data["contributors"] = parsed.contributors

        listen_count = _integer(fields, "listenCount")
        if listen_count is not None:
            data["listen_count"] = listen_count

        publish_date = _timestamp(fields, "publishDate")
        if publish_date:
            data["publish_date"] = publish_date

        cover = _last_upload(uploads, "coverImage")
        if cover:
            data["cover_image_dimensions"] = _measure_cover(cover)
            data["cover_image"] = cover.filename
            if current.has_uploaded_cover:
                stale_files.append(current.cover_image)

        if data["kind"] == TrackKind.SINGLE.value:
            if isinstance(current, AlbumRecord):
                track_count = self.db.count_album_tracks([current.id])[current.id]
                if track_count:
                    raise ValidationError(f"Album still has {track_count} tracks and cannot become a single")

            if "album" in fields:
                data["album"] = self._resolve_album(fields["album"], exclude=current.id)
            if "trackNumber" in fields:
                data["track_number"] = _integer(fields, "trackNumber")

            audio = _last_upload(uploads, "audioFile")
            if audio:
                metadata = extract_audio_metadata(audio.path)
                if isinstance(current, SingleRecord) and current.audio_file:
                    stale_files.append(current.audio_file)
                data.update(
                    audio_file=audio.filename,
                    bitrate=metadata.bitrate,
                    duration=metadata.duration,
                    sample_rate=metadata.sample_rate,
                    file_type=metadata.file_type,
                )
        else:
            if _text(fields, "album") not in (None, "null"):
                raise ValidationError("Only singles can belong to an album")
            # Albums never carry audio or a parent album
            if isinstance(current, SingleRecord) and current.audio_file:
                stale_files.append(current.audio_file)
            for key in (*AUDIO_FIELDS, "album", "track_number"):
                data.pop(key, None)

        data["updated_at"] = datetime.now(UTC)
        return _validate(data), stale_files

    def delete_track(self, track_id: str) -> None:
        """Delete a record together with its cover and audio files."""
        with start_action(action_type="track_delete", track_id=track_id):
            record = self.get_track(track_id)

            remove_stored_file(self.uploads_dir, record.cover_image)
            if isinstance(record, SingleRecord):
                remove_stored_file(self.uploads_dir, record.audio_file)

            if not self.db.delete_track(track_id):
                raise NotFound("Track not found")

    # ==================== Helpers ====================

    def _resolve_album(self, value: Any, exclude: str | None = None) -> str | None:
        """Check an album reference from request fields.

        Empty and ``"null"`` values mean "no album".
        """
        album_id = None if value is None else str(value).strip()
        if not album_id or album_id == "null":
            return None

        if not is_valid_track_id(album_id) or album_id == exclude:
            raise ValidationError(f"Invalid album reference: {album_id}")

        row = self.db.get_track_by_id(album_id)
        if row is None or row["kind"] != TrackKind.ALBUM.value:
            raise ValidationError(f"Album not found: {album_id}")
        return album_id

    def _discard_unreferenced(self, record: CatalogRecord, uploads: list[StoredUpload]) -> None:
        referenced = {record.cover_image}
        if isinstance(record, SingleRecord):
            referenced.add(record.audio_file)
        discard_uploads(upload for upload in uploads if upload.filename not in referenced)


# Global service instance (will be initialized in main.py)
_service: TrackService | None = None


def init_track_service(db: DatabaseService, uploads_dir: str | Path) -> TrackService:
    """Initialize the global track service."""
    global _service
    _service = TrackService(db, uploads_dir)
    return _service


def get_track_service() -> TrackService:
    """Get the global track service."""
    if _service is None:
        raise RuntimeError("Track service not initialized. Call init_track_service() first.")
    return _service
