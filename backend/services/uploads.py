"""Upload gate for multipart file parts.

Parts are copied from the request into a flat uploads directory under
generated names (``<fieldname>-<epoch ms>-<random>.<ext>``). The gate
enforces the per-file size ceiling, the per-request file count and,
when configured, a MIME type allow-list. Any failure removes whatever the
gate already wrote for the request.
"""

import random
import re
import time
from backend.errors import FileTooLarge, UploadError
from backend.logging_config import log_file_operation
from backend.models.track import PLACEHOLDER_COVER
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from typing import Any

MB = 1024 * 1024
CHUNK_SIZE = MB

AUDIO_MIME_TYPES = frozenset({"audio/mpeg", "audio/flac", "audio/wav", "audio/aac"})
IMAGE_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/jpg"})

AUDIO_MAX_FILE_SIZE = 100 * MB
IMAGE_MAX_FILE_SIZE = 10 * MB

_UNSAFE_FIELD_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


@dataclass
class StoredUpload:
    """A file part persisted by the upload gate."""

    fieldname: str
    filename: str  # generated name inside the uploads directory
    original_name: str
    content_type: str | None
    path: Path
    size: int


def generate_filename(fieldname: str, original_name: str | None) -> str:
    """Build a unique storage name for an uploaded part."""
    field = _UNSAFE_FIELD_CHARS.sub("_", fieldname) or "file"
    suffix = Path(original_name or "").suffix.lower()
    if not _SAFE_SUFFIX.match(suffix):
        suffix = ""
    return f"{field}-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{suffix}"


def remove_stored_file(uploads_dir: Path, filename: str | None) -> bool:
    """Delete a stored file by name. The shared placeholder is never deleted."""
    if not filename or filename == PLACEHOLDER_COVER:
        return False
    path = uploads_dir / Path(filename).name
    if not path.is_file():
        return False
    path.unlink()
    log_file_operation("remove", str(path))
    return True


def discard_uploads(uploads: Iterable[StoredUpload]) -> None:
    """Remove uploaded parts that will not be referenced by any record."""
    for upload in uploads:
        if upload.path.exists():
            upload.path.unlink()
            log_file_operation("discard", str(upload.path), fieldname=upload.fieldname)


class UploadGate:
    """Persists multipart file parts under size, count and type limits."""

    def __init__(
        self,
        uploads_dir: str | Path,
        max_file_size: int,
        max_file_count: int,
        allowed_types: frozenset[str] | None = None,
    ):
        self.uploads_dir = Path(uploads_dir)
        self.max_file_size = max_file_size
        self.max_file_count = max_file_count
        self.allowed_types = allowed_types

    def check_type(self, upload: UploadFile) -> None:
        """Reject a part whose MIME type is not on the allow-list."""
        if self.allowed_types is None:
            return
        content_type = (upload.content_type or "").split(";")[0].strip().lower()
        if content_type not in self.allowed_types:
            allowed = ", ".join(sorted(self.allowed_types))
            raise UploadError(f"File type {content_type or 'unknown'} is not allowed. Accepted types: {allowed}")

    async def save(self, fieldname: str, upload: UploadFile) -> StoredUpload:
        """Copy one part to the uploads directory in chunks."""
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        dest = self.uploads_dir / generate_filename(fieldname, upload.filename)
        size = 0
        try:
            with dest.open("wb") as fh:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_file_size:
                        raise FileTooLarge(f"File too large. Maximum file size is {self.max_file_size // MB}MB.")
                    fh.write(chunk)
        except Exception:
            dest.unlink(missing_ok=True)
            raise

        log_file_operation("store", str(dest), fieldname=fieldname, size=size)
        return StoredUpload(
            fieldname=fieldname,
            filename=dest.name,
            original_name=upload.filename or "",
            content_type=upload.content_type,
            path=dest,
            size=size,
        )

    async def store(self, parts: list[tuple[str, UploadFile]]) -> list[StoredUpload]:
        """Persist every part or none of them."""
        if len(parts) > self.max_file_count:
            raise UploadError(f"Too many files. Maximum number of files is {self.max_file_count}.")

        stored: list[StoredUpload] = []
        try:
            for fieldname, upload in parts:
                self.check_type(upload)
                stored.append(await self.save(fieldname, upload))
        except Exception:
            discard_uploads(stored)
            raise
        return stored


def mixed_gate(uploads_dir: Path, max_file_size: int, max_file_count: int) -> UploadGate:
    """Gate for the track endpoints: any field name, any type."""
    return UploadGate(uploads_dir, max_file_size, max_file_count)


def audio_gate(uploads_dir: Path, max_file_count: int) -> UploadGate:
    """Gate that only accepts audio parts (mp3, flac, wav, aac)."""
    return UploadGate(uploads_dir, AUDIO_MAX_FILE_SIZE, max_file_count, AUDIO_MIME_TYPES)


def image_gate(uploads_dir: Path, max_file_count: int) -> UploadGate:
    """Gate that only accepts cover images (jpeg, png)."""
    return UploadGate(uploads_dir, IMAGE_MAX_FILE_SIZE, max_file_count, IMAGE_MIME_TYPES)


async def read_track_form(request: Request, gate: UploadGate) -> tuple[dict[str, Any], list[StoredUpload]]:
    """Split a track request body into plain fields and stored file parts.

    Multipart and urlencoded bodies go through Starlette's form parser;
    a JSON object body is accepted as fields only.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as e:
            raise UploadError(f"Malformed JSON body: {e}") from e
        if not isinstance(body, dict):
            raise UploadError("JSON body must be an object")
        return body, []

    try:
        form = await request.form(max_files=gate.max_file_count)
    except StarletteHTTPException as e:
        # Starlette reports multipart limit and parse failures this way
        raise UploadError(str(e.detail)) from e

    try:
        fields: dict[str, Any] = {}
        parts: list[tuple[str, UploadFile]] = []
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                # Browsers send an empty part for an untouched file input
                if value.filename:
                    parts.append((key, value))
            else:
                fields[key] = value
        stored = await gate.store(parts)
    finally:
        await form.close()

    return fields, stored
