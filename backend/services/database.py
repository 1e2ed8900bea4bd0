"""Catalog store for the music catalog backend.

Track and album records live in a single SQLite table. The store speaks in
plain field mappings (snake_case keys, nested contributors and cover
dimensions); validating them into record models is the track service's job.
"""

import json
import re
import sqlite3
import uuid
from backend.logging_config import log_database_operation
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

DB_TABLES = {
    "tracks": """
        CREATE TABLE IF NOT EXISTS tracks
        (id TEXT PRIMARY KEY,
         kind TEXT NOT NULL,
         title TEXT NOT NULL,
         genre TEXT NOT NULL,
         contributors TEXT NOT NULL DEFAULT '[]',
         contributor_names TEXT NOT NULL DEFAULT '',
         listen_count INTEGER DEFAULT 0,
         publish_date TEXT NOT NULL,
         cover_image TEXT,
         cover_width INTEGER,
         cover_height INTEGER,
         audio_file TEXT,
         bitrate INTEGER,
         duration INTEGER,
         sample_rate INTEGER,
         file_type TEXT,
         album TEXT,
         track_number INTEGER,
         created_at TEXT NOT NULL,
         updated_at TEXT NOT NULL)
    """,
}

DB_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tracks_album ON tracks(album)",
    "CREATE INDEX IF NOT EXISTS idx_tracks_genre ON tracks(genre)",
    "CREATE INDEX IF NOT EXISTS idx_tracks_created_at ON tracks(created_at)",
]

# Columns written on insert/update, in table order
TRACK_COLUMNS = [
    "id",
    "kind",
    "title",
    "genre",
    "contributors",
    "contributor_names",
    "listen_count",
    "publish_date",
    "cover_image",
    "cover_width",
    "cover_height",
    "audio_file",
    "bitrate",
    "duration",
    "sample_rate",
    "file_type",
    "album",
    "track_number",
    "created_at",
    "updated_at",
]

# Stored as fixed-width UTC text so that string order is time order
TIMESTAMP_COLUMNS = ("publish_date", "created_at", "updated_at")

# Separates contributor names in the denormalized search column
NAME_SEPARATOR = "\x1f"

# Top-level records: albums and singles that do not belong to an album
TOP_LEVEL_CONDITION = "(kind = 'Album' OR (kind = 'Single' AND album IS NULL))"

_TRACK_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def is_valid_track_id(track_id: str) -> bool:
    """Check whether a string has the shape of a store-assigned id."""
    return bool(_TRACK_ID_RE.match(track_id or ""))


def _contains_ci(haystack: str | None, needle: str | None) -> bool:
    """Case-insensitive substring test registered as an SQL function."""
    if haystack is None or needle is None:
        return False
    return needle.casefold() in haystack.casefold()


def _stored_timestamp(value: str | datetime | None) -> str | None:
    """Normalize a timestamp to UTC with a fixed microsecond field."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _to_row(data: dict[str, Any]) -> tuple:
    """Flatten a record mapping into TRACK_COLUMNS order."""
    contributors = data.get("contributors") or []
    dimensions = data.get("cover_image_dimensions") or {}
    flat = {
        **data,
        "contributors": json.dumps(contributors),
        "contributor_names": NAME_SEPARATOR.join(c["name"] for c in contributors),
        "cover_width": dimensions.get("width"),
        "cover_height": dimensions.get("height"),
    }
    for column in TIMESTAMP_COLUMNS:
        flat[column] = _stored_timestamp(flat.get(column))
    return tuple(flat.get(column) for column in TRACK_COLUMNS)


def _from_row(row: sqlite3.Row) -> dict[str, Any]:
    """Rebuild a record mapping from a table row, dropping unset columns."""
    data = dict(row)
    data.pop("contributor_names", None)
    data["contributors"] = json.loads(data["contributors"] or "[]")
    data["cover_image_dimensions"] = {"width": data.pop("cover_width"), "height": data.pop("cover_height")}
    return {key: value for key, value in data.items() if value is not None}


class DatabaseService:
    """SQLite-backed catalog store.

    Opens one connection per operation; each write is a single statement
    committed on its own.
    """

    def __init__(self, db_path: str | Path):
        """Initialize the catalog store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._ensure_tables()

    def _ensure_tables(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            for table_sql in DB_TABLES.values():
                cursor.execute(table_sql)
            for index_sql in DB_INDEXES:
                cursor.execute(index_sql)
            conn.commit()

    @contextmanager
    def get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with automatic cleanup.

        Yields:
            SQLite connection that will be automatically closed
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.create_function("contains_ci", 2, _contains_ci, deterministic=True)
        try:
            yield conn
        finally:
            conn.close()

    @staticmethod
    def generate_id() -> str:
        """Assign an opaque identifier for a new record."""
        return uuid.uuid4().hex

    # ==================== Queries ====================

    def find_tracks(
        self,
        genre: str | None = None,
        text: str | None = None,
        top_level_only: bool = True,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """Find records, newest first, with optional filters and pagination.

        Args:
            genre: Exact genre to match
            text: Case-insensitive substring matched against title, genre
                and contributor names
            top_level_only: Exclude singles that belong to an album
            limit: Page size
            offset: Number of matching records to skip

        Returns:
            Tuple of (records list, total matching count)
        """
        conditions = []
        params: list[Any] = []

        if top_level_only:
            conditions.append(TOP_LEVEL_CONDITION)

        if genre:
            conditions.append("genre = ?")
            params.append(genre)

        if text:
            conditions.append("(contains_ci(title, ?) OR contains_ci(genre, ?) OR contains_ci(contributor_names, ?))")
            params.extend([text, text, text])

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT COUNT(*) FROM tracks {where_clause}", params)
            total = cursor.fetchone()[0]

            cursor.execute(
                f"""
                SELECT * FROM tracks
                {where_clause}
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
            """,
                params + [limit, offset],
            )
            tracks = [_from_row(row) for row in cursor.fetchall()]

        log_database_operation("SELECT", "tracks", returned=len(tracks), total=total)
        return tracks, total

    def count_album_tracks(self, album_ids: Iterable[str]) -> dict[str, int]:
        """Count the records that reference each of the given albums."""
        album_ids = list(album_ids)
        counts = {album_id: 0 for album_id in album_ids}
        if not album_ids:
            return counts

        placeholders = ", ".join("?" for _ in album_ids)
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT album, COUNT(*) FROM tracks WHERE album IN ({placeholders}) GROUP BY album",
                album_ids,
            )
            for album_id, count in cursor.fetchall():
                counts[album_id] = count
        return counts

    def get_track_by_id(self, track_id: str) -> dict[str, Any] | None:
        """Get a single record by ID."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM tracks WHERE id = ?", (track_id,))
            row = cursor.fetchone()
            return _from_row(row) if row else None

    def get_tracks_by_album(self, album_id: str) -> list[dict[str, Any]]:
        """Get the records that belong to an album, in track-number order.

        Records without a track number sort after numbered ones.
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM tracks WHERE album = ?
                ORDER BY track_number IS NULL, track_number ASC, created_at ASC, rowid ASC
            """,
                (album_id,),
            )
            return [_from_row(row) for row in cursor.fetchall()]

    def get_distinct_genres(self) -> list[str]:
        """Get every distinct genre in the catalog, sorted."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT DISTINCT genre FROM tracks ORDER BY genre")
            return [row[0] for row in cursor.fetchall()]

    # ==================== Mutations ====================

    def add_track(self, data: dict[str, Any]) -> str:
        """Insert a new record.

        Returns:
            The ID of the inserted record
        """
        placeholders = ", ".join("?" for _ in TRACK_COLUMNS)
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"INSERT INTO tracks ({', '.join(TRACK_COLUMNS)}) VALUES ({placeholders})",
                _to_row(data),
            )
            conn.commit()

        log_database_operation("INSERT", "tracks", track_id=data["id"])
        return data["id"]

    def update_track(self, track_id: str, data: dict[str, Any]) -> bool:
        """Replace every stored column of an existing record."""
        assignments = ", ".join(f"{column} = ?" for column in TRACK_COLUMNS if column != "id")
        values = _to_row({**data, "id": track_id})[1:]
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"UPDATE tracks SET {assignments} WHERE id = ?", (*values, track_id))
            conn.commit()
            updated = cursor.rowcount > 0

        log_database_operation("UPDATE", "tracks", track_id=track_id, updated=updated)
        return updated

    def delete_track(self, track_id: str) -> bool:
        """Delete a record. Records that reference it are left untouched."""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM tracks WHERE id = ?", (track_id,))
            conn.commit()
            deleted = cursor.rowcount > 0

        log_database_operation("DELETE", "tracks", track_id=track_id, deleted=deleted)
        return deleted


# Global database instance (will be initialized in main.py)
_db: DatabaseService | None = None


def init_db(db_path: str | Path) -> DatabaseService:
    """Initialize the global database instance."""
    global _db
    _db = DatabaseService(db_path)
    return _db


def get_db() -> DatabaseService:
    """Get the global database instance."""
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db
