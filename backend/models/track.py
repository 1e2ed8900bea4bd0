"""Track and album models for the music catalog.

A catalog record is either a ``SingleRecord`` (carries audio) or an
``AlbumRecord`` (groups singles, never carries audio). ``TrackRecord`` is
the tagged union of the two, discriminated by ``kind``.
"""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, Literal

PLACEHOLDER_COVER = "placeholder-image.svg"
COVER_SIZE = 3000

# Largest value an SQLite INTEGER column holds
MAX_STORED_INT = 2**63 - 1


class TrackKind(str, Enum):
    """Record discriminator."""

    SINGLE = "Single"
    ALBUM = "Album"


class ContributorRole(str, Enum):
    """Role a contributor played on a record."""

    ARTIST = "Artist"
    PRODUCER = "Producer"
    COMPOSER = "Composer"
    LYRICIST = "Lyricist"
    ARRANGER = "Arranger"
    ENGINEER = "Engineer"
    PERFORMER = "Performer"
    WRITER = "Writer"
    OTHER = "Other"


class CatalogModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class Contributor(CatalogModel):
    """A named contributor with a role."""

    name: str = Field(min_length=1)
    role: ContributorRole


class CoverDimensions(CatalogModel):
    """Pixel dimensions of a cover image."""

    width: int = Field(ge=0)
    height: int = Field(ge=0)

    @property
    def is_cover_size(self) -> bool:
        return self.width == COVER_SIZE and self.height == COVER_SIZE


def placeholder_dimensions() -> CoverDimensions:
    """Dimensions recorded for the placeholder cover."""
    return CoverDimensions(width=COVER_SIZE, height=COVER_SIZE)


class TrackBase(CatalogModel):
    """Fields shared by singles and albums."""

    id: str
    title: str = Field(min_length=1)
    genre: str = Field(min_length=1)
    contributors: list[Contributor] = Field(default_factory=list)
    listen_count: int = Field(0, ge=0, le=MAX_STORED_INT)
    publish_date: datetime
    cover_image: str = PLACEHOLDER_COVER
    cover_image_dimensions: CoverDimensions = Field(default_factory=placeholder_dimensions)
    created_at: datetime
    updated_at: datetime

    @property
    def has_uploaded_cover(self) -> bool:
        return bool(self.cover_image) and self.cover_image != PLACEHOLDER_COVER

    @model_validator(mode="after")
    def check_cover_dimensions(self):
        """A real cover upload must be exactly COVER_SIZE x COVER_SIZE."""
        if self.has_uploaded_cover and not self.cover_image_dimensions.is_cover_size:
            raise ValueError(f"Cover image must be exactly {COVER_SIZE}x{COVER_SIZE} pixels")
        return self


class SingleRecord(TrackBase):
    """A single track; standalone or a child of an album."""

    kind: Literal["Single"] = "Single"
    audio_file: str = ""
    bitrate: int = Field(0, ge=0, le=MAX_STORED_INT)  # kbps
    duration: int = Field(0, ge=0, le=MAX_STORED_INT)  # seconds
    sample_rate: int = Field(0, ge=0, le=MAX_STORED_INT)  # Hz
    file_type: str = ""
    album: str | None = None
    track_number: int | None = Field(None, ge=1, le=MAX_STORED_INT)


class AlbumRecord(TrackBase):
    """An album; its tracks are singles whose ``album`` points here."""

    kind: Literal["Album"] = "Album"


TrackRecord = Annotated[SingleRecord | AlbumRecord, Field(discriminator="kind")]

track_record_adapter: TypeAdapter[SingleRecord | AlbumRecord] = TypeAdapter(TrackRecord)

contributors_adapter: TypeAdapter[list[Contributor]] = TypeAdapter(list[Contributor])


def validate_track_record(data: dict) -> SingleRecord | AlbumRecord:
    """Validate a raw field mapping into the matching record variant."""
    return track_record_adapter.validate_python(data)
