"""Metadata extraction for uploaded media.

Audio properties come from mutagen, cover image dimensions from Pillow.
Both are pure functions over file contents.
"""

import mutagen
from backend.errors import ValidationError
from backend.models.track import COVER_SIZE, CoverDimensions
from dataclasses import dataclass
from pathlib import Path
from PIL import Image

# mutagen file type -> container name reported to clients
CONTAINER_NAMES = {
    "MP3": "MPEG",
    "EasyMP3": "MPEG",
    "FLAC": "FLAC",
    "WAVE": "WAVE",
    "AAC": "ADTS",
    "MP4": "MPEG-4",
    "EasyMP4": "MPEG-4",
    "AIFF": "AIFF",
    "OggVorbis": "Ogg",
    "OggOpus": "Ogg",
    "OggFLAC": "Ogg",
}


@dataclass
class AudioMetadata:
    """Audio properties of an uploaded file."""

    bitrate: int = 0  # kbps
    duration: int = 0  # seconds
    sample_rate: int = 0  # Hz
    file_type: str = ""


def extract_audio_metadata(filepath: str | Path) -> AudioMetadata:
    """Extract audio properties from a file using mutagen.

    Args:
        filepath: Path to the audio file

    Returns:
        AudioMetadata with bitrate in kbps and duration in whole seconds

    Raises:
        ValidationError: If the file is not a readable audio file
    """
    path = Path(filepath)
    try:
        audio = mutagen.File(str(path))
    except mutagen.MutagenError as e:
        raise ValidationError(f"Error extracting audio metadata: {e}") from e

    if audio is None or audio.info is None:
        raise ValidationError(f"Error extracting audio metadata: unrecognized audio file {path.name}")

    info = audio.info
    bitrate = getattr(info, "bitrate", 0) or 0
    length = getattr(info, "length", 0) or 0

    return AudioMetadata(
        bitrate=round(bitrate / 1000),
        duration=round(length),
        sample_rate=getattr(info, "sample_rate", 0) or 0,
        file_type=CONTAINER_NAMES.get(type(audio).__name__) or path.suffix.lstrip(".").lower(),
    )


def get_image_dimensions(filepath: str | Path) -> CoverDimensions:
    """Read the pixel dimensions of an image without decoding it."""
    try:
        with Image.open(filepath) as image:
            width, height = image.size
    except Image.DecompressionBombError as e:
        # Rejected before decoding; far larger than any valid cover
        raise ValidationError(f"Cover image must be exactly {COVER_SIZE}x{COVER_SIZE} pixels ({e})") from e
    except OSError as e:
        raise ValidationError(f"Error getting image dimensions: {e}") from e
    return CoverDimensions(width=width, height=height)
