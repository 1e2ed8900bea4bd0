import pytest
import struct
import sys
import wave
import zlib
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from backend.services.database import DatabaseService
from backend.services.tracks import TrackService
from backend.services.uploads import StoredUpload, generate_filename
from hypothesis import settings
from PIL import Image

# Register Hypothesis profiles for property-based testing
settings.register_profile("fast", max_examples=50, deadline=None)
settings.register_profile("thorough", max_examples=1000, deadline=None)
settings.load_profile("fast")  # Default to fast profile

ADMIN_TOKEN = "test-admin-token"


def pytest_collection_modifyitems(items):
    """Automatically order tests: unit tests first, then property tests, then E2E tests."""
    for item in items:
        if item.get_closest_marker('order'):
            continue

        test_file = str(item.fspath)
        if 'test_unit_' in test_file:
            item.add_marker(pytest.mark.order(1))
        elif 'test_props_' in test_file:
            item.add_marker(pytest.mark.order(2))
        elif 'test_e2e_' in test_file:
            item.add_marker(pytest.mark.order(3))


def write_wav(path: Path, seconds: float = 1.0, sample_rate: int = 44100) -> Path:
    """Write a silent 16-bit mono WAV file."""
    frames = int(seconds * sample_rate)
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(b"\x00\x00" * frames)
    return path


def write_image(path: Path, size: tuple[int, int] = (3000, 3000)) -> Path:
    """Write a solid grayscale PNG of the given size."""
    Image.new("L", size, color=128).save(path, format="PNG")
    return path


def write_png_header(path: Path, width: int, height: int) -> Path:
    """Write a 1-bit PNG that declares the given size but carries no pixel data.

    Pillow reads the size from the header, so oversized images cost nothing.
    """

    def chunk(tag: bytes, data: bytes) -> bytes:
        return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", zlib.crc32(tag + data) & 0xFFFFFFFF)

    header = struct.pack(">IIBBBBB", width, height, 1, 0, 0, 0, 0)
    path.write_bytes(
        b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", header) + chunk(b"IDAT", zlib.compress(b"\x00")) + chunk(b"IEND", b"")
    )
    return path


@pytest.fixture(scope="session")
def media_dir(tmp_path_factory):
    """Generated media shared by the whole session (large covers are slow to encode)."""
    directory = tmp_path_factory.mktemp("media")
    write_image(directory / "cover.png")
    write_image(directory / "small.png", size=(800, 800))
    write_image(directory / "wide.png", size=(3000, 2999))
    write_png_header(directory / "huge.png", 20000, 20000)
    write_wav(directory / "tone.wav")
    write_wav(directory / "long.wav", seconds=3.0, sample_rate=22050)
    (directory / "not-audio.mp3").write_bytes(b"definitely not an mp3 stream" * 10)
    return directory


@pytest.fixture
def uploads_dir(tmp_path):
    directory = tmp_path / "uploads"
    directory.mkdir()
    return directory


@pytest.fixture
def catalog_db(tmp_path):
    """Catalog store backed by a temporary SQLite file."""
    return DatabaseService(tmp_path / "catalog.db")


@pytest.fixture
def track_service(catalog_db, uploads_dir):
    return TrackService(catalog_db, uploads_dir)


@pytest.fixture
def stage_upload(uploads_dir, media_dir):
    """Place a generated media file in the uploads directory as the gate would."""

    def _stage(fieldname: str, source: str) -> StoredUpload:
        original = media_dir / source
        filename = generate_filename(fieldname, original.name)
        path = uploads_dir / filename
        path.write_bytes(original.read_bytes())
        return StoredUpload(
            fieldname=fieldname,
            filename=filename,
            original_name=original.name,
            content_type=None,
            path=path,
            size=path.stat().st_size,
        )

    return _stage


@pytest.fixture
def api_env(tmp_path, monkeypatch):
    """Point the application settings at temporary storage."""
    from backend.config import get_settings

    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "api.db"))
    monkeypatch.setenv("UPLOADS_DIR", str(tmp_path / "api-uploads"))
    monkeypatch.setenv("ADMIN_TOKEN", ADMIN_TOKEN)
    monkeypatch.setenv("MAX_UPLOAD_FILE_COUNT", "3")
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def client(api_env):
    """TestClient with the application lifespan running."""
    from backend.main import app
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
