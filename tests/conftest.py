import io
import uuid

import pytest
from PIL import Image

from kopa.blobs import BlobStore
from kopa.models import ImageEntry, TextEntry
from kopa.storage import HistoryStore
from kopa.utils import compute_hash


@pytest.fixture
def blobs(tmp_path):
    return BlobStore(tmp_path / "images")


@pytest.fixture
def store(tmp_path, blobs):
    return HistoryStore(
        history_path=tmp_path / "history.json",
        lock_path=tmp_path / "history.lock",
        blobs=blobs,
        history_limit=1000,
        lock_timeout=0.5,
    )


@pytest.fixture
def make_png():
    """Factory fixture producing encoded image bytes."""

    def _make_png(color=(255, 0, 0, 255), size=(4, 4), fmt="PNG", mode="RGBA") -> bytes:
        buf = io.BytesIO()
        Image.new(mode, size, color).save(buf, format=fmt)
        return buf.getvalue()

    return _make_png


@pytest.fixture
def make_entry(blobs):
    """Factory fixture to create history entries for testing."""

    def _make_entry(value: str = "hello world", image: bool = False, recorded: str = "2024-01-01T00:00:00.000Z"):
        entry_id = str(uuid.uuid4())
        if image:
            digest = compute_hash(value)
            return ImageEntry(
                id=entry_id,
                value=value,
                recorded=recorded,
                file_path=str(blobs.path_for(digest)),
                hash=digest,
            )
        return TextEntry(id=entry_id, value=value, recorded=recorded)

    return _make_entry
