from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from kopa.utils import compute_hash, ensure_dirs, truncate_text, utc_timestamp


class TestComputeHash:
    def test_string_input(self):
        h = compute_hash("hello")
        assert isinstance(h, str)
        assert len(h) == 64  # SHA-256 hex digest

    def test_known_digest(self):
        assert compute_hash(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_different_content_different_hash(self):
        assert compute_hash("abc") != compute_hash("xyz")

    def test_string_and_bytes_same_hash(self):
        assert compute_hash("hello") == compute_hash(b"hello")


class TestTruncateText:
    def test_short_text_unchanged(self):
        assert truncate_text("hello", 60) == "hello"

    def test_long_text_truncated(self):
        result = truncate_text("a" * 100, 60)
        assert len(result) == 60
        assert result.endswith("...")

    def test_multiline_collapsed(self):
        assert truncate_text("hello\nworld\nfoo", 60) == "hello world foo"

    def test_exact_length_not_truncated(self):
        text = "a" * 60
        assert truncate_text(text, 60) == text

    def test_tiny_limit(self):
        assert truncate_text("abcdef", 2) == "ab"


class TestUtcTimestamp:
    def test_millisecond_format(self):
        moment = datetime(2024, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc)
        assert utc_timestamp(moment) == "2024-01-02T03:04:05.678Z"

    def test_converts_to_utc(self):
        moment = datetime(2024, 1, 2, 5, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert utc_timestamp(moment) == "2024-01-02T03:00:00.000Z"

    def test_now(self):
        assert utc_timestamp().endswith("Z")


class TestEnsureDirs:
    def test_creates_directories(self, tmp_path):
        data_dir = tmp_path / "data"
        image_dir = data_dir / "images"
        with patch("kopa.utils.DATA_DIR", data_dir), patch("kopa.utils.IMAGE_DIR", image_dir):
            ensure_dirs()
        assert data_dir.is_dir()
        assert image_dir.is_dir()
