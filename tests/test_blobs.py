import pytest
from PIL import Image

from kopa.blobs import BlobStore, detect_image_format
from kopa.errors import BlobCodecError


class TestDetectImageFormat:
    def test_png(self, make_png):
        assert detect_image_format(make_png()) == "png"

    def test_jpeg(self, make_png):
        assert detect_image_format(make_png((1, 2, 3), fmt="JPEG", mode="RGB")) == "jpeg"

    def test_text(self):
        assert detect_image_format(b"hello world") is None

    def test_too_short(self):
        assert detect_image_format(b"\x89PN") is None


class TestContains:
    def test_inside(self, blobs):
        assert blobs.contains(blobs.images_dir / "abc.png")

    def test_outside(self, blobs, tmp_path):
        assert not blobs.contains(tmp_path / "history.json")

    def test_traversal(self, blobs):
        assert not blobs.contains(f"{blobs.images_dir}/../history.json")

    def test_sibling_prefix(self, blobs):
        assert not blobs.contains(f"{blobs.images_dir}-evil/abc.png")

    def test_root_itself(self, blobs):
        assert not blobs.contains(blobs.images_dir)

    def test_does_not_touch_filesystem(self, blobs):
        assert blobs.contains(blobs.images_dir / "never-written.png")
        assert not blobs.images_dir.exists()


class TestSavePng:
    def test_path_is_function_of_hash(self, blobs):
        assert blobs.path_for("ab" * 32) == blobs.images_dir / f"{'ab' * 32}.png"

    def test_save_png(self, blobs, make_png):
        dest = blobs.save_png(make_png(), blobs.path_for("a" * 64))
        with Image.open(dest) as img:
            assert img.format == "PNG"
            assert img.size == (4, 4)

    def test_save_replaces_existing(self, blobs, make_png):
        dest = blobs.path_for("a" * 64)
        blobs.save_png(make_png(size=(2, 2)), dest)
        blobs.save_png(make_png(size=(8, 8)), dest)
        with Image.open(dest) as img:
            assert img.size == (8, 8)
        assert list(blobs.images_dir.iterdir()) == [dest]

    def test_cmyk_jpeg_converted(self, blobs, make_png):
        data = make_png((0, 0, 0, 0), fmt="JPEG", mode="CMYK")
        dest = blobs.save_png(data, blobs.path_for("c" * 64))
        with Image.open(dest) as img:
            assert img.mode == "RGBA"

    def test_garbage_raises(self, blobs):
        dest = blobs.path_for("d" * 64)
        with pytest.raises(BlobCodecError):
            blobs.save_png(b"\x89PNG not really", dest)
        assert not dest.exists()


class TestDelete:
    def test_delete(self, blobs, make_png):
        dest = blobs.save_png(make_png(), blobs.path_for("a" * 64))
        assert blobs.delete(dest) is True
        assert not dest.exists()

    def test_delete_missing(self, blobs):
        assert blobs.delete(blobs.path_for("a" * 64)) is False
