import io
import logging
import os
import tempfile
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from kopa.config import IMAGE_DIR
from kopa.errors import BlobCodecError

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG"
JPEG_SIGNATURE = b"\xff\xd8\xff"
PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


def detect_image_format(data: bytes) -> str | None:
    if len(data) < 4:
        return None
    if data.startswith(PNG_SIGNATURE):
        return "png"
    if data.startswith(JPEG_SIGNATURE):
        return "jpeg"
    return None


class BlobStore:
    """Content-addressed image files named ``<sha256>.png`` under one directory."""

    def __init__(self, images_dir: str | Path | None = None):
        self.images_dir = Path(images_dir) if images_dir else IMAGE_DIR

    def path_for(self, content_hash: str) -> Path:
        return self.images_dir / f"{content_hash}.png"

    def contains(self, file_path: str | Path) -> bool:
        """Check that ``file_path`` lies inside the images directory.

        Pure path arithmetic: the filesystem is never consulted, so a
        rejected path is never touched.
        """
        root = os.path.abspath(self.images_dir)
        candidate = os.path.abspath(file_path)
        if candidate == root:
            return False
        return os.path.commonpath([root, candidate]) == root

    def save_png(self, raw_bytes: bytes, dest: str | Path) -> Path:
        """Re-encode ``raw_bytes`` as PNG at ``dest``, replacing any existing file."""
        dest = Path(dest)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with Image.open(io.BytesIO(raw_bytes)) as img:
                img.load()
                if img.mode not in PNG_MODES:
                    img = img.convert("RGBA")
                fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=".blob-", suffix=".png")
                try:
                    with os.fdopen(fd, "wb") as tmp:
                        img.save(tmp, format="PNG")
                    os.replace(tmp_name, dest)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise BlobCodecError(f"Failed to save image {dest}: {e}") from e
        return dest

    def delete(self, file_path: str | Path) -> bool:
        """Delete a blob. Returns False when it was already gone."""
        try:
            Path(file_path).unlink()
        except FileNotFoundError:
            return False
        return True
