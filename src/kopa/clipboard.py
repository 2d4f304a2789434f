import logging
import subprocess
from pathlib import Path

from kopa.blobs import BlobStore
from kopa.config import WL_COPY_PATH
from kopa.errors import ClipboardCopyError, InvalidPathError
from kopa.models import ClipboardEntry, ImageEntry, TextEntry

logger = logging.getLogger(__name__)

COPY_TIMEOUT = 10.0


class ClipboardWriter:
    """Puts history entries back on the Wayland clipboard via ``wl-copy``."""

    def __init__(self, blobs: BlobStore | None = None, wl_copy_path: str = WL_COPY_PATH):
        self._blobs = blobs if blobs is not None else BlobStore()
        self._wl_copy_path = wl_copy_path

    def copy_text(self, text: str) -> None:
        self._run([self._wl_copy_path], text.encode("utf-8"))

    def copy_image(self, file_path: str | Path) -> None:
        if not self._blobs.contains(file_path):
            raise InvalidPathError(f"Invalid image path: {file_path} is not within {self._blobs.images_dir}")
        try:
            data = Path(file_path).read_bytes()
        except OSError as e:
            raise ClipboardCopyError(f"Failed to read image {file_path}: {e}") from e
        self._run([self._wl_copy_path, "--type", "image/png"], data)

    def copy_entry(self, entry: ClipboardEntry) -> None:
        match entry:
            case ImageEntry(file_path=file_path):
                self.copy_image(file_path)
            case TextEntry(value=value):
                self.copy_text(value)

    def _run(self, args: list[str], data: bytes) -> None:
        try:
            result = subprocess.run(
                args,
                input=data,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=COPY_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ClipboardCopyError(f"Failed to run {args[0]}: {e}") from e

        if result.returncode != 0:
            raise ClipboardCopyError(f"{args[0]} exited with code {result.returncode}")
        logger.info("Copied %d bytes to clipboard", len(data))
