import json
import logging
import os
import tempfile
from pathlib import Path

from kopa import lock
from kopa.blobs import BlobStore
from kopa.config import DEFAULT_HISTORY_LIMIT, HISTORY_PATH, LOCK_PATH, LOCK_TIMEOUT
from kopa.errors import HistoryDecodeError, HistoryReadError, HistoryWriteError
from kopa.models import (
    ClipboardEntry,
    ClipboardHistory,
    ImageEntry,
    TextEntry,
    history_from_document,
    history_to_document,
    new_entry_id,
)
from kopa.utils import utc_timestamp

logger = logging.getLogger(__name__)


class HistoryStore:
    """The clipboard history, persisted as one JSON document.

    Mutating operations hold the file lock for their whole
    read-modify-write cycle. Plain ``read`` is unlocked.
    """

    def __init__(
        self,
        history_path: str | Path | None = None,
        lock_path: str | Path | None = None,
        blobs: BlobStore | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        lock_timeout: float = LOCK_TIMEOUT,
    ):
        self.history_path = Path(history_path) if history_path else HISTORY_PATH
        self.lock_path = Path(lock_path) if lock_path else LOCK_PATH
        self.blobs = blobs if blobs is not None else BlobStore()
        self.history_limit = history_limit
        self.lock_timeout = lock_timeout

    def read(self) -> ClipboardHistory:
        try:
            raw = self.history_path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise HistoryReadError(f"Failed to read history {self.history_path}: {e}") from e

        try:
            document = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            # UnicodeDecodeError is a ValueError
            raise HistoryDecodeError(f"Failed to parse history {self.history_path}: {e}") from e
        return history_from_document(document)

    def write(self, history: ClipboardHistory) -> None:
        """Replace the history file atomically. Callers must hold the lock."""
        payload = json.dumps(history_to_document(history), ensure_ascii=False, indent=2)
        tmp_name = None
        try:
            self.history_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.history_path.parent, prefix=".history-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.history_path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise HistoryWriteError(f"Failed to write history {self.history_path}: {e}") from e

    def write_locked(self, history: ClipboardHistory) -> None:
        with lock.locked(self.lock_path, self.lock_timeout):
            self.write(history)

    def add_text(self, value: str) -> TextEntry | None:
        """Record a text capture, bumping an existing duplicate to the top.

        Returns the new entry, or None when nothing was written.
        """
        trimmed = value.strip()
        if not trimmed:
            return None

        with lock.locked(self.lock_path, self.lock_timeout):
            history = self.read()
            if history and isinstance(history[0], TextEntry) and history[0].value == trimmed:
                return None

            existing = self._index_of(history, lambda e: isinstance(e, TextEntry) and e.value == trimmed)
            if existing is not None:
                del history[existing]

            entry = TextEntry(id=new_entry_id(), value=trimmed, recorded=utc_timestamp())
            history.insert(0, entry)
            history = self._apply_eviction(history)
            self.write(history)

        if existing is not None:
            logger.info("Bumped text entry to top (length %d)", len(trimmed))
        else:
            logger.info("Added text entry (length %d)", len(trimmed))
        return entry

    def add_image(self, content_hash: str, raw_bytes: bytes, display_value: str) -> ImageEntry | None:
        """Record an image capture under its content-addressed blob path.

        Returns the new entry, or None when the same image is already on top.
        """
        with lock.locked(self.lock_path, self.lock_timeout):
            history = self.read()
            image_path = str(self.blobs.path_for(content_hash))

            if history and isinstance(history[0], ImageEntry) and history[0].file_path == image_path:
                logger.info("Duplicate image already at top, skipping (%s)", content_hash)
                return None

            # Re-encoding replaces a relocated duplicate's blob in place.
            self.blobs.save_png(raw_bytes, image_path)

            existing = self._index_of(history, lambda e: isinstance(e, ImageEntry) and e.hash == content_hash)
            if existing is not None:
                del history[existing]

            entry = ImageEntry(
                id=new_entry_id(),
                value=display_value,
                recorded=utc_timestamp(),
                file_path=image_path,
                hash=content_hash,
            )
            history.insert(0, entry)
            history = self._apply_eviction(history)
            self.write(history)

        if existing is not None:
            logger.info("Bumped image entry to top (%s)", image_path)
        else:
            logger.info("Added image entry (%s)", image_path)
        return entry

    def evict(self, history: ClipboardHistory) -> tuple[ClipboardHistory, ClipboardHistory]:
        """Split history at the retention limit, deleting blobs of evicted images.

        Returns ``(kept, evicted)``.
        """
        kept = history[: self.history_limit]
        evicted = history[self.history_limit :]
        for entry in evicted:
            if isinstance(entry, ImageEntry):
                self._delete_blob(entry)
        return kept, evicted

    def get_entry(self, entry_id: str) -> ClipboardEntry | None:
        for entry in self.read():
            if entry.id == entry_id:
                return entry
        return None

    def delete_entry(self, entry_id: str) -> bool:
        with lock.locked(self.lock_path, self.lock_timeout):
            history = self.read()
            index = self._index_of(history, lambda e: e.id == entry_id)
            if index is None:
                return False
            entry = history.pop(index)
            self.write(history)
        logger.info("Deleted entry %s", entry_id)
        if isinstance(entry, ImageEntry):
            self._delete_blob(entry)
        return True

    def clear(self) -> int:
        with lock.locked(self.lock_path, self.lock_timeout):
            history = self.read()
            self.write([])
        logger.info("Cleared %d entries", len(history))
        for entry in history:
            if isinstance(entry, ImageEntry):
                self._delete_blob(entry)
        return len(history)

    def _apply_eviction(self, history: ClipboardHistory) -> ClipboardHistory:
        kept, evicted = self.evict(history)
        if evicted:
            logger.info("Evicted %d entries beyond limit of %d", len(evicted), self.history_limit)
        return kept

    def _delete_blob(self, entry: ImageEntry) -> None:
        try:
            self.blobs.delete(entry.file_path)
        except OSError:
            logger.exception("Error deleting image %s", entry.file_path)

    @staticmethod
    def _index_of(history: ClipboardHistory, predicate) -> int | None:
        for i, entry in enumerate(history):
            if predicate(entry):
                return i
        return None
