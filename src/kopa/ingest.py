import logging
from datetime import datetime, timezone
from enum import Enum
from typing import BinaryIO

from kopa.blobs import detect_image_format
from kopa.storage import HistoryStore
from kopa.utils import compute_hash, utc_timestamp

logger = logging.getLogger(__name__)


class IngestResult(str, Enum):
    EMPTY = "empty"
    TOO_LARGE = "too_large"
    BLANK = "blank"
    TEXT = "text"
    IMAGE = "image"


def image_display_value(moment: datetime | None = None) -> str:
    return f"📷 image {utc_timestamp(moment or datetime.now(timezone.utc))}"


def store_payload(payload: bytes, store: HistoryStore, max_bytes: int) -> IngestResult:
    """Classify one captured clipboard payload and record it.

    Oversized payloads are skipped, not rejected: the watcher that sent
    them must not see a failure.
    """
    if not payload:
        return IngestResult.EMPTY

    if len(payload) > max_bytes:
        logger.info(
            "Skipped storing clipboard content: %.2fMB exceeds %dMB limit",
            len(payload) / 1024 / 1024,
            max_bytes // (1024 * 1024),
        )
        return IngestResult.TOO_LARGE

    if detect_image_format(payload):
        store.add_image(compute_hash(payload), payload, image_display_value())
        return IngestResult.IMAGE

    text = payload.decode("utf-8", errors="replace").strip()
    if not text:
        return IngestResult.BLANK
    store.add_text(text)
    return IngestResult.TEXT


def run_store(stream: BinaryIO, store: HistoryStore, max_bytes: int) -> IngestResult:
    """Read a whole payload from ``stream`` (the watcher's pipe) and store it."""
    return store_payload(stream.read(), store, max_bytes)
