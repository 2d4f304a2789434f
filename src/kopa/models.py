import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Union

from kopa.errors import HistoryDecodeError

RECORDED_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{3})?Z$")
HASH_PATTERN = re.compile(r"^[a-f0-9]{64}$")


class EntryType(str, Enum):
    TEXT = "text"
    IMAGE = "image"


@dataclass(frozen=True)
class TextEntry:
    id: str
    value: str
    recorded: str

    @property
    def dedup_key(self) -> str:
        return self.value


@dataclass(frozen=True)
class ImageEntry:
    id: str
    value: str
    recorded: str
    file_path: str
    hash: str

    @property
    def dedup_key(self) -> str:
        return self.hash


ClipboardEntry = Union[TextEntry, ImageEntry]
ClipboardHistory = list[ClipboardEntry]


def new_entry_id() -> str:
    return str(uuid.uuid4())


def entry_to_dict(entry: ClipboardEntry) -> dict:
    match entry:
        case TextEntry(id=entry_id, value=value, recorded=recorded):
            return {"type": EntryType.TEXT.value, "id": entry_id, "value": value, "recorded": recorded}
        case ImageEntry(id=entry_id, value=value, recorded=recorded, file_path=file_path, hash=digest):
            return {
                "type": EntryType.IMAGE.value,
                "id": entry_id,
                "value": value,
                "recorded": recorded,
                "file_path": file_path,
                "hash": digest,
            }
    raise TypeError(f"Not a clipboard entry: {entry!r}")


def _require_str(data: dict, field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str):
        raise HistoryDecodeError(f"Field {field!r} must be a string, got {type(value).__name__}")
    return value


def _validate_common(data: dict) -> tuple[str, str, str]:
    entry_id = _require_str(data, "id")
    try:
        uuid.UUID(entry_id)
    except ValueError:
        raise HistoryDecodeError(f"Invalid entry id: {entry_id!r}") from None

    value = _require_str(data, "value")
    if not value:
        raise HistoryDecodeError(f"Entry {entry_id} has an empty value")

    recorded = _require_str(data, "recorded")
    if not RECORDED_PATTERN.match(recorded):
        raise HistoryDecodeError(f"Entry {entry_id} has an invalid timestamp: {recorded!r}")

    return entry_id, value, recorded


def entry_from_dict(data) -> ClipboardEntry:
    """Build a validated entry from its JSON form."""
    if not isinstance(data, dict):
        raise HistoryDecodeError(f"Entry must be an object, got {type(data).__name__}")

    try:
        entry_type = EntryType(data.get("type"))
    except ValueError:
        raise HistoryDecodeError(f"Unknown entry type: {data.get('type')!r}") from None

    entry_id, value, recorded = _validate_common(data)

    if entry_type == EntryType.TEXT:
        return TextEntry(id=entry_id, value=value, recorded=recorded)

    file_path = _require_str(data, "file_path")
    if not file_path.startswith("/"):
        raise HistoryDecodeError(f"Image entry {entry_id} has a relative path: {file_path!r}")
    digest = _require_str(data, "hash")
    if not HASH_PATTERN.match(digest):
        raise HistoryDecodeError(f"Image entry {entry_id} has an invalid hash: {digest!r}")
    return ImageEntry(id=entry_id, value=value, recorded=recorded, file_path=file_path, hash=digest)


def history_to_document(history: ClipboardHistory) -> dict:
    return {"clipboard_history": [entry_to_dict(e) for e in history]}


def history_from_document(document) -> ClipboardHistory:
    if not isinstance(document, dict) or not isinstance(document.get("clipboard_history"), list):
        raise HistoryDecodeError("History document must be an object with a 'clipboard_history' list")
    return [entry_from_dict(item) for item in document["clipboard_history"]]
