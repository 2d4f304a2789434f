import pytest

from kopa.errors import HistoryDecodeError
from kopa.models import (
    ImageEntry,
    TextEntry,
    entry_from_dict,
    entry_to_dict,
    history_from_document,
    history_to_document,
    new_entry_id,
)

VALID_ID = "3f2b8c1e-9a4d-4e7f-8b6a-1c2d3e4f5a6b"
VALID_HASH = "a" * 64


def text_dict(**overrides):
    data = {"type": "text", "id": VALID_ID, "value": "hello", "recorded": "2024-05-01T12:30:45.123Z"}
    data.update(overrides)
    return data


def image_dict(**overrides):
    data = text_dict(type="image", value="image 2024", file_path=f"/data/images/{VALID_HASH}.png", hash=VALID_HASH)
    data.update(overrides)
    return data


class TestEntryFromDict:
    def test_text(self):
        entry = entry_from_dict(text_dict())
        assert entry == TextEntry(id=VALID_ID, value="hello", recorded="2024-05-01T12:30:45.123Z")

    def test_image(self):
        entry = entry_from_dict(image_dict())
        assert isinstance(entry, ImageEntry)
        assert entry.hash == VALID_HASH

    def test_timestamp_without_millis(self):
        assert entry_from_dict(text_dict(recorded="2024-05-01T12:30:45Z")).recorded == "2024-05-01T12:30:45Z"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"type": "video"},
            {"id": "not-a-uuid"},
            {"value": ""},
            {"value": 42},
            {"recorded": "yesterday"},
            {"recorded": "2024-05-01 12:30:45"},
        ],
    )
    def test_invalid_text(self, overrides):
        with pytest.raises(HistoryDecodeError):
            entry_from_dict(text_dict(**overrides))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"file_path": "images/a.png"},
            {"hash": "ABC"},
            {"hash": "A" * 64},
            {"file_path": None},
        ],
    )
    def test_invalid_image(self, overrides):
        with pytest.raises(HistoryDecodeError):
            entry_from_dict(image_dict(**overrides))

    def test_not_an_object(self):
        with pytest.raises(HistoryDecodeError):
            entry_from_dict(["text"])


class TestEntryToDict:
    def test_text_keys(self):
        entry = entry_from_dict(text_dict())
        assert entry_to_dict(entry) == text_dict()

    def test_image_keys(self):
        assert entry_to_dict(entry_from_dict(image_dict())) == image_dict()

    def test_rejects_other_objects(self):
        with pytest.raises(TypeError):
            entry_to_dict("hello")


class TestDocument:
    def test_wraps_history(self):
        entry = entry_from_dict(text_dict())
        assert history_to_document([entry]) == {"clipboard_history": [text_dict()]}

    def test_empty_document(self):
        assert history_from_document({"clipboard_history": []}) == []

    @pytest.mark.parametrize("document", [[], {}, {"clipboard_history": {}}, None])
    def test_invalid_document(self, document):
        with pytest.raises(HistoryDecodeError):
            history_from_document(document)


class TestDedupKey:
    def test_text_uses_value(self):
        assert TextEntry(id=VALID_ID, value="v", recorded="2024-01-01T00:00:00Z").dedup_key == "v"

    def test_image_uses_hash(self):
        assert entry_from_dict(image_dict()).dedup_key == VALID_HASH


def test_new_entry_id_is_unique():
    assert new_entry_id() != new_entry_id()
