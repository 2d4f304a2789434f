import random
from datetime import datetime, timezone

from kopa.models import RECORDED_PATTERN, TextEntry
from kopa.seed import generate_entries, seed_history


class TestGenerateEntries:
    def test_count_and_shape(self):
        entries = generate_entries(50, random.Random(1))
        assert len(entries) == 50
        assert all(isinstance(e, TextEntry) for e in entries)
        assert all(e.value and RECORDED_PATTERN.match(e.recorded) for e in entries)
        assert len({e.id for e in entries}) == 50

    def test_newest_first(self):
        entries = generate_entries(30, random.Random(2))
        recorded = [e.recorded for e in entries]
        assert recorded == sorted(recorded, reverse=True)

    def test_within_past_year(self):
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        entries = generate_entries(30, random.Random(3), now=now)
        assert all("2023-06-01" <= e.recorded[:10] <= "2024-06-01" for e in entries)

    def test_zero(self):
        assert generate_entries(0) == []


def test_seed_history_replaces_history(store):
    store.add_text("existing")
    assert seed_history(store, 25, random.Random(4)) == 25
    history = store.read()
    assert len(history) == 25
    assert "existing" not in [e.value for e in history]
    assert not store.lock_path.exists()
