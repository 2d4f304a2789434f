"""Synthetic history generation for load testing the server and search."""

import logging
import random
import string
from datetime import datetime, timedelta, timezone

from kopa.models import ClipboardHistory, TextEntry, new_entry_id
from kopa.storage import HistoryStore
from kopa.utils import utc_timestamp

logger = logging.getLogger(__name__)

DEFAULT_SEED_COUNT = 100_000
PROGRESS_EVERY = 10_000

SPECIAL_CHARS = "!@#$%^&*()_+[]{}|;:,.<>?/~`"
LOREM_WORDS = [
    "lorem", "ipsum", "dolor", "sit", "amet", "consectetur",
    "adipiscing", "elit", "sed", "do", "eiusmod", "tempor",
    "incididunt", "ut", "labore", "et", "dolore", "magna", "aliqua",
]


def _random_chars(rng: random.Random, alphabet: str, length: int) -> str:
    return "".join(rng.choice(alphabet) for _ in range(length))


def _lorem(rng: random.Random, length: int) -> str:
    words: list[str] = []
    size = 0
    while size < length:
        word = rng.choice(LOREM_WORDS)
        words.append(word)
        size += len(word) + 1
    return " ".join(words)[:length].strip()


GENERATORS = {
    "alphanumeric": lambda rng, n: _random_chars(rng, string.ascii_letters + string.digits, n),
    "numbers": lambda rng, n: _random_chars(rng, string.digits, n),
    "special": lambda rng, n: _random_chars(rng, SPECIAL_CHARS, n),
    "lorem": _lorem,
}


def generate_entries(count: int, rng: random.Random | None = None, now: datetime | None = None) -> ClipboardHistory:
    """Build ``count`` text entries with random content recorded within the past year, newest first."""
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)
    year_seconds = int(timedelta(days=365).total_seconds())

    stamped = []
    for i in range(count):
        if i and i % PROGRESS_EVERY == 0:
            logger.info("Generated %d entries...", i)
        kind = rng.choice(list(GENERATORS))
        value = GENERATORS[kind](rng, rng.randint(10, 499))
        moment = now - timedelta(seconds=rng.randint(0, year_seconds))
        stamped.append((moment, TextEntry(id=new_entry_id(), value=value or kind, recorded=utc_timestamp(moment))))

    stamped.sort(key=lambda pair: pair[0], reverse=True)
    return [entry for _, entry in stamped]


def seed_history(store: HistoryStore, count: int = DEFAULT_SEED_COUNT, rng: random.Random | None = None) -> int:
    """Replace the history with ``count`` synthetic entries. Returns the number written."""
    logger.info("Populating history with %d entries...", count)
    entries = generate_entries(count, rng)
    store.write_locked(entries)
    logger.info("Successfully wrote %d entries to history.", len(entries))
    return len(entries)
