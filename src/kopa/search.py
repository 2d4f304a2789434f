import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass

from kopa.config import FILTER_TIMEOUT, FZF_PATH
from kopa.models import ClipboardEntry

logger = logging.getLogger(__name__)


@dataclass
class Page:
    entries: list[ClipboardEntry]
    next_cursor: int | None


def paginate(entries: Sequence[ClipboardEntry], cursor: int = 0, limit: int = 50) -> Page:
    """Slice one page out of ``entries``; ``next_cursor`` is None on the last page."""
    window = list(entries[cursor : cursor + limit])
    next_cursor = cursor + limit if len(entries) > cursor + limit else None
    return Page(entries=window, next_cursor=next_cursor)


def substring_filter(query: str, entries: Sequence[ClipboardEntry]) -> list[ClipboardEntry]:
    lowered = query.lower()
    return [e for e in entries if lowered in e.value.lower()]


class FuzzyFilter:
    """Ranks entries with ``fzf --filter``, falling back to substring matching."""

    def __init__(self, fzf_path: str = FZF_PATH, timeout: float = FILTER_TIMEOUT):
        self._fzf_path = fzf_path
        self._timeout = timeout

    def filter(self, query: str, entries: Sequence[ClipboardEntry]) -> list[ClipboardEntry]:
        if not query.strip():
            return list(entries)

        ranked = self._run_fzf(query, [e.value for e in entries])
        if ranked is None:
            return substring_filter(query, entries)

        matched: list[ClipboardEntry] = []
        seen: set[int] = set()
        for index in ranked:
            if 0 <= index < len(entries) and index not in seen:
                seen.add(index)
                matched.append(entries[index])
        return matched

    def _run_fzf(self, query: str, values: list[str]) -> list[int] | None:
        """Rank ``values`` with fzf, returning their indices best match first.

        Candidates are sent as ``<index>\\t<value>`` with NULs blanked out so
        a value never splits into several records; only the value field is
        matched.
        """
        args = [
            self._fzf_path, "--filter", query, "-i", "--read0", "--print0",
            "--delimiter", "\t", "--nth", "2..",
        ]
        candidates = [f"{i}\t{value.replace(chr(0), ' ')}" for i, value in enumerate(values)]
        try:
            result = subprocess.run(
                args,
                input="\0".join(candidates).encode("utf-8"),
                capture_output=True,
                timeout=self._timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.info("fzf unavailable (%s), falling back to substring search", e)
            return None

        if result.returncode != 0:
            logger.info("fzf exited with code %d, falling back to substring search", result.returncode)
            return None

        indices = []
        for record in result.stdout.decode("utf-8", errors="replace").split("\0"):
            head, _, _ = record.partition("\t")
            if head.isdigit():
                indices.append(int(head))
        return indices
