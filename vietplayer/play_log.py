"""Per-day counter of completed study cycles."""

from __future__ import annotations

import json
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from vietplayer.models import PlayLogEntry

LOGGER = logging.getLogger("vietplayer.play_log")

DayLike = Union[date, str]


def _day_key(day: DayLike) -> str:
    if isinstance(day, date):
        return day.isoformat()
    return date.fromisoformat(str(day)).isoformat()


class PlayLog:
    """Counts completed word cycles per calendar day.

    When ``path`` is given the log is read from that JSON file on construction
    and written back after every mutation.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = Path(path) if path is not None else None
        self._entries: List[PlayLogEntry] = []
        if self._path is not None:
            self._entries = self._load(self._path)

    @staticmethod
    def _load(path: Path) -> List[PlayLogEntry]:
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as f:
                raw = json.load(f) or []
        except (OSError, ValueError) as exc:
            LOGGER.warning("Failed to read %s: %s", path, exc)
            return []
        if not isinstance(raw, list):
            LOGGER.warning("%s does not contain a list; got %s", path.name, type(raw).__name__)
            return []
        return list(PlayLog._coerce_entries(raw))

    @staticmethod
    def _coerce_entries(items: Iterable) -> Iterable[PlayLogEntry]:
        for idx, it in enumerate(items):
            if isinstance(it, PlayLogEntry):
                yield PlayLogEntry(it.date, it.count)
                continue
            if not isinstance(it, dict):
                LOGGER.warning("History item %d is not a mapping; skipping", idx)
                continue
            try:
                yield PlayLogEntry(_day_key(it["date"]), max(0, int(it.get("count", 0))))
            except (KeyError, TypeError, ValueError) as exc:
                LOGGER.warning("Invalid history item at %d (%r): %s; skipping", idx, it, exc)

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            json.dump(self.to_json(), f, ensure_ascii=False, indent=2)

    def _find(self, key: str) -> Optional[PlayLogEntry]:
        for entry in self._entries:
            if entry.date == key:
                return entry
        return None

    # ----------------------------------------------------------------------------
    # Recording
    # ----------------------------------------------------------------------------
    def record_cycle(self, today: DayLike) -> int:
        """Add one completed cycle to ``today`` and return the day's new count."""
        key = _day_key(today)
        entry = self._find(key)
        if entry is None:
            entry = PlayLogEntry(key, 0)
            self._entries.append(entry)
        entry.count += 1
        LOGGER.debug("Recorded cycle for %s (count=%d)", key, entry.count)
        self.save()
        return entry.count

    @staticmethod
    def _is_history(items) -> bool:
        if isinstance(items, (list, tuple)):
            return True
        LOGGER.warning("History must be a list; got %s, ignoring", type(items).__name__)
        return False

    def merge(self, items: Iterable) -> None:
        """Merge imported entries, keeping the larger count for days present in both."""
        if not self._is_history(items):
            return
        for incoming in self._coerce_entries(items):
            existing = self._find(incoming.date)
            if existing is None:
                self._entries.append(incoming)
            else:
                existing.count = max(existing.count, incoming.count)
        self.save()

    def replace(self, items: Iterable) -> None:
        if not self._is_history(items):
            return
        self._entries = list(self._coerce_entries(items))
        self.save()

    # ----------------------------------------------------------------------------
    # Queries
    # ----------------------------------------------------------------------------
    def count_for(self, day: DayLike) -> int:
        entry = self._find(_day_key(day))
        return entry.count if entry else 0

    def total(self) -> int:
        return sum(e.count for e in self._entries)

    def entries(self) -> List[PlayLogEntry]:
        return [PlayLogEntry(e.date, e.count) for e in self._entries]

    def last_7_days(self, today: DayLike) -> List[Tuple[date, int]]:
        """Return ``(day, count)`` for the seven days ending with ``today``, oldest first."""
        end = date.fromisoformat(_day_key(today))
        days = [end - timedelta(days=offset) for offset in range(6, -1, -1)]
        return [(d, self.count_for(d)) for d in days]

    def to_json(self) -> list:
        return [{"date": e.date, "count": e.count} for e in self._entries]
