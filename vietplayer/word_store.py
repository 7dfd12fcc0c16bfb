"""YAML-backed word store.

Expected YAML schema (data/words.yaml):

    words:
      - id: "1718000000000"
        primary: "xin chào"
        secondary: "안녕하세요"
        created_at: 1718000000000
        included: true

A bare list of items is accepted as well. Items that lack an id or either
text, carry a non-boolean ``included``, or repeat an earlier id are skipped
with a warning.
"""

from __future__ import annotations

import json
import logging
import time
import unicodedata
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from vietplayer.models import VietPlayerError, Word

LOGGER = logging.getLogger("vietplayer.word_store")


class WordStoreError(VietPlayerError):
    """Raised for unknown word ids and unusable import payloads."""


def _normalise(text: str) -> str:
    return unicodedata.normalize("NFC", str(text or "")).strip()


def _word_from_mapping(it: Dict[str, Any]) -> Optional[Word]:
    """Build a Word from a stored or imported mapping.

    Besides the YAML keys, the legacy browser export keys (``vietnamese``,
    ``korean``, ``checked``, ``createdAt``) are understood.
    """
    word_id = _normalise(it.get("id") or "")
    primary = _normalise(it.get("primary") or it.get("vietnamese") or "")
    secondary = _normalise(it.get("secondary") or it.get("korean") or "")
    if not word_id or not primary or not secondary:
        return None

    included = it.get("included", it.get("checked"))
    if included is not None and not isinstance(included, bool):
        return None
    created_at = it.get("created_at", it.get("createdAt"))
    try:
        created_at = int(created_at) if created_at is not None else None
    except (TypeError, ValueError):
        created_at = None
    return Word(
        id=word_id,
        text_primary=primary,
        text_secondary=secondary,
        included=True if included is None else included,
        created_at=created_at,
    )


def _word_to_mapping(word: Word) -> Dict[str, Any]:
    return {
        "id": word.id,
        "primary": word.text_primary,
        "secondary": word.text_secondary,
        "created_at": word.created_at,
        "included": word.included,
    }


def parse_words(items: Any) -> List[Word]:
    """Valid words from ``items``; only the first occurrence of an id is kept."""
    out: List[Word] = []
    if not isinstance(items, list):
        return out
    seen = set()
    for idx, it in enumerate(items):
        if not isinstance(it, dict):
            LOGGER.warning("Word item %d is not a mapping; skipping", idx)
            continue
        word = _word_from_mapping(it)
        if word is None:
            LOGGER.warning(
                "Invalid word at %d: id=%r, primary=%r, secondary=%r, included=%r; skipping",
                idx, it.get("id"), it.get("primary", it.get("vietnamese")),
                it.get("secondary", it.get("korean")), it.get("included", it.get("checked")),
            )
            continue
        if word.id in seen:
            LOGGER.warning("Duplicate word id %r at %d; skipping", word.id, idx)
            continue
        seen.add(word.id)
        out.append(word)
    return out


class WordStore:
    """Ordered collection of words persisted to a YAML file.

    Every mutation is written straight back to ``path`` (when given).
    """

    def __init__(self, path: Optional[Path] = None, words: Optional[List[Word]] = None) -> None:
        self._path = Path(path) if path is not None else None
        if words is not None:
            self._words: List[Word] = list(words)
        elif self._path is not None:
            self._words = self._load(self._path)
        else:
            self._words = []

    # ----------------------------------------------------------------------------
    # Persistence
    # ----------------------------------------------------------------------------
    @staticmethod
    def _load(path: Path) -> List[Word]:
        if not path.exists():
            LOGGER.info("%s not found; starting with an empty word list", path)
            return []
        try:
            with path.open("r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            LOGGER.warning("Failed to read %s: %s", path, exc)
            return []

        if isinstance(raw, dict) and isinstance(raw.get("words"), list):
            items = raw["words"]
        elif isinstance(raw, list):
            items = raw
        else:
            LOGGER.warning("%s does not contain a 'words' list; got %s", path.name, type(raw).__name__)
            return []

        words = parse_words(items)
        LOGGER.info("Loaded %d words from %s", len(words), path.name)
        return words

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"words": [_word_to_mapping(w) for w in self._words]}
        with self._path.open("w", encoding="utf-8") as f:
            yaml.safe_dump(payload, f, allow_unicode=True, sort_keys=False)

    # ----------------------------------------------------------------------------
    # Queries
    # ----------------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._words)

    def words(self) -> List[Word]:
        return list(self._words)

    def get(self, word_id: str) -> Word:
        for w in self._words:
            if w.id == word_id:
                return w
        raise WordStoreError(f"No word with id {word_id!r}")

    def included_words(self) -> List[Word]:
        """Words selected for playback, in stored order."""
        return [w for w in self._words if w.included]

    def search(self, query: str = "") -> List[Word]:
        """Case-insensitive substring search over both texts, sorted by primary text."""
        q = _normalise(query).casefold()
        hits = [
            w for w in self._words
            if q in w.text_primary.casefold() or q in w.text_secondary.casefold()
        ]
        return sorted(hits, key=lambda w: w.text_primary.casefold())

    # ----------------------------------------------------------------------------
    # Mutations
    # ----------------------------------------------------------------------------
    def add(self, primary: str, secondary: str) -> Word:
        primary, secondary = _normalise(primary), _normalise(secondary)
        if not primary or not secondary:
            raise WordStoreError("Both texts are required")
        now = int(time.time() * 1000)
        word_id = str(now)
        # Two adds within the same millisecond must not share an id
        existing = {w.id for w in self._words}
        while word_id in existing:
            now += 1
            word_id = str(now)
        word = Word(id=word_id, text_primary=primary, text_secondary=secondary,
                    included=True, created_at=now)
        self._words.append(word)
        self.save()
        LOGGER.info("Added word %s: %s / %s", word.id, primary, secondary)
        return word

    def _replace_at(self, word_id: str, new: Word) -> Word:
        for i, w in enumerate(self._words):
            if w.id == word_id:
                self._words[i] = new
                self.save()
                return new
        raise WordStoreError(f"No word with id {word_id!r}")

    def edit(self, word_id: str, primary: str, secondary: str) -> Word:
        primary, secondary = _normalise(primary), _normalise(secondary)
        if not primary or not secondary:
            raise WordStoreError("Both texts are required")
        old = self.get(word_id)
        return self._replace_at(word_id, replace(old, text_primary=primary, text_secondary=secondary))

    def set_included(self, word_id: str, included: bool) -> Word:
        old = self.get(word_id)
        return self._replace_at(word_id, replace(old, included=bool(included)))

    def toggle(self, word_id: str) -> Word:
        old = self.get(word_id)
        return self.set_included(word_id, not old.included)

    def delete(self, word_id: str) -> None:
        before = len(self._words)
        self._words = [w for w in self._words if w.id != word_id]
        if len(self._words) == before:
            raise WordStoreError(f"No word with id {word_id!r}")
        self.save()
        LOGGER.info("Deleted word %s", word_id)

    # ----------------------------------------------------------------------------
    # Export / import
    # ----------------------------------------------------------------------------
    def export_json(self, history: Optional[list] = None) -> str:
        data = {
            "words": [_word_to_mapping(w) for w in self._words],
            "history": list(history or []),
        }
        return json.dumps(data, ensure_ascii=False)

    def import_json(self, payload: str, merge: bool = True) -> Dict[str, Any]:
        """Import words from an export payload.

        With ``merge`` the words whose id is not already present are appended;
        otherwise the stored words are replaced. Returns the decoded payload so
        the caller can route its ``history`` to the play log.
        """
        try:
            data = json.loads(payload)
        except ValueError as exc:
            raise WordStoreError(f"Import payload is not valid JSON: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("words"), list):
            raise WordStoreError("Import payload must contain a 'words' list")
        if data.get("history") is not None and not isinstance(data["history"], list):
            raise WordStoreError("Import payload 'history' must be a list")

        incoming = parse_words(data["words"])
        if merge:
            known = {w.id for w in self._words}
            added = []
            for word in incoming:
                if word.id in known:
                    continue
                known.add(word.id)
                added.append(word)
            self._words.extend(added)
            LOGGER.info("Merged %d of %d imported words", len(added), len(incoming))
        else:
            self._words = incoming
            LOGGER.info("Replaced word list with %d imported words", len(incoming))
        self.save()
        return data
