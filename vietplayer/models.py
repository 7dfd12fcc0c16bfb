"""Data model shared by the word store, the play log and the sequencer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


# ----------------------------------------------------------------------------
# Words
# ----------------------------------------------------------------------------
@dataclass(frozen=True)
class Word:
    """A bilingual word pair."""
    id: str
    text_primary: str       # e.g. "xin chào"
    text_secondary: str     # e.g. "안녕하세요"
    included: bool = True
    created_at: Optional[int] = None  # epoch milliseconds

    def text_for(self, language: "Language") -> str:
        if language is Language.PRIMARY:
            return self.text_primary
        return self.text_secondary


class Language(Enum):
    PRIMARY = auto()
    SECONDARY = auto()


class PlaybackState(Enum):
    IDLE = auto()
    SPEAKING_PRIMARY = auto()
    SPEAKING_SECONDARY = auto()


# ----------------------------------------------------------------------------
# Play log
# ----------------------------------------------------------------------------
@dataclass
class PlayLogEntry:
    """Number of completed word cycles on one calendar day (``YYYY-MM-DD``)."""
    date: str
    count: int = 0


class VietPlayerError(Exception):
    """Base class for errors raised by the vietplayer package."""
