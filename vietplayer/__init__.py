"""Listen-and-repeat vocabulary player."""

from vietplayer.models import Language, PlaybackState, PlayLogEntry, VietPlayerError, Word
from vietplayer.play_log import PlayLog
from vietplayer.sequencer import (
    INTER_UTTERANCE_DELAY_MS,
    REQUIRED_REPEATS,
    EmptyPlaylistError,
    PlaybackSequencer,
)
from vietplayer.speech import SpeechService, create_speech_service
from vietplayer.word_store import WordStore, WordStoreError

__all__ = [
    "EmptyPlaylistError",
    "INTER_UTTERANCE_DELAY_MS",
    "Language",
    "PlayLog",
    "PlayLogEntry",
    "PlaybackSequencer",
    "PlaybackState",
    "REQUIRED_REPEATS",
    "SpeechService",
    "VietPlayerError",
    "Word",
    "WordStore",
    "WordStoreError",
    "create_speech_service",
]
