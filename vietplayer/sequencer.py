"""Playback sequencing for listen-and-repeat sessions.

Each word of the playlist is spoken primary, secondary, primary, secondary
(``REQUIRED_REPEATS`` pairs) and then the sequencer moves on to the next word,
wrapping around at the end of the playlist until paused.

The sequencer is callback-driven:
- It does not know about widgets; the UI listens to its signals.
- The speech service reports completion through its ``completed`` / ``failed``
  signals.
- Every speak request is tagged with a generation. Pausing or navigating bumps
  the generation, so a late completion from an interrupted utterance is
  ignored rather than advancing the cycle.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Dict, Iterable, Optional, Tuple

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from vietplayer.models import Language, PlaybackState, VietPlayerError, Word
from vietplayer.play_log import PlayLog
from vietplayer.speech import SpeechService

LOGGER = logging.getLogger("vietplayer.sequencer")

REQUIRED_REPEATS = 2
INTER_UTTERANCE_DELAY_MS = 800

WordSource = Callable[[], Iterable[Word]]
Clock = Callable[[], date]


class EmptyPlaylistError(VietPlayerError):
    """Raised by ``start()`` when no word is selected for playback."""


class PlaybackSequencer(QObject):
    """Drives the speech service through the study cycle of a playlist.

    Typical flow:
        sequencer = PlaybackSequencer(speech, store.included_words, play_log)
        sequencer.start()      # speaks playlist[0] in the primary language
        sequencer.next()       # jumps to the following word
        sequencer.pause()      # interrupts speech; start() resumes the word
        sequencer.stop()       # discards the session
    """

    state_changed = pyqtSignal(object)          # PlaybackState
    utterance_started = pyqtSignal(object, object)  # Word, Language
    position_changed = pyqtSignal(int)
    cycle_completed = pyqtSignal(object)        # Word
    speech_failed = pyqtSignal(str)

    def __init__(
        self,
        speech: SpeechService,
        word_source: WordSource,
        play_log: PlayLog,
        *,
        primary_tag: str = "vi-VN",
        secondary_tag: str = "ko-KR",
        rate: float = 0.9,
        delay_ms: int = INTER_UTTERANCE_DELAY_MS,
        today: Clock = date.today,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._speech = speech
        self._word_source = word_source
        self._play_log = play_log
        self._tags = {Language.PRIMARY: primary_tag, Language.SECONDARY: secondary_tag}
        self._rate = float(rate)
        self._delay_ms = max(0, int(delay_ms))
        self._today = today

        # Session state
        self._playlist: Optional[Tuple[Word, ...]] = None
        self._position = 0
        self._language = Language.PRIMARY
        self._repeats = 0
        self._running = False

        self._generation = 0
        self._handle: Optional[int] = None
        self._handle_generations: Dict[int, int] = {}
        self._settle_generation: Optional[int] = None
        self._last_state = PlaybackState.IDLE

        self._settle_timer = QTimer(self)
        self._settle_timer.setSingleShot(True)
        self._settle_timer.timeout.connect(self._on_settled)  # type: ignore

        self._speech.completed.connect(self.on_speech_completed)  # type: ignore
        self._speech.failed.connect(self.on_speech_failed)  # type: ignore

    # ----------------------------------------------------------------------------
    # Read-only state
    # ----------------------------------------------------------------------------
    @property
    def state(self) -> PlaybackState:
        if not self._running:
            return PlaybackState.IDLE
        if self._language is Language.PRIMARY:
            return PlaybackState.SPEAKING_PRIMARY
        return PlaybackState.SPEAKING_SECONDARY

    @property
    def running(self) -> bool:
        return self._running

    @property
    def position(self) -> int:
        return self._position

    @property
    def active_language(self) -> Language:
        return self._language

    @property
    def repeats_completed(self) -> int:
        return self._repeats

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def playlist(self) -> Tuple[Word, ...]:
        return self._playlist or ()

    @property
    def current_word(self) -> Optional[Word]:
        if not self._playlist:
            return None
        return self._playlist[self._position]

    @property
    def current_text(self) -> str:
        word = self.current_word
        return word.text_for(self._language) if word else ""

    @property
    def rate(self) -> float:
        return self._rate

    def language_tag(self, language: Language) -> str:
        return self._tags[language]

    # ----------------------------------------------------------------------------
    # Commands
    # ----------------------------------------------------------------------------
    def start(self) -> None:
        """Begin (or resume) playback from the primary text of the current word.

        Raises:
            EmptyPlaylistError: no word is selected; the sequencer stays idle.
        """
        if self._running:
            return
        if self._playlist is None:
            words = tuple(self._word_source())
            if not words:
                LOGGER.info("Nothing to play: no words are selected")
                raise EmptyPlaylistError("Nothing to play: no words are selected")
            self._playlist = words
            self._position = 0
            LOGGER.info("Session started with %d words", len(words))
            self.position_changed.emit(self._position)
        self._language = Language.PRIMARY
        self._repeats = 0
        self._running = True
        self._speak_current()

    def pause(self) -> None:
        """Interrupt playback; the session (playlist and position) is kept."""
        if not self._running:
            return
        self._running = False
        self._invalidate()
        LOGGER.info("Paused at position %d", self._position)
        self._emit_state()

    def stop(self) -> None:
        """Interrupt playback and discard the session."""
        self._running = False
        self._invalidate()
        self._playlist = None
        self._position = 0
        self._language = Language.PRIMARY
        self._repeats = 0
        self._emit_state()

    def toggle(self) -> None:
        if self._running:
            self.pause()
        else:
            self.start()

    def next(self) -> None:
        self._move(1)

    def prev(self) -> None:
        self._move(-1)

    def set_rate(self, rate: float) -> None:
        """Use ``rate`` (1.0 = normal) for subsequent utterances."""
        rate = float(rate)
        if rate <= 0:
            raise ValueError("rate must be positive")
        self._rate = rate

    def shutdown(self) -> None:
        """Stop and detach from the speech service (window teardown)."""
        self.stop()
        try:
            self._speech.completed.disconnect(self.on_speech_completed)  # type: ignore
            self._speech.failed.disconnect(self.on_speech_failed)  # type: ignore
        except (TypeError, RuntimeError):
            pass

    # ----------------------------------------------------------------------------
    # Speech service callbacks
    # ----------------------------------------------------------------------------
    def on_speech_completed(self, handle: int) -> None:
        self._utterance_finished(handle)

    def on_speech_failed(self, handle: int, reason: str = "") -> None:
        if self._handle_generations.get(handle) == self._generation:
            LOGGER.warning("Speech failed for %r: %s", self.current_text, reason or "unknown error")
            self.speech_failed.emit(reason or "speech failed")
        self._utterance_finished(handle)

    # ----------------------------------------------------------------------------
    # Internal scheduling
    # ----------------------------------------------------------------------------
    def _utterance_finished(self, handle: int) -> None:
        generation = self._handle_generations.pop(handle, None)
        if not self._running or generation != self._generation:
            LOGGER.debug("Discarding stale completion for handle %s (generation %s, current %d)",
                         handle, generation, self._generation)
            return
        self._handle = None
        self._settle_generation = generation
        self._settle_timer.start(self._delay_ms)

    def _on_settled(self) -> None:
        if not self._running or self._settle_generation != self._generation:
            return
        self._settle_generation = None
        self._advance()
        self._speak_current()

    def _advance(self) -> None:
        if self._language is Language.PRIMARY:
            self._language = Language.SECONDARY
            return

        self._language = Language.PRIMARY
        self._repeats += 1
        if self._repeats < REQUIRED_REPEATS:
            return

        self._repeats = 0
        word = self.current_word
        try:
            self._play_log.record_cycle(self._today())
        except OSError as exc:
            LOGGER.warning("Could not save play log: %s", exc)
        self.cycle_completed.emit(word)
        self._position = (self._position + 1) % len(self.playlist)
        self.position_changed.emit(self._position)

    def _speak_current(self) -> None:
        word = self.current_word
        if word is None:
            return
        language = self._language
        self._generation += 1
        generation = self._generation
        self._emit_state()
        self.utterance_started.emit(word, language)

        text = word.text_for(language)
        try:
            handle = self._speech.request_speech(text, self._tags[language], self._rate)
        except Exception as exc:  # noqa: BLE001 - a broken voice must not stall the session
            LOGGER.exception("Speech request failed for %r: %s", text, exc)
            self.speech_failed.emit(str(exc))
            self._settle_generation = generation
            self._settle_timer.start(self._delay_ms)
            return
        self._handle = handle
        self._handle_generations[handle] = generation

    def _invalidate(self) -> None:
        """Make any in-flight utterance and pending delay stale."""
        self._generation += 1
        self._settle_timer.stop()
        self._settle_generation = None
        handle, self._handle = self._handle, None
        if handle is not None:
            self._handle_generations.pop(handle, None)
            try:
                self._speech.cancel(handle)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Cancelling speech failed: %s", exc)

    def _move(self, delta: int) -> None:
        if self._playlist is None:
            words = tuple(self._word_source())
            if not words:
                return
            self._playlist = words
            self._position = 0
        if not self._playlist:
            return
        self._invalidate()
        self._position = (self._position + delta) % len(self._playlist)
        self._language = Language.PRIMARY
        self._repeats = 0
        self.position_changed.emit(self._position)
        if self._running:
            self._speak_current()
        else:
            self._emit_state()

    def _emit_state(self) -> None:
        state = self.state
        if state != self._last_state:
            self._last_state = state
            self.state_changed.emit(state)
