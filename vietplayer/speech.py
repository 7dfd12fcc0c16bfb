"""Speech services the playback sequencer talks to.

A speech service accepts one utterance request at a time and reports,
asynchronously and exactly once per uncancelled handle, whether the utterance
finished (``completed``) or could not be spoken (``failed``).

Two backends are provided:
- ``MacSpeechService``: NSSpeechSynthesizer via PyObjC, non-blocking.
- ``Pyttsx3SpeechService``: pyttsx3 (offline, any platform). ``runAndWait()``
  blocks while speaking, so the completion is still delivered from the
  event loop afterwards.
"""

from __future__ import annotations

import logging
import sys
from abc import ABCMeta, abstractmethod
from typing import Dict, Optional, Tuple

from PyQt6 import QtCore
from PyQt6.QtCore import QObject, pyqtSignal

LOGGER = logging.getLogger("vietplayer.speech")

DEFAULT_BASE_WPM = 180
DEFAULT_POLL_INTERVAL_MS = 100


def words_per_minute(rate: float, base_wpm: int = DEFAULT_BASE_WPM) -> int:
    """Scale a relative rate (1.0 = normal) to an engine words-per-minute value."""
    return max(1, int(round(float(base_wpm) * float(rate))))


def _language_prefix(language_tag: str) -> str:
    return language_tag.replace("_", "-").split("-")[0].lower()


class _QtABCMeta(ABCMeta, type(QObject)):
    """Metaclass that lets a QObject subclass declare abstract methods."""


class SpeechService(QObject, metaclass=_QtABCMeta):
    """Asynchronous utterance interface.

    Subclasses implement ``_start(handle, text, language_tag, rate)``,
    ``_stop_engine()`` and ``is_speaking()``; this base class hands out handles
    and watches the engine until it falls silent.
    """

    completed = pyqtSignal(int)
    failed = pyqtSignal(int, str)

    def __init__(self, base_wpm: int = DEFAULT_BASE_WPM,
                 poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._base_wpm = int(base_wpm)
        self._last_handle = 0
        self._watching: Optional[int] = None

        self._poll_timer = QtCore.QTimer(self)
        self._poll_timer.setInterval(max(1, int(poll_interval_ms)))
        self._poll_timer.timeout.connect(self._poll)  # type: ignore

    # ----------------------------------------------------------------------------
    # Public API
    # ----------------------------------------------------------------------------
    def request_speech(self, text: str, language_tag: str, rate: float) -> int:
        """Queue ``text`` for speaking and return its handle."""
        self._last_handle += 1
        handle = self._last_handle
        self._start(handle, text, language_tag, words_per_minute(rate, self._base_wpm))
        return handle

    def cancel(self, handle: int) -> None:
        """Best-effort interruption; no signal is emitted for a cancelled handle."""
        self._forget(handle)
        if self._watching == handle:
            self._watching = None
            self._poll_timer.stop()
        try:
            self._stop_engine()
        except Exception as exc:  # noqa: BLE001 - engines raise arbitrary errors
            LOGGER.warning("Stopping speech failed: %s", exc)

    @abstractmethod
    def is_speaking(self) -> bool:
        ...

    # ----------------------------------------------------------------------------
    # Backend hooks
    # ----------------------------------------------------------------------------
    @abstractmethod
    def _start(self, handle: int, text: str, language_tag: str, wpm: int) -> None:
        ...

    @abstractmethod
    def _stop_engine(self) -> None:
        ...

    def _forget(self, handle: int) -> None:
        """Drop any queued work for ``handle``."""

    # ----------------------------------------------------------------------------
    # Completion plumbing
    # ----------------------------------------------------------------------------
    def _watch(self, handle: int) -> None:
        """Poll the engine until it finishes, then emit ``completed``."""
        self._watching = handle
        self._poll_timer.start()

    def _poll(self) -> None:
        handle = self._watching
        if handle is None:
            self._poll_timer.stop()
            return
        try:
            speaking = bool(self.is_speaking())
        except Exception:  # noqa: BLE001
            speaking = False
        if speaking:
            return
        self._watching = None
        self._poll_timer.stop()
        self.completed.emit(handle)

    def _fail_later(self, handle: int, reason: str) -> None:
        LOGGER.warning("Utterance %d failed: %s", handle, reason)
        QtCore.QTimer.singleShot(0, lambda: self.failed.emit(handle, reason))


class MacSpeechService(SpeechService):
    """macOS-native TTS using NSSpeechSynthesizer (PyObjC), async and reliable.

    Requires: pyobjc (install with: `python3 -m pip install pyobjc-framework-Cocoa`)
    """

    def __init__(self, base_wpm: int = DEFAULT_BASE_WPM,
                 poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(base_wpm, poll_interval_ms, parent)
        try:
            from AppKit import NSSpeechSynthesizer  # type: ignore
        except Exception as exc:  # noqa: BLE001
            raise RuntimeError("PyObjC not available for macOS TTS") from exc

        self._NSSpeechSynthesizer = NSSpeechSynthesizer
        self._synth = NSSpeechSynthesizer.alloc().initWithVoice_(None)
        self._voices: Dict[str, Optional[str]] = {}

    def _voice_for(self, language_tag: str) -> Optional[str]:
        if language_tag in self._voices:
            return self._voices[language_tag]
        prefix = _language_prefix(language_tag)
        found: Optional[str] = None
        try:
            for vid in self._NSSpeechSynthesizer.availableVoices():
                attrs = self._NSSpeechSynthesizer.attributesForVoice_(vid) or {}
                locale = str(attrs.get("VoiceLocaleIdentifier", "") or "")
                if _language_prefix(locale) == prefix:
                    found = str(vid)
                    break
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Could not list macOS voices: %s", exc)
        if found:
            LOGGER.info("Selected macOS TTS voice for %s: %s", language_tag, found)
        else:
            LOGGER.warning("No macOS voice for %s; using the system default", language_tag)
        self._voices[language_tag] = found
        return found

    def _start(self, handle: int, text: str, language_tag: str, wpm: int) -> None:
        try:
            self._synth.stopSpeaking()
            self._synth.setVoice_(self._voice_for(language_tag) or self._NSSpeechSynthesizer.defaultVoice())
            self._synth.setRate_(wpm)
            started = bool(self._synth.startSpeakingString_(text))
        except Exception as exc:  # noqa: BLE001
            self._fail_later(handle, str(exc))
            return
        if not started:
            self._fail_later(handle, "synthesizer refused the utterance")
            return
        self._watch(handle)

    def _stop_engine(self) -> None:
        self._synth.stopSpeaking()

    def is_speaking(self) -> bool:
        """Return True while the system TTS is speaking (macOS)."""
        return bool(self._synth.isSpeaking())


class Pyttsx3SpeechService(SpeechService):
    """Speak using system TTS via pyttsx3 (offline).

    The utterance is started from the event loop, never from inside
    ``request_speech``, so callers always get the handle before any signal.
    """

    def __init__(self, base_wpm: int = DEFAULT_BASE_WPM,
                 poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
                 volume: float = 1.0,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(base_wpm, poll_interval_ms, parent)
        self._volume = float(volume)
        self._voices: Dict[str, Optional[str]] = {}
        self._queued: Dict[int, Tuple[str, str, int]] = {}
        self._default_voice: Optional[str] = None
        self._engine = self._make_engine()

    def _make_engine(self):
        import pyttsx3  # local import to avoid hard dependency if unused
        engine = pyttsx3.init()
        engine.setProperty("volume", self._volume)
        self._default_voice = engine.getProperty("voice")
        return engine

    def _reinit_engine(self) -> None:
        """Recreate the TTS engine (macOS nsss can get stuck); voice choices are re-resolved."""
        self._engine = self._make_engine()
        self._voices.clear()

    def _voice_for(self, language_tag: str) -> Optional[str]:
        if language_tag in self._voices:
            return self._voices[language_tag]
        prefix = _language_prefix(language_tag)
        tag_id = language_tag.lower().replace("-", "_")

        def matches(v) -> bool:
            langs = getattr(v, "languages", []) or []
            langs_str = [bytes(l).decode(errors="ignore") if isinstance(l, (bytes, bytearray)) else str(l)
                         for l in langs]
            if any(_language_prefix(s.strip("\x05 ")) == prefix for s in langs_str if s):
                return True
            return tag_id in str(getattr(v, "id", "")).lower()

        found: Optional[str] = None
        try:
            for v in self._engine.getProperty("voices") or []:
                if matches(v):
                    found = v.id
                    break
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Could not list pyttsx3 voices: %s", exc)
        if found:
            LOGGER.info("Selected TTS voice for %s: %s", language_tag, found)
        else:
            LOGGER.warning("No TTS voice for %s; using the engine default", language_tag)
        self._voices[language_tag] = found
        return found

    def _start(self, handle: int, text: str, language_tag: str, wpm: int) -> None:
        self._queued[handle] = (text, language_tag, wpm)
        QtCore.QTimer.singleShot(0, lambda: self._speak(handle))

    def _forget(self, handle: int) -> None:
        self._queued.pop(handle, None)

    def _say(self, text: str, language_tag: str, wpm: int) -> None:
        voice = self._voice_for(language_tag) or self._default_voice
        if voice:
            self._engine.setProperty("voice", voice)
        self._engine.setProperty("rate", wpm)
        self._engine.say(text)
        self._engine.runAndWait()

    def _speak(self, handle: int) -> None:
        item = self._queued.pop(handle, None)
        if item is None:
            return  # cancelled before it started
        try:
            self._say(*item)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("TTS encountered an error, reinitializing engine: %s", exc)
            try:
                self._reinit_engine()
            except Exception as exc2:  # noqa: BLE001
                LOGGER.exception("TTS reinit failed: %s", exc2)
            self._fail_later(handle, str(exc))
            return
        self._watch(handle)

    def _stop_engine(self) -> None:
        self._engine.stop()

    def is_speaking(self) -> bool:
        """Note: runAndWait() blocks, so this is usually False by the time we check."""
        return bool(getattr(self._engine, "isBusy", lambda: False)())


def create_speech_service(base_wpm: int = DEFAULT_BASE_WPM,
                          poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
                          parent: Optional[QObject] = None) -> SpeechService:
    """Prefer macOS-native TTS when on macOS; fall back to pyttsx3 otherwise."""
    if sys.platform == "darwin":
        try:
            return MacSpeechService(base_wpm, poll_interval_ms, parent)
        except RuntimeError as exc:
            LOGGER.warning("macOS TTS unavailable (%s); falling back to pyttsx3", exc)
    return Pyttsx3SpeechService(base_wpm, poll_interval_ms, parent=parent)
