"""pytest configuration file."""

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from datetime import date
from typing import List, Tuple

import pytest

from vietplayer.models import Word
from vietplayer.play_log import PlayLog
from vietplayer.sequencer import PlaybackSequencer
from vietplayer.speech import SpeechService


class FakeSpeechService(SpeechService):
    """Records utterance requests; the test decides when each one finishes."""

    def __init__(self) -> None:
        super().__init__()
        self.requests: List[Tuple[int, str, str, float]] = []
        self.cancelled: List[int] = []

    def request_speech(self, text: str, language_tag: str, rate: float) -> int:
        self._last_handle += 1
        self.requests.append((self._last_handle, text, language_tag, rate))
        return self._last_handle

    def cancel(self, handle: int) -> None:
        self.cancelled.append(handle)

    def is_speaking(self) -> bool:
        return False

    def _start(self, handle, text, language_tag, wpm) -> None:
        raise AssertionError("request_speech is overridden")

    def _stop_engine(self) -> None:
        pass

    @property
    def last_handle(self) -> int:
        return self.requests[-1][0]

    @property
    def texts(self) -> List[str]:
        return [r[1] for r in self.requests]

    def complete(self, handle=None) -> None:
        self.completed.emit(self.last_handle if handle is None else handle)

    def fail(self, reason: str = "no voice", handle=None) -> None:
        self.failed.emit(self.last_handle if handle is None else handle, reason)


@pytest.fixture
def today():
    return date(2024, 1, 1)


@pytest.fixture
def words():
    return [
        Word(id="a", text_primary="A", text_secondary="A'"),
        Word(id="b", text_primary="B", text_secondary="B'"),
    ]


@pytest.fixture
def speech(qtbot):
    return FakeSpeechService()


@pytest.fixture
def play_log():
    return PlayLog()


@pytest.fixture
def make_sequencer(qtbot, speech, play_log, today):
    """Build a sequencer over ``words`` with no settling delay unless asked for."""
    created = []

    def _make(words, delay_ms=0, **kwargs):
        seq = PlaybackSequencer(
            speech,
            lambda: list(words),
            play_log,
            delay_ms=delay_ms,
            today=lambda: today,
            **kwargs,
        )
        created.append(seq)
        return seq

    yield _make
    for seq in created:
        seq.shutdown()


@pytest.fixture
def finish(qtbot, speech):
    """Complete the current utterance and wait for the next request."""

    def _finish(times: int = 1, failed: bool = False):
        for _ in range(times):
            n = len(speech.requests)
            if failed:
                speech.fail()
            else:
                speech.complete()
            qtbot.waitUntil(lambda: len(speech.requests) > n, timeout=2000)

    return _finish
