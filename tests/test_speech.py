"""Tests for the pyttsx3 speech backend, using a stand-in engine."""

from types import SimpleNamespace

import pyttsx3
import pytest

from vietplayer import speech as speech_mod
from vietplayer.speech import Pyttsx3SpeechService, create_speech_service, words_per_minute


class FakeEngine:
    def __init__(self, voices=(), fail=False):
        self.props = {"voice": "default", "rate": 200, "volume": 1.0, "voices": list(voices)}
        self.fail = fail
        self.said = []
        self.stops = 0

    def getProperty(self, name):
        return self.props[name]

    def setProperty(self, name, value):
        self.props[name] = value

    def say(self, text):
        if self.fail:
            raise RuntimeError("driver crashed")
        self.said.append((text, self.props["voice"], self.props["rate"]))

    def runAndWait(self):
        pass

    def stop(self):
        self.stops += 1

    def isBusy(self):
        return False


VOICES = [
    SimpleNamespace(id="english", name="English", languages=[b"\x05en"]),
    SimpleNamespace(id="vietnam", name="Vietnamese", languages=[b"\x05vi"]),
    SimpleNamespace(id="com.apple.voice.compact.ko-KR.Yuna", name="Yuna", languages=["ko_KR"]),
]


@pytest.fixture
def engines(monkeypatch):
    created = []

    def factory(fail_first=False):
        def init(*args, **kwargs):
            engine = FakeEngine(VOICES, fail=fail_first and not created)
            created.append(engine)
            return engine
        monkeypatch.setattr(pyttsx3, "init", init)
        return created

    return factory


def test_words_per_minute():
    assert words_per_minute(1.0, 180) == 180
    assert words_per_minute(0.9, 180) == 162
    assert words_per_minute(0.0001, 180) == 1


def test_handle_returned_before_completion(qtbot, engines):
    created = engines()
    service = Pyttsx3SpeechService(base_wpm=200, poll_interval_ms=5)
    seen = []
    service.completed.connect(seen.append)

    handle = service.request_speech("xin chào", "vi-VN", 0.9)

    assert seen == []
    qtbot.waitUntil(lambda: seen == [handle], timeout=2000)
    assert created[0].said == [("xin chào", "vietnam", 180)]


def test_voice_is_chosen_per_language(qtbot, engines):
    created = engines()
    service = Pyttsx3SpeechService(poll_interval_ms=5)
    done = []
    service.completed.connect(done.append)

    service.request_speech("안녕", "ko-KR", 1.0)
    qtbot.waitUntil(lambda: len(done) == 1, timeout=2000)
    service.request_speech("hallo", "de-DE", 1.0)
    qtbot.waitUntil(lambda: len(done) == 2, timeout=2000)

    voices = [said[1] for said in created[0].said]
    assert voices == ["com.apple.voice.compact.ko-KR.Yuna", "default"]


def test_engine_error_reports_failure_and_reinitializes(qtbot, engines):
    created = engines(fail_first=True)
    service = Pyttsx3SpeechService(poll_interval_ms=5)

    with qtbot.waitSignal(service.failed, timeout=2000) as blocker:
        handle = service.request_speech("xin chào", "vi-VN", 1.0)

    assert blocker.args[0] == handle
    assert "driver crashed" in blocker.args[1]
    assert len(created) == 2


def test_cancel_before_start_speaks_nothing(qtbot, engines):
    created = engines()
    service = Pyttsx3SpeechService(poll_interval_ms=5)
    seen = []
    service.completed.connect(seen.append)

    handle = service.request_speech("xin chào", "vi-VN", 1.0)
    service.cancel(handle)
    qtbot.wait(50)

    assert created[0].said == []
    assert created[0].stops == 1
    assert seen == []


def test_factory_uses_pyttsx3_off_macos(qtbot, engines, monkeypatch):
    engines()
    monkeypatch.setattr(speech_mod.sys, "platform", "linux")
    assert isinstance(create_speech_service(), Pyttsx3SpeechService)


def test_factory_falls_back_when_pyobjc_missing(qtbot, engines, monkeypatch):
    engines()
    monkeypatch.setattr(speech_mod.sys, "platform", "darwin")

    def unavailable(*args, **kwargs):
        raise RuntimeError("PyObjC not available for macOS TTS")

    monkeypatch.setattr(speech_mod, "MacSpeechService", unavailable)
    assert isinstance(create_speech_service(), Pyttsx3SpeechService)
