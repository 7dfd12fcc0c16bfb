"""
Tests for the listen-and-repeat playback sequencer.

Covers the study cycle, navigation, pausing and the stale-completion guard.
"""

import pytest

from vietplayer.models import Language, PlaybackState, Word
from vietplayer.sequencer import (
    INTER_UTTERANCE_DELAY_MS,
    REQUIRED_REPEATS,
    EmptyPlaylistError,
)


def _three_words():
    return [
        Word(id="a", text_primary="A", text_secondary="A'"),
        Word(id="b", text_primary="B", text_secondary="B'"),
        Word(id="c", text_primary="C", text_secondary="C'"),
    ]


class TestStart:
    """Starting a session."""

    def test_constants(self):
        assert REQUIRED_REPEATS == 2
        assert INTER_UTTERANCE_DELAY_MS == 800

    def test_start_speaks_first_primary(self, make_sequencer, speech, words):
        seq = make_sequencer(words)
        assert seq.state is PlaybackState.IDLE

        seq.start()

        assert seq.state is PlaybackState.SPEAKING_PRIMARY
        assert seq.running
        assert speech.requests == [(1, "A", "vi-VN", 0.9)]
        assert (seq.position, seq.active_language, seq.repeats_completed) == (0, Language.PRIMARY, 0)

    def test_start_with_empty_playlist(self, make_sequencer, speech):
        seq = make_sequencer([])

        with pytest.raises(EmptyPlaylistError):
            seq.start()

        assert seq.state is PlaybackState.IDLE
        assert speech.requests == []

    def test_start_emits_state_change(self, qtbot, make_sequencer, words):
        seq = make_sequencer(words)
        with qtbot.waitSignal(seq.state_changed) as blocker:
            seq.start()
        assert blocker.args == [PlaybackState.SPEAKING_PRIMARY]

    def test_start_twice_is_ignored(self, make_sequencer, speech, words):
        seq = make_sequencer(words)
        seq.start()
        seq.start()
        assert len(speech.requests) == 1

    def test_custom_language_tags(self, make_sequencer, speech, finish, words):
        seq = make_sequencer(words, primary_tag="vi", secondary_tag="ko-KR")
        seq.start()
        finish()
        assert [r[2] for r in speech.requests] == ["vi", "ko-KR"]


class TestStudyCycle:
    """The primary/secondary/primary/secondary cycle."""

    def test_each_word_is_spoken_four_times(self, make_sequencer, speech, finish, words):
        seq = make_sequencer(words)
        seq.start()
        finish(8)

        assert speech.texts == ["A", "A'", "A", "A'", "B", "B'", "B", "B'", "A"]

    def test_language_and_repeat_progression(self, make_sequencer, finish, words):
        seq = make_sequencer(words)
        seq.start()

        seen = [(seq.state, seq.repeats_completed)]
        for _ in range(4):
            finish()
            seen.append((seq.state, seq.repeats_completed))

        assert seen == [
            (PlaybackState.SPEAKING_PRIMARY, 0),
            (PlaybackState.SPEAKING_SECONDARY, 0),
            (PlaybackState.SPEAKING_PRIMARY, 1),
            (PlaybackState.SPEAKING_SECONDARY, 1),
            (PlaybackState.SPEAKING_PRIMARY, 0),
        ]

    def test_scenario_two_words(self, make_sequencer, speech, finish, play_log, today, words):
        seq = make_sequencer(words)
        seq.start()
        finish(4)

        assert play_log.count_for(today) == 1
        assert seq.position == 1
        assert speech.texts[-1] == "B"
        b_handle = speech.last_handle

        seq.next()

        assert b_handle in speech.cancelled
        assert seq.position == 0
        assert seq.repeats_completed == 0
        assert seq.active_language is Language.PRIMARY
        assert speech.texts[-1] == "A"

    def test_one_log_entry_per_cycle(self, make_sequencer, finish, play_log, today, words):
        seq = make_sequencer(words)
        seq.start()

        finish(3)
        assert play_log.total() == 0
        finish(1)
        assert play_log.total() == 1
        finish(8)
        assert play_log.total() == 3
        assert play_log.count_for(today) == 3

    def test_cycle_completed_signal(self, qtbot, make_sequencer, finish, words):
        seq = make_sequencer(words)
        seq.start()
        finish(3)
        with qtbot.waitSignal(seq.cycle_completed) as blocker:
            finish()
        assert blocker.args == [words[0]]

    def test_position_wraps_after_last_word(self, make_sequencer, speech, finish):
        seq = make_sequencer(_three_words())
        seq.prev()
        assert seq.position == 2

        seq.start()
        assert speech.texts == ["C"]
        finish(4)

        assert seq.position == 0
        assert speech.texts[-1] == "A"

    def test_failure_counts_as_completion(self, qtbot, make_sequencer, speech, finish, words):
        seq = make_sequencer(words)
        seq.start()
        with qtbot.waitSignal(seq.speech_failed) as blocker:
            finish(failed=True)

        assert blocker.args == ["no voice"]
        assert speech.texts == ["A", "A'"]
        assert seq.state is PlaybackState.SPEAKING_SECONDARY

    def test_request_error_does_not_stall(self, qtbot, make_sequencer, speech, words, monkeypatch):
        seq = make_sequencer(words)
        original = speech.request_speech
        calls = []

        def flaky(text, tag, rate):
            calls.append(text)
            if len(calls) == 1:
                raise RuntimeError("engine gone")
            return original(text, tag, rate)

        monkeypatch.setattr(speech, "request_speech", flaky)
        seq.start()

        qtbot.waitUntil(lambda: len(speech.requests) == 1, timeout=2000)
        assert speech.texts == ["A'"]

    def test_playlist_is_a_snapshot(self, make_sequencer, speech, finish):
        source = _three_words()
        seq = make_sequencer(source)
        seq.start()
        source.clear()
        finish(4)
        assert speech.texts[-1] == "B"
        assert len(seq.playlist) == 3


class TestSettlingDelay:
    """The pause between one utterance finishing and the next starting."""

    def test_next_utterance_waits_for_delay(self, qtbot, make_sequencer, speech, words):
        seq = make_sequencer(words, delay_ms=300)
        seq.start()
        speech.complete()

        qtbot.wait(100)
        assert len(speech.requests) == 1
        qtbot.waitUntil(lambda: len(speech.requests) == 2, timeout=2000)
        assert speech.texts[-1] == "A'"

    def test_pause_cancels_pending_delay(self, qtbot, make_sequencer, speech, words):
        seq = make_sequencer(words, delay_ms=200)
        seq.start()
        speech.complete()
        seq.pause()

        qtbot.wait(400)
        assert len(speech.requests) == 1
        assert seq.state is PlaybackState.IDLE

    def test_next_cancels_pending_delay(self, qtbot, make_sequencer, speech, words):
        seq = make_sequencer(words, delay_ms=200)
        seq.start()
        speech.complete()
        seq.next()

        qtbot.wait(400)
        assert speech.texts == ["A", "B"]
        assert seq.active_language is Language.PRIMARY


class TestPauseAndNavigation:
    """Pause, resume, stop, next and prev."""

    def test_pause_cancels_speech(self, make_sequencer, speech, words):
        seq = make_sequencer(words)
        seq.start()
        handle = speech.last_handle

        seq.pause()

        assert seq.state is PlaybackState.IDLE
        assert not seq.running
        assert speech.cancelled == [handle]

    def test_stale_completion_after_pause_is_ignored(self, qtbot, make_sequencer, speech, words):
        seq = make_sequencer(words)
        seq.start()
        stale = speech.last_handle
        generation = seq.generation

        seq.pause()
        speech.complete(stale)
        qtbot.wait(50)

        assert seq.generation != generation
        assert seq.state is PlaybackState.IDLE
        assert seq.position == 0
        assert len(speech.requests) == 1

    def test_stale_completion_after_next_is_ignored(self, qtbot, make_sequencer, speech, words):
        seq = make_sequencer(words)
        seq.start()
        stale = speech.last_handle

        seq.next()
        speech.complete(stale)
        qtbot.wait(50)

        assert speech.texts == ["A", "B"]
        assert seq.state is PlaybackState.SPEAKING_PRIMARY

    def test_stale_failure_after_pause_is_ignored(self, qtbot, make_sequencer, speech, words):
        seq = make_sequencer(words)
        failures = []
        seq.speech_failed.connect(failures.append)
        seq.start()
        stale = speech.last_handle

        seq.pause()
        speech.fail("voice vanished", handle=stale)
        qtbot.wait(50)

        assert failures == []
        assert seq.state is PlaybackState.IDLE
        assert seq.position == 0
        assert len(speech.requests) == 1

    def test_stale_failure_after_next_is_ignored(self, qtbot, make_sequencer, speech, words):
        seq = make_sequencer(words)
        failures = []
        seq.speech_failed.connect(failures.append)
        seq.start()
        stale = speech.last_handle

        seq.next()
        speech.fail("voice vanished", handle=stale)
        qtbot.wait(50)

        assert failures == []
        assert speech.texts == ["A", "B"]
        assert seq.state is PlaybackState.SPEAKING_PRIMARY
        assert seq.position == 1

    def test_resume_restarts_current_word(self, make_sequencer, speech, finish, words):
        seq = make_sequencer(_three_words())
        seq.start()
        finish(4)
        finish(1)  # B'
        seq.pause()

        seq.start()

        assert seq.position == 1
        assert seq.repeats_completed == 0
        assert speech.texts[-1] == "B"

    def test_toggle(self, make_sequencer, speech, words):
        seq = make_sequencer(words)
        seq.toggle()
        assert seq.running
        seq.toggle()
        assert not seq.running
        assert len(speech.cancelled) == 1

    def test_next_resets_language_and_repeats(self, make_sequencer, speech, finish, words):
        seq = make_sequencer(_three_words())
        seq.start()
        finish(3)
        assert (seq.active_language, seq.repeats_completed) == (Language.SECONDARY, 1)

        seq.next()

        assert (seq.active_language, seq.repeats_completed) == (Language.PRIMARY, 0)
        assert seq.position == 1
        assert speech.texts[-1] == "B"

    def test_prev_wraps(self, make_sequencer, speech, words):
        seq = make_sequencer(words)
        seq.start()
        seq.prev()
        assert seq.position == 1
        assert speech.texts == ["A", "B"]

    def test_navigation_while_idle_does_not_speak(self, make_sequencer, speech):
        seq = make_sequencer(_three_words())
        seq.next()
        seq.next()
        assert seq.position == 2
        assert seq.state is PlaybackState.IDLE
        assert speech.requests == []

    def test_navigation_while_paused_resets_cycle(self, make_sequencer, finish, words):
        seq = make_sequencer(_three_words())
        seq.start()
        finish(3)
        seq.pause()
        seq.prev()
        assert (seq.position, seq.active_language, seq.repeats_completed) == (2, Language.PRIMARY, 0)

    def test_navigation_on_empty_playlist_is_noop(self, make_sequencer, speech):
        seq = make_sequencer([])
        seq.next()
        seq.prev()
        assert seq.position == 0
        assert seq.current_word is None
        assert speech.requests == []

    def test_stop_discards_session(self, make_sequencer, speech, finish):
        source = _three_words()
        seq = make_sequencer(source)
        seq.start()
        finish(4)
        seq.stop()

        assert seq.state is PlaybackState.IDLE
        assert seq.playlist == ()
        seq.start()
        assert seq.position == 0
        assert speech.texts[-1] == "A"

    def test_shutdown_detaches_from_speech(self, qtbot, make_sequencer, speech, words):
        seq = make_sequencer(words)
        seq.start()
        seq.shutdown()
        speech.complete()
        qtbot.wait(50)
        assert len(speech.requests) == 1


class TestRate:
    def test_set_rate_applies_to_next_request(self, make_sequencer, speech, finish, words):
        seq = make_sequencer(words)
        seq.start()
        seq.set_rate(1.2)
        finish()
        assert speech.requests[-1][3] == 1.2

    def test_invalid_rate(self, make_sequencer, words):
        seq = make_sequencer(words)
        with pytest.raises(ValueError, match="rate must be positive"):
            seq.set_rate(0)
