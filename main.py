"""Vietnamese/Korean Vocabulary Player

A minimal PyQt6 application that plays the selected word pairs aloud in a
listen-and-repeat loop: primary, secondary, primary, secondary, then on to the
next word. Prev/Next navigation, a Play/Pause button and a speech-rate slider
drive the playback sequencer; today's listens and the last seven days are
shown underneath.

Implementation notes:
- Type hints and Google-style docstrings are included.
- Logging provides lightweight diagnostics.
- Audio uses NSSpeechSynthesizer on macOS and pyttsx3 elsewhere.

Words are managed with utilities/word_admin.py and stored in data/words.yaml.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Callable, Optional

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QCloseEvent, QFont
from PyQt6.QtWidgets import (
    QApplication,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSlider,
    QToolButton,
    QVBoxLayout,
    QWidget,
)

from settings import (BASE_WORDS_PER_MINUTE,
                      CURRENT_TTS_RATE,
                      DEBUG,
                      HISTORY_FILE,
                      PREFS_FILE,
                      PRIMARY_LANGUAGE_NAME,
                      PRIMARY_LANGUAGE_TAG,
                      SECONDARY_LANGUAGE_NAME,
                      SECONDARY_LANGUAGE_TAG,
                      SPEECH_POLL_INTERVAL_MS,
                      TTS_RATE_MAX,
                      TTS_RATE_MIN,
                      TTS_RATE_STEP,
                      WORDS_FILE)
from vietplayer.models import Language, PlaybackState, Word
from vietplayer.play_log import PlayLog
from vietplayer.sequencer import (INTER_UTTERANCE_DELAY_MS,
                                  REQUIRED_REPEATS,
                                  EmptyPlaylistError,
                                  PlaybackSequencer)
from vietplayer.speech import SpeechService, create_speech_service
from vietplayer.word_store import WordStore

# ----------------------------------------------------------------------------
# Logging configuration
# ----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG if DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
LOGGER = logging.getLogger("vietplayer")

PRIMARY_COLOR = "#0A5BD3"
SECONDARY_COLOR = "#8E44AD"
RATE_SCALE = 100  # slider works in hundredths of the relative rate


def load_prefs(path: Path) -> dict:
    """Read user_prefs.json; a missing or broken file yields an empty dict."""
    try:
        if path.exists():
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
                if isinstance(data, dict):
                    return data
    except (OSError, ValueError) as exc:
        LOGGER.warning("Could not load %s: %s", path.name, exc)
    return {}


def save_prefs(path: Path, updates: dict) -> None:
    data = load_prefs(path)
    data.update(updates)
    try:
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
    except OSError as exc:
        LOGGER.warning("Could not save %s: %s", path.name, exc)


class MainWindow(QMainWindow):
    def __init__(
        self,
        store: WordStore,
        play_log: PlayLog,
        speech: SpeechService,
        *,
        prefs_path: Path = Path(PREFS_FILE),
        delay_ms: int = INTER_UTTERANCE_DELAY_MS,
        today: Callable[[], date] = date.today,
        parent: Optional[QWidget] = None,
    ) -> None:
        super().__init__(parent)
        self.setWindowTitle("VietPlayer")
        self.store = store
        self.play_log = play_log
        self._today = today
        self._prefs_path = prefs_path

        current_rate = float(CURRENT_TTS_RATE)
        try:
            current_rate = float(load_prefs(prefs_path).get("tts_rate", current_rate))
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Ignoring invalid tts_rate in %s: %s", prefs_path.name, exc)
        current_rate = min(max(current_rate, TTS_RATE_MIN), TTS_RATE_MAX)

        self.sequencer = PlaybackSequencer(
            speech,
            store.included_words,
            play_log,
            primary_tag=PRIMARY_LANGUAGE_TAG,
            secondary_tag=SECONDARY_LANGUAGE_TAG,
            rate=current_rate,
            delay_ms=delay_ms,
            today=today,
            parent=self,
        )

        self._build_ui(current_rate)
        self._bind()
        self._refresh()
        self._refresh_stats()

    # ----------------------------------------------------------------------------
    # UI construction
    # ----------------------------------------------------------------------------
    def _build_ui(self, rate: float) -> None:
        """Build the player card, controls, rate slider and stats in code."""
        central = QWidget(self)
        layout = QVBoxLayout(central)

        self.repeat_label = QLabel(f"REPEAT 1/{REQUIRED_REPEATS}", central)
        self.repeat_label.setObjectName("repeatInfo")
        self.word_label = QLabel("READY?", central)
        self.word_label.setObjectName("currentWordDisplay")
        big = QFont()
        big.setPointSize(36)
        big.setBold(True)
        self.word_label.setFont(big)
        self.word_label.setWordWrap(True)
        self.status_label = QLabel("PRESS PLAY TO START", central)
        self.status_label.setObjectName("statusText")
        for label in (self.repeat_label, self.word_label, self.status_label):
            label.setAlignment(Qt.AlignmentFlag.AlignHCenter)
            layout.addWidget(label)

        controls = QHBoxLayout()
        self.prev_btn = QPushButton("PREV", central)
        self.play_btn = QPushButton("PLAY", central)
        self.next_btn = QPushButton("NEXT", central)
        for btn in (self.prev_btn, self.play_btn, self.next_btn):
            controls.addWidget(btn)
        layout.addLayout(controls)

        rate_row = QHBoxLayout()
        self.btn_slower = QToolButton(central)
        self.btn_slower.setText("-")
        self.slider_rate = QSlider(Qt.Orientation.Horizontal, central)
        self.slider_rate.setRange(int(round(TTS_RATE_MIN * RATE_SCALE)), int(round(TTS_RATE_MAX * RATE_SCALE)))
        step = int(round(TTS_RATE_STEP * RATE_SCALE))
        self.slider_rate.setSingleStep(step)
        self.slider_rate.setPageStep(step)
        self.slider_rate.setValue(int(round(rate * RATE_SCALE)))
        self.btn_faster = QToolButton(central)
        self.btn_faster.setText("+")
        self.lbl_rate_value = QLabel(f"{rate:.2f}x", central)
        for w in (self.btn_slower, self.slider_rate, self.btn_faster, self.lbl_rate_value):
            rate_row.addWidget(w)
        layout.addLayout(rate_row)
        self._update_rate_controls_enabled(self.slider_rate.value())

        self.today_label = QLabel(central)
        self.today_label.setObjectName("todayListens")
        self.today_label.setAlignment(Qt.AlignmentFlag.AlignHCenter)
        self.history_label = QLabel(central)
        self.history_label.setObjectName("weekHistory")
        self.history_label.setAlignment(Qt.AlignmentFlag.AlignHCenter)
        layout.addWidget(self.today_label)
        layout.addWidget(self.history_label)

        self.setCentralWidget(central)

    def _bind(self) -> None:
        """Wire up button and sequencer signals."""
        self.prev_btn.clicked.connect(self.on_prev)
        self.next_btn.clicked.connect(self.on_next)
        self.play_btn.clicked.connect(self.on_play)
        self.slider_rate.valueChanged.connect(self.on_rate_changed)
        self.btn_slower.clicked.connect(lambda: self.on_rate_step(-1))
        self.btn_faster.clicked.connect(lambda: self.on_rate_step(+1))

        self.sequencer.state_changed.connect(lambda _state: self._refresh())
        self.sequencer.utterance_started.connect(self._on_utterance_started)
        self.sequencer.position_changed.connect(lambda _pos: self._refresh())
        self.sequencer.cycle_completed.connect(lambda _word: self._refresh_stats())
        self.sequencer.speech_failed.connect(self._on_speech_failed)

    # ----------------------------------------------------------------------------
    # Rendering
    # ----------------------------------------------------------------------------
    def _refresh(self) -> None:
        """Render the current word, language and repeat indicator."""
        seq = self.sequencer
        self.play_btn.setText("PAUSE" if seq.running else "PLAY")
        word = seq.current_word
        if word is None:
            return

        primary = seq.active_language is Language.PRIMARY
        self.word_label.setText(seq.current_text)
        self.word_label.setStyleSheet(f"color: {PRIMARY_COLOR if primary else SECONDARY_COLOR};")
        self.repeat_label.setText(f"REPEAT {seq.repeats_completed + 1}/{REQUIRED_REPEATS}")
        if seq.state is PlaybackState.IDLE:
            self.status_label.setText(f"PAUSED ({seq.position + 1}/{len(seq.playlist)})")
        else:
            name = PRIMARY_LANGUAGE_NAME if primary else SECONDARY_LANGUAGE_NAME
            self.status_label.setText(f"SPEAKING {name.upper()}")

    def _refresh_stats(self) -> None:
        today = self._today()
        self.today_label.setText(f"TODAY'S LISTENS: {self.play_log.count_for(today)}")
        rows = [f"{d.strftime('%m/%d')}  {count}" for d, count in self.play_log.last_7_days(today)]
        self.history_label.setText("\n".join(rows))

    def _on_utterance_started(self, word: Word, language: Language) -> None:
        LOGGER.debug("Speaking %s (%s)", word.text_for(language), language.name)
        self._refresh()

    def _on_speech_failed(self, reason: str) -> None:
        self.status_label.setText("SPEECH UNAVAILABLE, SKIPPING")
        LOGGER.warning("Speech failed: %s", reason)

    # ----------------------------------------------------------------------------
    # Rate controls
    # ----------------------------------------------------------------------------
    def on_rate_changed(self, value: int) -> None:
        """Apply the slider value to the sequencer, update the label and persist it."""
        rate = int(value) / RATE_SCALE
        try:
            self.sequencer.set_rate(rate)
        except ValueError as exc:
            LOGGER.warning("Rejected speech rate %s: %s", rate, exc)
            return
        self.lbl_rate_value.setText(f"{rate:.2f}x")
        save_prefs(self._prefs_path, {"tts_rate": rate})
        self._update_rate_controls_enabled(int(value))

    def on_rate_step(self, direction: int) -> None:
        """Move the slider one step slower or faster, clamped to its range."""
        cur = int(self.slider_rate.value())
        new_val = cur + direction * int(self.slider_rate.singleStep())
        new_val = min(max(new_val, self.slider_rate.minimum()), self.slider_rate.maximum())
        if new_val != cur:
            self.slider_rate.setValue(new_val)

    def _update_rate_controls_enabled(self, value: int) -> None:
        self.btn_slower.setEnabled(value > self.slider_rate.minimum())
        self.btn_faster.setEnabled(value < self.slider_rate.maximum())

    # ----------------------------------------------------------------------------
    # Navigation + Audio
    # ----------------------------------------------------------------------------
    def on_prev(self) -> None:
        self.sequencer.prev()

    def on_next(self) -> None:
        self.sequencer.next()

    def on_play(self) -> None:
        """Toggle playback; report when no word is selected."""
        try:
            self.sequencer.toggle()
        except EmptyPlaylistError:
            self.word_label.setText("")
            self.status_label.setText("NOTHING TO PLAY")
            QMessageBox.information(
                self,
                "Nothing to play",
                "No words are selected. Include some words with utilities/word_admin.py.",
            )
        except Exception as exc:  # noqa: BLE001 - deliberate broad catch for UI safety
            LOGGER.exception("Failed to play audio: %s", exc)
            QMessageBox.warning(
                self,
                "Audio Error",
                "Unable to play audio. See logs for details.",
            )
        self._refresh()

    def closeEvent(self, event: QCloseEvent) -> None:  # type: ignore[override]
        self.sequencer.shutdown()
        super().closeEvent(event)


def main() -> int:
    """Application entry point.

    Returns:
        Process exit code.
    """
    store = WordStore(Path(WORDS_FILE))
    play_log = PlayLog(Path(HISTORY_FILE))
    LOGGER.info("Using %d words (%d selected)", len(store), len(store.included_words()))

    app = QApplication([])
    speech = create_speech_service(BASE_WORDS_PER_MINUTE, SPEECH_POLL_INTERVAL_MS)
    win = MainWindow(store, play_log, speech)
    win.resize(480, 640)
    win.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
