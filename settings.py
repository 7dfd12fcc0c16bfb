# settings.py
# Things that can be changed

PRIMARY_LANGUAGE_TAG = "vi-VN"    # spoken first in every pair
SECONDARY_LANGUAGE_TAG = "ko-KR"
PRIMARY_LANGUAGE_NAME = "Vietnamese"
SECONDARY_LANGUAGE_NAME = "Korean"

CURRENT_TTS_RATE = 0.9            # relative speech rate (1.0 = normal)
TTS_RATE_MIN = 0.5
TTS_RATE_MAX = 1.5
TTS_RATE_STEP = 0.1
BASE_WORDS_PER_MINUTE = 180       # engine words per minute at rate 1.0
SPEECH_POLL_INTERVAL_MS = 100     # how often to check whether the engine is still speaking

WORDS_FILE = "data/words.yaml"
HISTORY_FILE = "data/history.json"
PREFS_FILE = "user_prefs.json"

DEBUG = False
