"""Centralized constants for the retention scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 ----------
DEFAULT_EASE = 2.5
MIN_EASE = 1.3
EASE_DECIMALS = 2
MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3

# ---------- Intervals (days) ----------
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6
FAILURE_INTERVAL_DAYS = 1

# ---------- Recall tests ----------
RETEST_COOLDOWN_HOURS = 24
REDIRECT_FAILURE_THRESHOLD = 3
ANSWER_LENGTH_THRESHOLD = 50
LONG_ANSWER_QUALITY = 4
SHORT_ANSWER_QUALITY = 2

# ---------- Retention status (days since review / interval) ----------
STRONG_RATIO = 1.0
FADING_RATIO = 2.0
WEAK_RATIO = 4.0

# ---------- Storage / server ----------
DEFAULT_DB_NAME = "retention.db"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8787
SQLITE_TIMEOUT = 10.0  # seconds
