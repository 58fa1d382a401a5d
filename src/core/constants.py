"""Core constants used across Lapchart modules.

This module centralizes storage names, thresholds, and render tags.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".lapchart")
RACES_DIR_NAME = "races"
STAGING_DIR_NAME = ".staging"
RACE_FILE_NAME = "race.json"
ENTRIES_DATASET_NAME = "entries.lance"
LAPS_DATASET_NAME = "laps.lance"
DEFAULT_LAP_BATCH_SIZE = 500

FLAG_GREEN = "GREEN"
FLAG_FCY = "FCY"
FLAG_RED = "RED"
SUPPORTED_FLAGS = (FLAG_GREEN, FLAG_FCY, FLAG_RED)

LAP_TIME_EPSILON = 0.001
FCY_MAJORITY_FRACTION = 0.5
GREEN_PACE_MIN_SAMPLES = 11
GREEN_PACE_MIN_LAP_SECONDS = 1.0
GREEN_PACE_PERCENTILE = 0.95
GREEN_PACE_MULTIPLIER = 1.1
GREEN_PACE_FALLBACK_SECONDS = 300.0
MISSING_FINISH_POSITION = 999
UNKNOWN_CLASS = "Unknown"

PIT_MARKER_COLOR = "#fbbf24"
PENALTY_MARKER_COLOR = "#f87171"
SETTLE_GAINED_COLOR = "#4ade80"
SETTLE_LOST_COLOR = "#f87171"
SETTLE_HELD_COLOR = "#888"
PENALTY_LABEL_Y_STEP = 12

FCY_SETTLE_WINDOW_LAPS = 5
PIT_SETTLE_WINDOW_LAPS = 6
PIT_SETTLE_FALLBACK_LAPS = 10
PIT_REASON_WINDOW_LAPS = 8
PIT_REASON_FALLBACK_LAPS = 12
SETTLE_PROXIMITY_LAPS = 2
MAX_LISTED_CROSSOVERS = 6
MAX_LISTED_CLASS_PITTERS = 5
SHORT_TEAM_MAX_CHARS = 20
MAX_ANNOTATION_ISSUES = 5

RACE_STATUSES = ("DRAFT", "PUBLISHED")
DEFAULT_RACE_STATUS = "DRAFT"

# Upper bound of the int32 row columns in entries.lance and laps.lance.
MAX_ROW_INTEGER = 2**31 - 1
