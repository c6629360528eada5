"""
Constants for the Behavioral Match Ranking Engine.

This module contains all magic numbers, string identifiers, and default
tuning values used throughout the engine. They seed DEFAULT_CONFIG in
match_engine.config; runtime code reads the config, not these names.
"""

from typing import Dict


# =============================================================================
# SIGNAL DERIVATION THRESHOLDS
# =============================================================================

# Profile views longer than this are "long" views
LONG_VIEW_THRESHOLD_MS = 4000

# Left swipes after a shorter view than this are "fast" left swipes
FAST_SWIPE_THRESHOLD_MS = 1000


# =============================================================================
# BEHAVIOR PROFILE
# =============================================================================

# Number of most recent signals a profile is derived from
PROFILE_SIGNAL_WINDOW = 500

# Total swipes required before preferences are learned
MIN_SWIPES_FOR_PREFERENCES = 60


# =============================================================================
# PREFERENCE LEARNING
# =============================================================================

# Most recent right swipes analyzed by the learner
MAX_LIKED_PROFILES = 100

# Liked profiles needed for full confidence
FULL_CONFIDENCE_LIKES = 100

AGE_MARGIN_YEARS = 2
MIN_AGE = 18
MAX_AGE = 99

DISTANCE_MARGIN = 1.5

# A tag must appear in at least this many liked profiles
TAG_MIN_OCCURRENCES = 3

# Preferences below this confidence are treated as absent
MIN_PREFERENCE_CONFIDENCE = 0.2

# Similarity returned when no usable preferences exist
NEUTRAL_SIMILARITY = 0.5


# =============================================================================
# HEATING
# =============================================================================

HEATING_WINDOW_MINUTES = 10.0
HEATING_DECAY_PER_MINUTE = 0.1
MAX_HEATS_PER_DAY = 20
MAX_HEAT_LEVEL = 100.0
MAX_HEATING_MULTIPLIER = 2.0

# Expired heating records older than this are removed by the sweep
HEATING_RETENTION_HOURS = 24.0

# Initial heat per trigger
HEATING_TRIGGER_LEVELS: Dict[str, float] = {
    'MATCH_RECEIVED': 60.0,
    'SUPER_LIKE_RECEIVED': 65.0,
    'GIFT_RECEIVED': 70.0,
    'PAID_CHAT_COMPLETED': 75.0,
    'CALL_ENDED': 80.0,
    'MEETING_COMPLETED': 100.0,
}


# =============================================================================
# TIER CLASSIFICATION
# =============================================================================

NEW_USER_DAYS = 7
MONETIZATION_MIN_PAID_CHATS = 5
MONETIZATION_MIN_MEETINGS = 2
ENGAGEMENT_MIN_RESPONSE_RATE = 0.7
ENGAGEMENT_MIN_MATCHES = 10
LOW_POPULARITY_MIN_SWIPES = 50
LOW_POPULARITY_MAX_LIKE_RATE = 0.10

TIER_MULTIPLIERS: Dict[str, float] = {
    'ROYAL': 1.5,
    'HIGH_MONETIZATION': 1.3,
    'HIGH_ENGAGEMENT': 1.2,
    'STANDARD': 1.0,
    'LOW_POPULARITY': 1.1,
    'NEW_USER': 1.15,
}


# =============================================================================
# RANKING
# =============================================================================

# Sub-score weights (must sum to 1.0)
WEIGHT_BEHAVIOR = 0.35
WEIGHT_SIMILARITY = 0.30
WEIGHT_RECENCY = 0.15
WEIGHT_POPULARITY = 0.10
WEIGHT_BASE = 0.10

# Neutral behavior score for candidates without history
NEUTRAL_BEHAVIOR_SCORE = 50.0

# Recency steps: (max hours since last active, score)
RECENCY_STEPS = (
    (1, 100.0),
    (24, 90.0),
    (24 * 7, 70.0),
    (24 * 30, 40.0),
)
RECENCY_FLOOR = 10.0

# Popularity steps: (min inbound likes in window, score), highest first
POPULARITY_STEPS = (
    (50, 100.0),
    (20, 80.0),
    (10, 60.0),
    (5, 40.0),
    (1, 30.0),
)
POPULARITY_FLOOR = 20.0
POPULARITY_WINDOW_DAYS = 30

# Base compatibility heuristics
BASE_AGE_POINTS = 30.0
BASE_AGE_FALLOFF_YEARS = 15.0
BASE_DISTANCE_POINTS = 30.0
BASE_DISTANCE_FALLOFF_KM = 100.0
BASE_PHOTO_POINTS = 20.0
BASE_BIO_POINTS = 10.0
BASE_INTEREST_POINTS = 10.0
BASE_FULL_PHOTOS = 5
BASE_FULL_INTERESTS = 5


# =============================================================================
# FEED
# =============================================================================

FEED_POOL_MULTIPLIER = 5
FEED_MAX_LIMIT = 100
FEED_MAX_WORKERS = 8
FEED_FETCH_TIMEOUT_SECONDS = 2.0
FEED_SCORING_TIMEOUT_SECONDS = 3.0


# =============================================================================
# HEALTH THRESHOLDS
# =============================================================================

HEALTH_MIN_MATCH_RATE = 0.05
HEALTH_MIN_RESPONSE_RATE = 0.30
HEALTH_MIN_ACTIVE_USERS = 10
HEALTH_MIN_PREFERENCE_ADOPTION = 0.20

# Users active within this many hours count as active
ACTIVE_USER_WINDOW_HOURS = 24.0
