"""
Constants for the vocabulary spaced-repetition engine.
"""

DB_NAME = "vocab_srs.db"

# Persistence namespaces
CARDS_NAMESPACE = "cards"
SESSIONS_NAMESPACE = "sessions"

# SuperMemo 2 parameters
SM2_INITIAL_EASE_FACTOR = 2.5
SM2_MIN_EASE_FACTOR = 1.3
SM2_MAX_EASE_FACTOR = 2.5
SM2_INITIAL_INTERVAL = 1
SM2_SECOND_INTERVAL = 6
PASSING_QUALITY = 3

# Status promotion thresholds (in days)
REVIEW_INTERVAL_THRESHOLD = 21
GRADUATION_INTERVAL_THRESHOLD = 120

# Learning context defaults and bounds
DEFAULT_CARD_DIFFICULTY = 3
DEFAULT_CARD_PRIORITY = 5
MIN_CARD_DIFFICULTY, MAX_CARD_DIFFICULTY = 1, 5
MIN_CARD_PRIORITY, MAX_CARD_PRIORITY = 1, 10

# Priority scoring
BASE_PRIORITY = 50
OVERDUE_POINTS_PER_DAY = 10
MAX_OVERDUE_POINTS = 40
NEW_CARD_BONUS = 20
DIFFICULT_CARD_BONUS = 15
DIFFICULT_EASE_FACTOR = 2.0
IMPORTANT_CARD_BONUS = 10
IMPORTANT_PRIORITY_THRESHOLD = 7
MAX_PRIORITY = 100

# Query defaults
DEFAULT_DUE_LIMIT = 20
DEFAULT_NEW_LIMIT = 10
DEFAULT_HISTORY_QUERY_LIMIT = 10

# Sessions
DEFAULT_TARGET_CARDS = 20
DEFAULT_MAX_DURATION_MINUTES = 30
DEFAULT_ENGAGEMENT_SCORE = 50.0
SESSION_HISTORY_LIMIT = 50

# Session quality weighting
IDEAL_RESPONSE_TIME_MS = 3000.0
ACCURACY_WEIGHT = 0.40
COMPLETION_WEIGHT = 0.30
RESPONSE_TIME_WEIGHT = 20.0  # closeness is a 0-1 ratio
ENGAGEMENT_WEIGHT = 0.10
EXCELLENT_THRESHOLD = 80
GOOD_THRESHOLD = 65
AVERAGE_THRESHOLD = 40

# Seconds to wait on a persistence gateway call before carrying on in memory
PERSISTENCE_TIMEOUT_SECONDS = 2.0
