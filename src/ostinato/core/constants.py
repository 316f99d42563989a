"""Global constants for Ostinato.

Centralizes the tuning numbers of the learning engine, making them
discoverable, consistent, and easy to override through configuration.
The reward and score weights are hand-tuned; they are kept as named
defaults rather than derived values.
"""

# =============================================================================
# Action Validation
# =============================================================================

MAX_ACTION_TYPE_LENGTH = 99
"""Longest accepted action type (characters)."""

DEFAULT_MAX_HISTORY_SIZE = 1000
"""Maximum number of actions retained by the ledger."""

# =============================================================================
# Reward Function Weights
# =============================================================================

REWARD_QUALITY_WEIGHT = 0.35
REWARD_EFFICIENCY_WEIGHT = 0.25
REWARD_SUCCESS_BONUS = 0.25
REWARD_FAILURE_PENALTY = -0.10
REWARD_ERROR_WEIGHT = 0.15
REWARD_SATISFACTION_WEIGHT = 0.10

ERROR_RATE_SCALE = 10.0
"""Error count at which the error component of reward/score bottoms out."""

# =============================================================================
# Best-Parameter Score Weights
# =============================================================================

SCORE_QUALITY_WEIGHT = 0.4
SCORE_EFFICIENCY_WEIGHT = 0.3
SCORE_SUCCESS_WEIGHT = 0.2
SCORE_ERROR_WEIGHT = 0.1

NEAR_OPTIMAL_RATIO = 0.8
"""Exploration may replace the best parameters with a score >= ratio x best."""

# =============================================================================
# Online Estimation
# =============================================================================

DEFAULT_LEARNING_RATE = 0.1
DEFAULT_EXPLORATION_RATE = 0.15
WARMUP_ATTEMPTS = 10
"""Attempts during which the base learning rate is used unscaled."""

MIN_VARIANCE_FACTOR = 0.01
PERFORMANCE_WINDOW = 20
"""Number of recent rewards kept per strategy."""

NEUTRAL_PREDICTION = 0.5
"""Prediction returned when there is not enough history."""

# =============================================================================
# Metric Ceilings
# =============================================================================

MAX_ERROR_RATE = 1_000_000.0
MAX_EXECUTION_TIME_MS = 1_000_000_000.0
DEFAULT_USER_SATISFACTION = 0.5

DEFAULT_BASELINE_TIME_MS = 100.0
DEFAULT_BASELINE_TIMES_MS: dict[str, float] = {
    "code_edit": 100.0,
    "file_read": 50.0,
    "file_write": 75.0,
    "ai_query": 2000.0,
    "search": 500.0,
}

DEFAULT_ACTION_PARAMETERS: dict[str, dict[str, str | int | float | bool]] = {
    "code_edit": {"autoFormat": True, "validateSyntax": True},
    "ai_query": {"temperature": 0.7, "maxTokens": 2000},
    "file_operation": {"backup": True, "validatePath": True},
}

# =============================================================================
# Pattern Mining and Clustering
# =============================================================================

PATTERN_KEY_SEPARATOR = "→"
MAX_PATTERN_CONTEXTS = 10
MAX_SUGGESTIONS = 5

# =============================================================================
# Persistence
# =============================================================================

SNAPSHOT_SCHEMA_VERSION = 1
SNAPSHOT_FILE_MODE = 0o600
BACKUP_KEEP_COUNT = 5

ACTION_HISTORY_FILE = "action_history.json"
STRATEGIES_FILE = "strategies.json"
PREDICTOR_WEIGHTS_FILE = "predictor_weights.json"
LEGACY_PREDICTOR_WEIGHTS_FILE = "neural_weights.json"
BACKUP_DIR_NAME = "backups"
