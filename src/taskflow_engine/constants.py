STATE_DIR_NAME = ".taskflow"
CONFIG_FILE = "config.yaml"
STATE_FILE = "state.yaml"
STATE_LOCK_FILE = "state.lock"
HISTORY_FILE = "history.jsonl"
HISTORY_LOCK_FILE = "history.lock"
REWARDS_FILE = "rewards.jsonl"
REWARDS_LOCK_FILE = "rewards.lock"

CONFIG_SCHEMA_VERSION = 1
STATE_SCHEMA_VERSION = 1
WINDOWS_LOCK_BYTES = 4096

DEFAULT_USER_PRIORITY = 5
DEFAULT_TIMEZONE = "UTC"
DEFAULT_DUE_DATE_CALCULATION = "from_original"
DEFAULT_LOG_LEVEL = "INFO"

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
CATEGORY_MAX_LENGTH = 50
CONTEXT_MAX_LENGTH = 500

# Priority formula weights
USER_PRIORITY_WEIGHT = 0.4
TIME_DECAY_WEIGHT = 0.3
DEADLINE_URGENCY_WEIGHT = 0.2
BUMP_PENALTY_WEIGHT = 0.1

TIME_DECAY_HORIZON_DAYS = 30.0
DEADLINE_WINDOW_DAYS = 7.0
BUMP_PENALTY_PER_BUMP = 10.0
BUMP_PENALTY_CAP = 50.0

AT_RISK_BUMP_THRESHOLD = 3
AT_RISK_OVERDUE_DAYS = 3.0

MIN_SERIES_INTERVAL = 1
MAX_SERIES_INTERVAL = 365
