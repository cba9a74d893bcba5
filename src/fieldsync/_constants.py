"""Internal constants shared across the library."""

USER_AGENT = "fieldsync/0.1"

DEFAULT_SYNC_INTERVAL: float = 60.0
DEFAULT_PROBE_INTERVAL: float = 60.0
DEFAULT_DAILY_CHECK_INTERVAL: float = 3600.0
DEFAULT_REQUEST_TIMEOUT: float = 10.0
DEFAULT_BATCH_SIZE = 20

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_BACKOFF: float = 15.0
DEFAULT_MAX_BACKOFF: float = 300.0
DEFAULT_CONFLICT_RETRIES = 3

# Persisted state keys (one file per key, per user).
LOCAL_RECORDS_KEY = "local_records"
SYNC_QUEUE_KEY = "sync_queue"
LAST_DAILY_SYNC_KEY = "last_daily_sync"

# HTTP statuses mapped onto the remote failure taxonomy.
PERMISSION_STATUSES: frozenset[int] = frozenset({401, 403})
CONFLICT_STATUSES: frozenset[int] = frozenset({409, 412})
TRANSIENT_STATUSES: frozenset[int] = frozenset({408, 425, 429, 500, 502, 503, 504})

# ------------------------------------------------------------------
# Attendance status thresholds (worked hours)
# ------------------------------------------------------------------

HALF_DAY_MIN_HOURS: float = 4.0
FULL_DAY_MIN_HOURS: float = 8.0
