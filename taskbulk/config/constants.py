"""Pure constants for the bulk engine. No side effects at import time.

All durations are integer milliseconds.
"""

# === Delay controller (canonical engine) ===
DEFAULT_FLOOR_MS = 200  # Lowest inter-item delay the engine will settle on
DEFAULT_PEAK_MS = 3000  # Initial high-water mark used for zone math
DEFAULT_INITIAL_DELAY_MS = 1000  # Starting inter-item delay

# Zone speed-up steps (empirically tuned, keep as-is)
RED_ZONE_FACTOR = 0.8  # 20% cut when over-throttled
YELLOW_ZONE_STEP_MS = 1000
GREEN_ZONE_STEP_MS = 1

# Rate limit adjustments (empirically tuned, keep as-is)
FLOOR_STEP_MS = 1
SUSTAINABLE_STEP_MS = 10
RATE_LIMIT_DELAY_FACTOR = 1.5

# === Backoff ===
RATE_LIMIT_BACKOFF_BASE_MS = 1000
RATE_LIMIT_BACKOFF_STEP_MS = 1000
RATE_LIMIT_BACKOFF_MAX_MS = 10000

TRANSIENT_BASE_DELAY_MS = 100  # delay = base * 2^attempts
MAX_RETRIES = 6  # Transient attempts per item before it is recorded failed

# === Circuit breaker ===
CIRCUIT_BREAKER_THRESHOLD = 5  # Consecutive failures (any class) across items
CIRCUIT_BREAKER_PAUSE_MS = 5000

# === Telemetry ===
RPS_WINDOW_SECONDS = 1.0

# === Task API ===
TASKS_PAGE_SIZE = 100  # Maximum page size accepted by the tasks list endpoint

# === Legacy size tiers ===
# (minimum item count exclusive, initial delay ms, max retries), checked in order
LEGACY_TIERS = [
    (1000, 1200, 7),
    (500, 900, 6),
    (100, 400, 5),
]
LEGACY_BASE_DELAY_MS = 100
LEGACY_BASE_MAX_RETRIES = 3
