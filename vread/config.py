import os
from pathlib import Path

DB_PATH = os.environ.get("VREAD_DB_PATH", str(Path.cwd() / "vread.db"))
DATABASE_URL = f"sqlite+aiosqlite:///{DB_PATH}"

# Segment ladder
PAGES_PER_SEGMENT = int(os.environ.get("VREAD_PAGES_PER_SEGMENT", "30"))

# Progress caches (seconds). The validation-adjacent and reading-list views
# have different freshness requirements and are cached independently.
VALIDATION_CACHE_TTL = float(os.environ.get("VREAD_VALIDATION_CACHE_TTL", "30"))
READING_LIST_CACHE_TTL = float(os.environ.get("VREAD_READING_LIST_CACHE_TTL", "600"))

# Refresh controller
REFRESH_MIN_INTERVAL = float(os.environ.get("VREAD_REFRESH_MIN_INTERVAL", "2.0"))
REFRESH_MAX_ATTEMPTS = int(os.environ.get("VREAD_REFRESH_MAX_ATTEMPTS", "3"))
REFRESH_BASE_DELAY = float(os.environ.get("VREAD_REFRESH_BASE_DELAY", "0.5"))
REFRESH_MAX_DELAY = float(os.environ.get("VREAD_REFRESH_MAX_DELAY", "8.0"))
REFRESH_DEBOUNCE = float(os.environ.get("VREAD_REFRESH_DEBOUNCE", "0.3"))

# Streaks are bucketed by calendar day in this timezone
TIMEZONE = os.environ.get("VREAD_TIMEZONE", "UTC")
STREAK_GRACE_DAYS = int(os.environ.get("VREAD_STREAK_GRACE_DAYS", "1"))

# Jokers
JOKER_MIN_SEGMENTS_ENABLED = os.environ.get("VREAD_JOKER_MIN_SEGMENTS_ENABLED", "false").lower() in ("1", "true")
JOKER_MIN_SEGMENTS = int(os.environ.get("VREAD_JOKER_MIN_SEGMENTS", "3"))

# Identity used by the MCP server when calling the HTTP API
API_USER_ID = os.environ.get("VREAD_API_USER_ID", "local")

# Reader sessions idle longer than this (seconds) are closed on the next open
SESSION_IDLE_TIMEOUT = float(os.environ.get("VREAD_SESSION_IDLE_TIMEOUT", "1800"))
