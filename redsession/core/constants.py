"""
System-Wide Constants for redsession

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# KEY LAYOUT
# =============================================================================
SESSION_KEY_TEMPLATE: Final[str] = "sess:{digest}:{session_id}"
LOCK_KEY_TEMPLATE: Final[str] = "lock:{digest}"

# Hash field written once when a session record is created
HASH_TOUCH_KEY: Final[str] = "__#tx"

ARRAY_PATH_DELIMITER: Final[str] = "."

# Separator between expiry and owner inside a lock value
LOCK_VALUE_SEPARATOR: Final[str] = "-"

# =============================================================================
# LOCKING
# =============================================================================
LOCK_RETRY_SLEEP: Final[float] = 0.5      # seconds between attempts
LOCK_DEFAULT_TIMEOUT: Final[int] = 20     # seconds until a lock goes stale
LOCK_DEFAULT_MAX_ATTEMPTS: Final[int] = 100
LOCK_SLACK_SECONDS: Final[int] = 1

# =============================================================================
# SESSION RECORD
# =============================================================================
SESSION_DEFAULT_TTL_SECONDS: Final[int] = 1440  # classic gc_maxlifetime
SESSION_DEFAULT_NAME: Final[str] = "SESSID"
SESSION_ID_BYTES: Final[int] = 16

# =============================================================================
# SERIALIZATION
# =============================================================================
COMPRESSION_THRESHOLD: Final[int] = 1024  # Compress if > 1KB
CODEC_FLAG_RAW: Final[int] = 0x00
CODEC_FLAG_LZ4: Final[int] = 0x01

# =============================================================================
# REDIS
# =============================================================================
REDIS_DEFAULT_HOST: Final[str] = "127.0.0.1"
REDIS_DEFAULT_PORT: Final[int] = 6379
REDIS_DEFAULT_DATABASE: Final[int] = 0

ENV_PREFIX: Final[str] = "REDSESSION_"
