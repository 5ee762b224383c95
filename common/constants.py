"""Project-wide constants (chunk ceiling, timeouts, retry and health defaults)."""

# Bot API getFile refuses files above 20 MB, so a stored chunk must never exceed it.
TELEGRAM_MAX_CHUNK_BYTES: int = 20 * 1024 * 1024

TELEGRAM_API_BASE: str = "https://api.telegram.org"

MAX_TELEGRAM_BOTS: int = 10

# Chunk lists remembered per transport for files uploaded by this process.
MANIFEST_CACHE_SIZE: int = 1024

UPLOAD_TIMEOUT_SECONDS: float = 30.0
METADATA_TIMEOUT_SECONDS: float = 15.0

RETRY_MAX_ATTEMPTS: int = 6
RETRY_BASE_DELAY_SECONDS: float = 1.0
RETRY_MAX_DELAY_SECONDS: float = 10.0
RETRY_BACKOFF_MULTIPLIER: float = 2.0
RETRY_JITTER_FRACTION: float = 0.2

BOT_FAILURE_THRESHOLD: int = 5
BOT_RECOVERY_WINDOW_SECONDS: float = 300.0
