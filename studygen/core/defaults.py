"""Fixed pipeline constants.

Values here are behavioral contracts shared by several components. Tunables
that operators are expected to change live in ``studygen.core.config``.
"""

# Circuit breaker
BREAKER_FAILURE_THRESHOLD = 5
BREAKER_COOLDOWN_SECONDS = 30.0

# Generation loop: 1 initial attempt + MAX_RETRIES corrective attempts
GENERATION_MAX_RETRIES = 2
BASE_TEMPERATURE = 0.2
TEMPERATURE_STEP = 0.1

SYSTEM_INSTRUCTION = "You are a concise, accurate educational assistant."

DEFAULT_GENERATION_MODEL = "gemini-2.5-flash"
DEFAULT_EMBEDDING_MODEL = "text-embedding-004"
EMBEDDING_DIMENSIONS = 768

# Semantic cache: hit only when cosine distance is strictly below this
SEMANTIC_DISTANCE_THRESHOLD = 0.25

HISTORY_LIMIT = 10

# Job queue
QUEUE_NAME = "flashcard-generation"
QUEUE_CONCURRENCY = 5
JOB_ATTEMPTS = 3
JOB_BACKOFF_SECONDS = 1.0
COMPLETED_RETENTION_SECONDS = 3600
COMPLETED_RETENTION_COUNT = 100
FAILED_RETENTION_SECONDS = 86400
JOB_LOCK_SECONDS = 30

# Client polling ceiling (~2 minutes)
POLL_MAX_ATTEMPTS = 60
POLL_INTERVAL_SECONDS = 2.0

# Database startup
DB_CONNECT_RETRIES = 5
DB_CONNECT_RETRY_DELAY = 2.0

# Uploads
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DOCUMENT_MIME_TYPES = {
    "pdf": "application/pdf",
    "txt": "text/plain",
}
IMAGE_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
}
